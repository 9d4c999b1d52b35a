from dataclasses import dataclass, replace
from typing import Any, Dict, Optional

from .errors import InvalidVisibilityError, NoWorkspaceError


# Sentinel change set id for the applied base state of a workspace.
HEAD = "head"


@dataclass(frozen=True)
class Visibility:
    """
    The (workspace, system, change set) coordinate that scopes every read,
    write and function execution.

    Two coordinates are equal only when all three fields match. A missing
    system means "no system scoping".
    """
    workspace_id: Optional[str]
    system_id: Optional[str] = None
    change_set_id: str = HEAD

    @property
    def is_head(self) -> bool:
        return self.change_set_id == HEAD

    def require_workspace(self) -> "Visibility":
        if not self.workspace_id:
            raise NoWorkspaceError()
        if not self.change_set_id:
            raise InvalidVisibilityError("visibility has an empty change set id")
        return self

    def to_head(self) -> "Visibility":
        return replace(self, change_set_id=HEAD)

    def with_change_set(self, change_set_id: str) -> "Visibility":
        return replace(self, change_set_id=change_set_id)

    def without_system(self) -> "Visibility":
        return replace(self, system_id=None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "workspaceId": self.workspace_id,
            "systemId": self.system_id,
            "changeSetId": self.change_set_id,
        }

    def __str__(self) -> str:
        system = self.system_id or "-"
        return f"{self.workspace_id}/{system}/{self.change_set_id}"
