from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from .errors import EngineError, StaleVisibilityError
from .func import FuncBackendKind
from .visibility import Visibility


@dataclass
class FuncResult:
    """Outcome of one dispatch. Function failures live in `error`, never raised."""
    func_id: str
    kind: FuncBackendKind
    value: Any = None
    error: Optional[EngineError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, func_id: str, kind: FuncBackendKind, value: Any):
        return cls(func_id=func_id, kind=kind, value=value)

    @classmethod
    def failure(cls, func_id: str, kind: FuncBackendKind, error: EngineError):
        return cls(func_id=func_id, kind=kind, error=error)

    def unwrap(self) -> Any:
        if self.error is not None:
            raise self.error
        return self.value


@dataclass
class QualificationResult:
    component_id: str
    func_id: str
    success: bool
    visibility: Visibility
    message: Optional[str] = None
    error_kind: Optional[str] = None

    def ensure_visibility(self, visibility: Visibility) -> "QualificationResult":
        if visibility != self.visibility:
            raise StaleVisibilityError(
                f"qualification '{self.func_id}' for '{self.component_id}' was computed "
                f"at {self.visibility}, not {visibility}"
            )
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "componentId": self.component_id,
            "funcId": self.func_id,
            "success": self.success,
            "message": self.message,
            "errorKind": self.error_kind,
        }


@dataclass
class QualificationCheck:
    """AND-aggregate of every qualification run for one component."""
    component_id: str
    visibility: Visibility
    results: List[QualificationResult] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return all(r.success for r in self.results)

    def failed(self) -> List[str]:
        return [r.func_id for r in self.results if not r.success]

    def ensure_visibility(self, visibility: Visibility) -> "QualificationCheck":
        for result in self.results:
            result.ensure_visibility(visibility)
        if visibility != self.visibility:
            raise StaleVisibilityError(
                f"qualifications for '{self.component_id}' were computed at {self.visibility}"
            )
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "componentId": self.component_id,
            "success": self.success,
            "visibility": self.visibility.to_dict(),
            "results": [r.to_dict() for r in self.results],
        }


@dataclass
class ConfirmationResult:
    """
    Whether a component's resource matches what it should be, plus the
    actions that would bring it there. Only actions the component's schema
    supports are ever recommended.
    """
    component_id: str
    func_id: str
    success: bool
    visibility: Visibility
    recommended_actions: List[str] = field(default_factory=list)
    message: Optional[str] = None
    error_kind: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "componentId": self.component_id,
            "funcId": self.func_id,
            "success": self.success,
            "recommendedActions": list(self.recommended_actions),
            "message": self.message,
            "errorKind": self.error_kind,
        }


@dataclass
class CodeGenerationOutput:
    func_id: str
    format: str
    code: str

    def to_dict(self) -> Dict[str, Any]:
        return {"funcId": self.func_id, "format": self.format, "code": self.code}


class ResourceStatus(Enum):
    OK = "ok"
    WARNING = "warning"
    ERROR = "error"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class ResourceSyncResult:
    status: ResourceStatus
    payload: Any = None
    message: Optional[str] = None
    logs: List[str] = field(default_factory=list)
    last_synced: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "payload": self.payload,
            "message": self.message,
            "logs": list(self.logs),
            "lastSynced": self.last_synced,
        }
