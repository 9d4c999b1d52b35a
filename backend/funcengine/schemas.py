from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from funcengine.ir.func import Func, FuncBackendKind
from funcengine.ir.visibility import HEAD, Visibility


class CamelModel(BaseModel):
    """Wire records use camelCase; Python code uses snake_case."""
    model_config = ConfigDict(populate_by_name=True)


class FuncRecord(CamelModel):
    id: str
    name: str
    kind: FuncBackendKind
    handler: str = ""
    description: Optional[str] = None
    code: Optional[str] = None
    is_builtin: bool = Field(False, alias="isBuiltin")
    revision: int = 1

    def to_func(self) -> Func:
        return Func(
            id=self.id,
            name=self.name,
            kind=self.kind,
            handler=self.handler,
            description=self.description,
            code=self.code,
            is_builtin=self.is_builtin,
            revision=self.revision,
        )

    @classmethod
    def from_func(cls, func: Func) -> "FuncRecord":
        return cls(
            id=func.id,
            name=func.name,
            kind=func.kind,
            handler=func.handler,
            description=func.description,
            code=func.code,
            is_builtin=func.is_builtin,
            revision=func.revision,
        )


class VisibilityRequest(CamelModel):
    """Every request carries the coordinate it acts on."""
    workspace_id: Optional[str] = Field(None, alias="workspaceId")
    system_id: Optional[str] = Field(None, alias="systemId")
    change_set_pk: Optional[str] = Field(None, alias="changeSetPk")  # older clients
    change_set_id: Optional[str] = Field(None, alias="changeSetId")

    def to_visibility(self) -> Visibility:
        # No workspace is left for the engine to reject, with its own error code.
        return Visibility(
            workspace_id=self.workspace_id,
            system_id=self.system_id,
            change_set_id=self.change_set_id or self.change_set_pk or HEAD,
        )


class CheckQualificationRequest(VisibilityRequest):
    component_id: str = Field(alias="componentId")


class CheckQualificationResponse(CamelModel):
    success: bool


class ListComponentNamesRequest(VisibilityRequest):
    pass


class LabelEntryRecord(CamelModel):
    label: str
    value: str


class ListComponentNamesResponse(CamelModel):
    items: List[LabelEntryRecord] = Field(default_factory=list, alias="list")


class RestoreDefaultFunctionRequest(VisibilityRequest):
    component_id: str = Field(alias="componentId")
    attribute: str


class RestoreDefaultFunctionResponse(CamelModel):
    success: bool
    force_change_set_id: Optional[str] = Field(None, alias="forceChangeSetId")


class PasteComponentsRequest(VisibilityRequest):
    component_ids: List[str] = Field(alias="componentIds", min_length=1)


class PasteComponentsResponse(CamelModel):
    success: bool
    component_ids: List[str] = Field(default_factory=list, alias="componentIds")
    force_change_set_id: Optional[str] = Field(None, alias="forceChangeSetId")


class DomainErrorResponse(CamelModel):
    status_code: int = Field(alias="statusCode")
    message: str
    code: int
