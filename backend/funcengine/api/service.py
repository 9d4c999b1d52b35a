"""
Service-layer entry points. Transport-agnostic: each takes a raw payload
dict plus a ComponentEngine and returns a JSON-ready dict, either the
response record or {"error": DomainErrorResponse}.
"""

import logging
from typing import Any, Dict

from pydantic import ValidationError

from funcengine.ir.errors import (
    CallerContractError,
    ChangeSetNotFoundError,
    ComponentNotFoundError,
    EngineError,
    ImmutableError,
)
from funcengine.pipeline.controller import ComponentEngine
from funcengine.schemas import (
    CheckQualificationRequest,
    CheckQualificationResponse,
    DomainErrorResponse,
    LabelEntryRecord,
    ListComponentNamesRequest,
    ListComponentNamesResponse,
    PasteComponentsRequest,
    PasteComponentsResponse,
    RestoreDefaultFunctionRequest,
    RestoreDefaultFunctionResponse,
)

logger = logging.getLogger(__name__)

# status code per non-contract error; anything unlisted is a 500
ERROR_STATUS = {
    ComponentNotFoundError: 404,
    ChangeSetNotFoundError: 404,
    ImmutableError: 409,
}


def error_response(error: Exception) -> Dict[str, Any]:
    if isinstance(error, CallerContractError):
        body = DomainErrorResponse(**error.to_dict())
    elif isinstance(error, ValidationError):
        body = DomainErrorResponse(status_code=400, message=str(error), code=400)
    else:
        status = next((s for cls, s in ERROR_STATUS.items() if isinstance(error, cls)), 500)
        body = DomainErrorResponse(status_code=status, message=str(error), code=status)
    return {"error": body.model_dump(by_alias=True)}


async def check_qualifications(payload: Dict[str, Any], engine: ComponentEngine) -> Dict[str, Any]:
    """Run every qualification of one component; true only if all pass."""
    try:
        request = CheckQualificationRequest.model_validate(payload)
        check = await engine.check_qualifications(request.component_id, request.to_visibility())
    except (EngineError, ValidationError) as e:
        logger.warning("[Service] checkQualifications rejected: %s", e)
        return error_response(e)
    return CheckQualificationResponse(success=check.success).model_dump(by_alias=True)


def list_component_names(payload: Dict[str, Any], engine: ComponentEngine) -> Dict[str, Any]:
    try:
        request = ListComponentNamesRequest.model_validate(payload)
        visibility = request.to_visibility().require_workspace()
        entries = engine.store.list_component_names(visibility)
    except (EngineError, ValidationError) as e:
        logger.warning("[Service] listComponentNames rejected: %s", e)
        return error_response(e)
    response = ListComponentNamesResponse(
        items=[LabelEntryRecord(label=e.label, value=e.value) for e in entries]
    )
    return response.model_dump(by_alias=True)


def restore_default_function(payload: Dict[str, Any], engine: ComponentEngine) -> Dict[str, Any]:
    """
    Drop a user override on one attribute. At head this opens a change set
    first and reports its id as forceChangeSetId.
    """
    try:
        request = RestoreDefaultFunctionRequest.model_validate(payload)
        _, forced_id = engine.restore_default(request.component_id, request.attribute, request.to_visibility())
    except (EngineError, ValidationError) as e:
        logger.warning("[Service] restoreDefaultFunction rejected: %s", e)
        return error_response(e)
    return RestoreDefaultFunctionResponse(success=True, force_change_set_id=forced_id).model_dump(by_alias=True)


def paste_components(payload: Dict[str, Any], engine: ComponentEngine) -> Dict[str, Any]:
    """Copy components; at head the copies go into a forced change set."""
    try:
        request = PasteComponentsRequest.model_validate(payload)
        pasted, _, forced_id = engine.paste_components(request.component_ids, request.to_visibility())
    except (EngineError, ValidationError) as e:
        logger.warning("[Service] pasteComponents rejected: %s", e)
        return error_response(e)
    response = PasteComponentsResponse(
        success=True, component_ids=[c.id for c in pasted], force_change_set_id=forced_id
    )
    return response.model_dump(by_alias=True)
