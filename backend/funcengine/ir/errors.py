"""
Engine error taxonomy.

Contract violations (missing workspace, bad coordinate) are raised and abort
an operation before any function runs. Function-level failures are captured
per function and travel inside FuncResult / QualificationResult instead.
"""

from typing import Any, Dict, Optional


class EngineError(Exception):
    """Base class for every error the engine raises or records."""

    kind = "engine_error"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    def to_detail(self) -> Dict[str, Any]:
        return {"kind": self.kind, "message": self.message}


# ============================================================
# CALLER CONTRACT
# ============================================================

class CallerContractError(EngineError):
    """Surfaced immediately, never retried. The caller has to fix the call."""

    kind = "caller_contract"

    def __init__(self, message: str, status_code: int = 400, code: int = 400):
        super().__init__(message)
        self.status_code = status_code
        self.code = code

    def to_dict(self) -> Dict[str, Any]:
        return {
            "statusCode": self.status_code,
            "message": self.message,
            "code": self.code,
        }


class NoWorkspaceError(CallerContractError):
    kind = "no_workspace"

    def __init__(self, message: str = "cannot make call without a workspace; bug!"):
        super().__init__(message, status_code=10, code=10)


class InvalidVisibilityError(CallerContractError):
    kind = "invalid_visibility"


class StaleVisibilityError(CallerContractError):
    """A result computed under one coordinate was consumed under another."""

    kind = "stale_visibility"


# ============================================================
# LOOKUPS
# ============================================================

class FuncNotFoundError(EngineError):
    kind = "func_not_found"

    def __init__(self, func_id: str):
        super().__init__(f"func '{func_id}' not found")
        self.func_id = func_id


class DuplicateFuncError(EngineError):
    kind = "duplicate_func"

    def __init__(self, func_id: str):
        super().__init__(f"func '{func_id}' is already registered; register a new revision instead")
        self.func_id = func_id


class ComponentNotFoundError(EngineError):
    kind = "component_not_found"

    def __init__(self, component_id: str, visibility: Any = None):
        super().__init__(f"component '{component_id}' not visible at {visibility}")
        self.component_id = component_id
        self.visibility = visibility


class ChangeSetNotFoundError(EngineError):
    kind = "change_set_not_found"

    def __init__(self, change_set_id: str):
        super().__init__(f"change set '{change_set_id}' not found")
        self.change_set_id = change_set_id


# ============================================================
# FUNCTION EXECUTION
# ============================================================

class TypeMismatchError(EngineError):
    kind = "type_mismatch"

    def __init__(self, expected: str, actual: Any):
        super().__init__(f"expected {expected}, got {type(actual).__name__}")
        self.expected = expected
        self.actual_type = type(actual).__name__


class ValueValidationError(EngineError):
    kind = "validation"

    def __init__(self, rule: str, message: str):
        super().__init__(message)
        self.rule = rule

    def to_detail(self) -> Dict[str, Any]:
        detail = super().to_detail()
        detail["rule"] = self.rule
        return detail


class ComputationError(EngineError):
    kind = "computation"

    def __init__(self, message: str, func_id: Optional[str] = None):
        super().__init__(message)
        self.func_id = func_id


class ExecutionTimeout(ComputationError):
    kind = "timeout"

    def __init__(self, func_id: str, timeout: float):
        super().__init__(f"func '{func_id}' exceeded {timeout:g}s", func_id=func_id)
        self.timeout = timeout


class ExternalSyncError(EngineError):
    """
    Resource sync failed. External infrastructure may be partially changed,
    so operators may need to reconcile by hand.
    """

    kind = "external_sync"

    def __init__(self, message: str, func_id: Optional[str] = None, partial: bool = True):
        super().__init__(message)
        self.func_id = func_id
        self.partial = partial

    def to_detail(self) -> Dict[str, Any]:
        detail = super().to_detail()
        detail["partial"] = self.partial
        return detail


# ============================================================
# STORE
# ============================================================

class ImmutableError(EngineError):
    kind = "immutable"

    def __init__(self, change_set_id: str, reason: str = "is not open"):
        super().__init__(f"change set '{change_set_id}' {reason}; write rejected")
        self.change_set_id = change_set_id
