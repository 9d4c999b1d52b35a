"""
ValidateStringValue backend.

Rules live in the func's code payload as a YAML (or JSON) list, e.g.

    - not_empty: true
    - max_length: 253
    - pattern: '^[a-z]+$'

The input string is returned unchanged when every rule holds.
"""

import re
from typing import Any, Callable, Dict, List, Optional, Tuple

import yaml

from funcengine.backends.base import FuncBackend, FuncExecutionContext
from funcengine.ir.errors import ComputationError, TypeMismatchError, ValueValidationError
from funcengine.ir.func import Func, FuncBackendKind
from funcengine.ir.validation import RuleViolation, ValidationResult


def _not_empty(value: str, arg: Any) -> Optional[str]:
    if arg and not value.strip():
        return "value must not be empty"
    return None


def _min_length(value: str, arg: Any) -> Optional[str]:
    if len(value) < arg:
        return f"value must be at least {arg} characters"
    return None


def _max_length(value: str, arg: Any) -> Optional[str]:
    if len(value) > arg:
        return f"value must be at most {arg} characters"
    return None


def _pattern(value: str, arg: Any) -> Optional[str]:
    if re.fullmatch(arg, value) is None:
        return f"value does not match pattern {arg}"
    return None


def _one_of(value: str, arg: Any) -> Optional[str]:
    if value not in arg:
        return f"value must be one of {arg}"
    return None


def _equals(value: str, arg: Any) -> Optional[str]:
    if value != arg:
        return f"value must equal {arg!r}"
    return None


RULES: Dict[str, Callable[[str, Any], Optional[str]]] = {
    "not_empty": _not_empty,
    "min_length": _min_length,
    "max_length": _max_length,
    "pattern": _pattern,
    "one_of": _one_of,
    "equals": _equals,
}


# ============================================================
# ARGUMENT CHECKS
# ============================================================

def _length_arg(name: str, arg: Any) -> int:
    if isinstance(arg, bool):
        raise ComputationError(f"rule '{name}' needs an integer length, got {arg!r}")
    try:
        length = int(arg)
    except (TypeError, ValueError) as e:
        raise ComputationError(f"rule '{name}' needs an integer length, got {arg!r}") from e
    if length < 0:
        raise ComputationError(f"rule '{name}' length must not be negative, got {length}")
    return length


def _pattern_arg(name: str, arg: Any) -> str:
    if not isinstance(arg, str):
        raise ComputationError(f"rule '{name}' needs a string pattern, got {arg!r}")
    try:
        re.compile(arg)
    except re.error as e:
        raise ComputationError(f"rule '{name}' has an invalid pattern {arg!r}: {e}") from e
    return arg


def _one_of_arg(name: str, arg: Any) -> list:
    if not isinstance(arg, list):
        raise ComputationError(f"rule '{name}' needs a list of allowed values, got {arg!r}")
    return arg


# Rules missing here accept any argument.
ARGUMENT_CHECKS: Dict[str, Callable[[str, Any], Any]] = {
    "min_length": _length_arg,
    "max_length": _length_arg,
    "pattern": _pattern_arg,
    "one_of": _one_of_arg,
}


def parse_rules(code: Optional[str]) -> List[Tuple[str, Any]]:
    if not code:
        return []
    try:
        data = yaml.safe_load(code)
    except yaml.YAMLError as e:
        raise ComputationError(f"invalid validation rules: {e}") from e

    if data is None:
        return []
    if isinstance(data, dict):
        data = [{k: v} for k, v in data.items()]
    if not isinstance(data, list):
        raise ComputationError("validation rules must be a list of {rule: argument} entries")

    rules = []
    for entry in data:
        if not isinstance(entry, dict) or len(entry) != 1:
            raise ComputationError(f"malformed validation rule: {entry!r}")
        (name, arg), = entry.items()
        if name not in RULES:
            raise ComputationError(f"unknown validation rule '{name}'")
        check = ARGUMENT_CHECKS.get(name)
        if check is not None:
            arg = check(name, arg)
        rules.append((name, arg))
    return rules


def validate_string(value: str, rules: List[Tuple[str, Any]]) -> ValidationResult:
    errors = []
    for name, arg in rules:
        message = RULES[name](value, arg)
        if message:
            errors.append(RuleViolation(rule=name, message=message, value=value))
    if errors:
        return ValidationResult.failure(errors)
    return ValidationResult.success()


class ValidateStringBackend(FuncBackend):
    kinds = frozenset({FuncBackendKind.VALIDATE_STRING_VALUE})

    async def execute(self, func: Func, value: Any, context: FuncExecutionContext) -> Any:
        rules = parse_rules(func.code)
        if not isinstance(value, str):
            raise TypeMismatchError("String", value)

        result = validate_string(value, rules)
        if not result.is_valid:
            violation = result.first_error
            raise ValueValidationError(violation.rule, violation.message)
        return value
