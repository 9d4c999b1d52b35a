from dataclasses import dataclass
from typing import List


@dataclass
class RuleViolation:
    rule: str
    message: str
    value: str


@dataclass
class ValidationResult:
    is_valid: bool
    errors: List[RuleViolation]

    @classmethod
    def success(cls):
        return cls(is_valid=True, errors=[])

    @classmethod
    def failure(cls, errors: List[RuleViolation]):
        return cls(is_valid=False, errors=errors)

    @property
    def first_error(self):
        return self.errors[0] if self.errors else None
