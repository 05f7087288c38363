"""
Error taxonomy shared by the core services.

Expected business conditions (taken name, full session, expired token)
are returned as FieldError values inside an Outcome. Only conditions the
caller cannot correct are raised.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional


class ErrorCode(str, Enum):
    VALIDATION = "validation"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    PERMISSION = "permission"
    CAPACITY = "capacity"
    EXPIRED_TOKEN = "expired_token"


@dataclass(frozen=True)
class FieldError:
    field: str
    message: str
    code: ErrorCode = ErrorCode.VALIDATION
    
    def to_dict(self) -> dict:
        return {"field": self.field, "message": self.message}


@dataclass
class Outcome:
    """
    Result of a core operation.
    
    Truthy on success. On failure `errors` holds at least one FieldError
    and `value` is None.
    """
    value: Any = None
    errors: List[FieldError] = field(default_factory=list)
    
    @property
    def ok(self) -> bool:
        return not self.errors
    
    @property
    def error(self) -> Optional[FieldError]:
        return self.errors[0] if self.errors else None
    
    def __bool__(self) -> bool:
        return self.ok
    
    @classmethod
    def success(cls, value: Any = None) -> "Outcome":
        return cls(value=value)
    
    @classmethod
    def fail(cls, field_name: str, message: str, code: ErrorCode = ErrorCode.VALIDATION) -> "Outcome":
        return cls(errors=[FieldError(field_name, message, code)])
    
    @classmethod
    def from_errors(cls, errors: List[FieldError]) -> "Outcome":
        return cls(errors=list(errors))


class FatalStoreError(Exception):
    """
    The relational or token store could not complete a write that must
    not be left half done.
    """
