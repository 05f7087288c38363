"""
Pure input checks for account fields. Each returns field-scoped errors
instead of raising so the caller can hand them straight back.
"""
import re
from typing import List
from email_validator import EmailNotValidError, validate_email
from sessionhub.errors import FieldError

NAME_MIN_LENGTH = 3
NAME_MAX_LENGTH = 32
PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 128

_NAME_PATTERN = re.compile(r"[A-Za-z0-9_.\-]+")


def validate_name(name: str) -> List[FieldError]:
    if len(name) < NAME_MIN_LENGTH:
        return [FieldError("name", f"name has to be at least {NAME_MIN_LENGTH} characters long")]
    if len(name) > NAME_MAX_LENGTH:
        return [FieldError("name", f"name can be at most {NAME_MAX_LENGTH} characters long")]
    # Login treats any input containing "@" as an email
    if "@" in name:
        return [FieldError("name", "name cannot include an @")]
    if not _NAME_PATTERN.fullmatch(name):
        return [FieldError("name", "name can only contain letters, digits, '_', '-' and '.'")]
    return []


def validate_email_address(email: str) -> List[FieldError]:
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError:
        return [FieldError("email", "invalid email")]
    return []


def validate_password(password: str, field: str = "password") -> List[FieldError]:
    if len(password) < PASSWORD_MIN_LENGTH:
        return [FieldError(field, f"password has to be at least {PASSWORD_MIN_LENGTH} characters long")]
    if len(password) > PASSWORD_MAX_LENGTH:
        return [FieldError(field, "password is too long")]
    return []


def validate_signup(name: str, email: str, password: str) -> List[FieldError]:
    return validate_name(name) + validate_email_address(email) + validate_password(password)
