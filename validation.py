"""
Explicit input validation.

Each validator returns a ``ValidationResult`` listing every violation found,
so callers decide how to report them (HTTP 400 or a WebSocket error event).
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from email_validator import EmailNotValidError, validate_email

MIN_USERNAME_LENGTH = 3
MIN_PASSWORD_LENGTH = 6
MAX_PASSWORD_BYTES = 72
MAX_CONTENT_LENGTH = 4000
MAX_BIO_LENGTH = 500
ROLES = ("influencer", "brand", "admin")


class Violation(str, Enum):
    MISSING_USERNAME = "missing_username"
    MISSING_EMAIL = "missing_email"
    MISSING_PASSWORD = "missing_password"
    USERNAME_TOO_SHORT = "username_too_short"
    INVALID_EMAIL = "invalid_email"
    PASSWORD_TOO_SHORT = "password_too_short"
    PASSWORD_TOO_LONG = "password_too_long"
    EMPTY_CONTENT = "empty_content"
    CONTENT_TOO_LONG = "content_too_long"
    INVALID_ROLE = "invalid_role"
    BIO_TOO_LONG = "bio_too_long"
    INVALID_INTERESTS = "invalid_interests"


MESSAGES = {
    Violation.MISSING_USERNAME: "Username is required",
    Violation.MISSING_EMAIL: "Email is required",
    Violation.MISSING_PASSWORD: "Password is required",
    Violation.USERNAME_TOO_SHORT: f"Username must be at least {MIN_USERNAME_LENGTH} characters",
    Violation.INVALID_EMAIL: "Email address is not valid",
    Violation.PASSWORD_TOO_SHORT: f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
    Violation.PASSWORD_TOO_LONG: f"Password cannot exceed {MAX_PASSWORD_BYTES} bytes",
    Violation.EMPTY_CONTENT: "Message content cannot be empty",
    Violation.CONTENT_TOO_LONG: f"Message content cannot exceed {MAX_CONTENT_LENGTH} characters",
    Violation.INVALID_ROLE: "Role must be one of: " + ", ".join(ROLES),
    Violation.BIO_TOO_LONG: f"Bio cannot exceed {MAX_BIO_LENGTH} characters",
    Violation.INVALID_INTERESTS: "Interests must be a list of strings",
}


@dataclass
class ValidationResult:
    violations: List[Violation] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.violations

    def message(self) -> str:
        if not self.violations:
            return ""
        return MESSAGES[self.violations[0]]


def _blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def validate_registration(username: Optional[str], email: Optional[str], password: Optional[str]) -> ValidationResult:
    result = ValidationResult()
    if _blank(username):
        result.violations.append(Violation.MISSING_USERNAME)
    elif len(username.strip()) < MIN_USERNAME_LENGTH:
        result.violations.append(Violation.USERNAME_TOO_SHORT)
    if _blank(email):
        result.violations.append(Violation.MISSING_EMAIL)
    else:
        try:
            validate_email(email.strip(), check_deliverability=False)
        except EmailNotValidError:
            result.violations.append(Violation.INVALID_EMAIL)
    if not password:
        result.violations.append(Violation.MISSING_PASSWORD)
    elif len(password) < MIN_PASSWORD_LENGTH:
        result.violations.append(Violation.PASSWORD_TOO_SHORT)
    elif len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        result.violations.append(Violation.PASSWORD_TOO_LONG)
    return result


def validate_login(identifier: Optional[str], password: Optional[str]) -> ValidationResult:
    result = ValidationResult()
    if _blank(identifier):
        result.violations.append(Violation.MISSING_USERNAME)
    if not password:
        result.violations.append(Violation.MISSING_PASSWORD)
    return result


def validate_message_content(content: Optional[str]) -> ValidationResult:
    result = ValidationResult()
    if _blank(content):
        result.violations.append(Violation.EMPTY_CONTENT)
    elif len(content.strip()) > MAX_CONTENT_LENGTH:
        result.violations.append(Violation.CONTENT_TOO_LONG)
    return result


def validate_profile_update(updates: Dict[str, Any]) -> ValidationResult:
    result = ValidationResult()
    role = updates.get("role")
    if role is not None and role not in ROLES:
        result.violations.append(Violation.INVALID_ROLE)
    bio = updates.get("bio")
    if bio is not None and len(bio) > MAX_BIO_LENGTH:
        result.violations.append(Violation.BIO_TOO_LONG)
    interests = updates.get("interests")
    # a comma separated string is accepted as well as a list
    if interests is not None and not isinstance(interests, str):
        if not isinstance(interests, list) or not all(isinstance(i, str) for i in interests):
            result.violations.append(Violation.INVALID_INTERESTS)
    return result
