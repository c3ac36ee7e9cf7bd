from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, List, Mapping, Optional, Tuple

from identityservice.service.authorization import is_valid_role_name
from identityservice.service.errors import ErrorCode, ValidationError

MIN_USERNAME_LENGTH = 3
MIN_PASSWORD_LENGTH = 8
MIN_AGE_YEARS = 16


@dataclass(frozen=True)
class Violation:
    """One failed field rule; ``key`` names the ErrorCode to report."""

    field: str
    key: str
    attributes: Mapping[str, Any] = field(default_factory=dict)


def age_in_years(dob: date, today: Optional[date] = None) -> int:
    today = today or date.today()
    years = today.year - dob.year
    if (today.month, today.day) < (dob.month, dob.day):
        years -= 1
    return years


def _check_username(username: Optional[str]) -> Optional[Violation]:
    if username is None or len(username) < MIN_USERNAME_LENGTH:
        return Violation("username", "INVALID_USERNAME", {"min": MIN_USERNAME_LENGTH})
    return None


def _check_password(password: Optional[str]) -> Optional[Violation]:
    if password is None or len(password) < MIN_PASSWORD_LENGTH:
        return Violation("password", "INVALID_PASSWORD", {"min": MIN_PASSWORD_LENGTH})
    return None


def _check_dob(dob: Optional[date], today: Optional[date] = None) -> Optional[Violation]:
    if dob is None or age_in_years(dob, today) < MIN_AGE_YEARS:
        return Violation("dob", "INVALID_DOB", {"min": MIN_AGE_YEARS})
    return None


def validate_user_creation(
    username: Optional[str],
    password: Optional[str],
    dob: Optional[date],
    *,
    today: Optional[date] = None,
) -> List[Violation]:
    checks = (
        _check_username(username),
        _check_password(password),
        _check_dob(dob, today),
    )
    return [v for v in checks if v is not None]


def validate_user_update(
    password: Optional[str],
    dob: Optional[date],
    *,
    today: Optional[date] = None,
) -> List[Violation]:
    """Apply the creation rules to the fields present in an update."""
    violations: List[Violation] = []
    if password is not None:
        violation = _check_password(password)
        if violation:
            violations.append(violation)
    if dob is not None:
        violation = _check_dob(dob, today)
        if violation:
            violations.append(violation)
    return violations


def validate_role_name(name: Optional[str]) -> List[Violation]:
    if name is None or not is_valid_role_name(name):
        return [Violation("name", "INVALID_KEY")]
    return []


def resolve_violation(violation: Violation) -> Tuple[ErrorCode, str]:
    error_code = ErrorCode.from_key(violation.key)
    return error_code, error_code.render(violation.attributes)


def raise_for_violations(violations: List[Violation]) -> None:
    """Raise a ValidationError reporting the first violation, if any."""
    if not violations:
        return
    error_code, message = resolve_violation(violations[0])
    raise ValidationError(violations, message, error_code=error_code)
