from datetime import date

import pytest

from identityservice.service.errors import ErrorCode, ValidationError
from identityservice.service.validation import (
    Violation,
    age_in_years,
    raise_for_violations,
    resolve_violation,
    validate_user_creation,
    validate_user_update,
)

TODAY = date(2024, 6, 15)


def test_valid_creation_has_no_violations():
    assert validate_user_creation("tomdoe", "12345678", date(1990, 1, 1), today=TODAY) == []


def test_short_username_is_reported():
    violations = validate_user_creation("to", "12345678", date(1990, 1, 1), today=TODAY)
    assert violations == [Violation("username", "INVALID_USERNAME", {"min": 3})]


def test_short_password_is_reported():
    violations = validate_user_creation("tomdoe", "1234567", date(1990, 1, 1), today=TODAY)
    assert [v.key for v in violations] == ["INVALID_PASSWORD"]


def test_missing_dob_is_reported_on_creation():
    violations = validate_user_creation("tomdoe", "12345678", None, today=TODAY)
    assert [v.field for v in violations] == ["dob"]


def test_age_counts_whole_years():
    assert age_in_years(date(2008, 6, 15), TODAY) == 16
    assert age_in_years(date(2008, 6, 16), TODAY) == 15


def test_too_young_is_reported():
    violations = validate_user_creation("tomdoe", "12345678", date(2008, 6, 16), today=TODAY)
    assert [v.key for v in violations] == ["INVALID_DOB"]


def test_sixteenth_birthday_is_accepted():
    assert validate_user_creation("tomdoe", "12345678", date(2008, 6, 15), today=TODAY) == []


def test_update_only_checks_present_fields():
    assert validate_user_update(None, None, today=TODAY) == []
    assert [v.key for v in validate_user_update("short", None, today=TODAY)] == [
        "INVALID_PASSWORD"
    ]


def test_resolve_substitutes_attributes():
    error_code, message = resolve_violation(Violation("username", "INVALID_USERNAME", {"min": 3}))
    assert error_code is ErrorCode.INVALID_USERNAME
    assert message == "Username must be at least 3 characters"


def test_resolve_unknown_key_falls_back_to_invalid_key():
    error_code, message = resolve_violation(Violation("email", "NOT_A_REAL_KEY"))
    assert error_code is ErrorCode.INVALID_KEY
    assert message == "Invalid key"


def test_raise_reports_first_violation():
    violations = validate_user_creation("to", "short", None, today=TODAY)
    with pytest.raises(ValidationError) as exc_info:
        raise_for_violations(violations)
    assert exc_info.value.code == 1003
    assert exc_info.value.message == "Username must be at least 3 characters"
    assert exc_info.value.detail == {"fields": ["username", "password", "dob"]}


def test_raise_is_noop_without_violations():
    raise_for_violations([])


def test_message_defaults_render_minimums():
    assert ErrorCode.INVALID_PASSWORD.message == "Password must be at least 8 characters"
    assert ErrorCode.INVALID_DOB.message == "Your age must be at least 16"
