import pytest

from identityservice.service.authorization import (
    AuthContext,
    authorities_from_scope,
    authorize_owner,
    build_scope,
    is_valid_role_name,
    require_role,
)
from identityservice.service.errors import AccessDeniedError


def _caller(username: str, scope: str) -> AuthContext:
    return AuthContext(username=username, authorities=authorities_from_scope(scope))


def test_scope_is_sorted_and_space_delimited():
    assert build_scope({"USER", "ADMIN"}) == "ADMIN USER"
    assert build_scope([]) == ""


def test_authorities_carry_role_prefix():
    assert authorities_from_scope("ADMIN USER") == frozenset({"ROLE_ADMIN", "ROLE_USER"})
    assert authorities_from_scope("") == frozenset()
    assert authorities_from_scope(None) == frozenset()


def test_issued_scope_round_trips_to_roles():
    caller = _caller("alice", build_scope({"USER", "ADMIN"}))
    assert caller.has_role("ADMIN")
    assert caller.has_role("USER")
    assert not caller.has_role("AUDITOR")


def test_require_role_passes_for_admin():
    require_role(_caller("root", "ADMIN"), "ADMIN")


def test_require_role_denies_plain_user():
    with pytest.raises(AccessDeniedError) as exc_info:
        require_role(_caller("alice", "USER"), "ADMIN")
    assert exc_info.value.code == 1008
    assert exc_info.value.status_code == 403


def test_owner_receives_result():
    result = {"id": "1"}
    assert authorize_owner(_caller("alice", "USER"), "alice", result) is result


def test_admin_receives_other_users_result():
    result = {"id": "1"}
    assert authorize_owner(_caller("root", "ADMIN"), "alice", result) is result


def test_other_user_is_denied():
    with pytest.raises(AccessDeniedError):
        authorize_owner(_caller("bob", "USER"), "alice", {"id": "1"})


def test_empty_scope_grants_nothing():
    with pytest.raises(AccessDeniedError):
        authorize_owner(_caller("bob", ""), "alice", object())


@pytest.mark.parametrize("name", ["SUPER ADMIN", "A\tB", "X\n", ""])
def test_role_names_with_whitespace_are_invalid(name):
    assert not is_valid_role_name(name)


def test_plain_role_name_is_valid():
    assert is_valid_role_name("AUDITOR")


def test_whitespace_role_cannot_smuggle_admin_into_scope():
    scope = build_scope({"USER", "SUPER ADMIN"})
    assert scope == "USER"
    assert not _caller("alice", scope).has_role("ADMIN")
