"""Role-derived authorities and the guards that enforce them.

Issuance (``build_scope``) and enforcement (``authorities_from_scope``) both
live here so the ``ROLE_`` prefix can only be applied in one place.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, Optional, TypeVar

from identityservice.logging import get_logger
from identityservice.service.errors import AccessDeniedError

logger = get_logger(__name__)

ROLE_PREFIX = "ROLE_"
ADMIN_ROLE = "ADMIN"
USER_ROLE = "USER"

T = TypeVar("T")


@dataclass(frozen=True)
class AuthContext:
    """Identity of the caller, resolved once per request from its access token."""

    username: str
    authorities: FrozenSet[str] = field(default_factory=frozenset)

    def has_role(self, role: str) -> bool:
        return authority_for(role) in self.authorities


def authority_for(role: str) -> str:
    return f"{ROLE_PREFIX}{role}"


def is_valid_role_name(name: str) -> bool:
    """Role names travel space-delimited in ``scope`` and must not contain whitespace."""
    return bool(name) and not any(ch.isspace() for ch in name)


def build_scope(roles: Iterable[str]) -> str:
    # A name with whitespace would split into several authorities on the way back
    return " ".join(sorted({role for role in roles if is_valid_role_name(role)}))


def authorities_from_scope(scope: Optional[str]) -> FrozenSet[str]:
    if not scope:
        return frozenset()
    return frozenset(authority_for(role) for role in scope.split())


def require_role(caller: AuthContext, role: str) -> None:
    """Pre-check: raise before the guarded operation runs."""
    if not caller.has_role(role):
        logger.warning("access_denied_missing_role", username=caller.username, role=role)
        raise AccessDeniedError()


def authorize_owner(
    caller: AuthContext,
    owner_username: str,
    result: T,
    *,
    elevated_role: str = ADMIN_ROLE,
) -> T:
    """Post-check: release ``result`` only to its owner or an elevated caller.

    On denial the result is dropped and never reaches the caller.
    """
    if owner_username == caller.username or caller.has_role(elevated_role):
        return result
    logger.warning(
        "access_denied_not_owner",
        username=caller.username,
        owner=owner_username,
    )
    raise AccessDeniedError()
