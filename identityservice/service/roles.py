from __future__ import annotations

from typing import List, Optional

from identityservice.logging import get_logger
from identityservice.service.authorization import (
    ADMIN_ROLE,
    USER_ROLE,
    AuthContext,
    require_role,
)
from identityservice.service.validation import raise_for_violations, validate_role_name
from identityservice.storage.memory import MemoryStore
from identityservice.storage.models import Role

logger = get_logger(__name__)

DEFAULT_ROLES = {
    USER_ROLE: "User role",
    ADMIN_ROLE: "Admin role",
}


class RoleService:
    def __init__(self, store: MemoryStore) -> None:
        self.store = store

    def create(
        self, caller: AuthContext, name: str, description: Optional[str] = None
    ) -> Role:
        require_role(caller, ADMIN_ROLE)
        raise_for_violations(validate_role_name(name))
        role = self.store.save_role(name, description)
        logger.info("role_saved", role=name, actor=caller.username)
        return role

    def list(self, caller: AuthContext) -> List[Role]:
        require_role(caller, ADMIN_ROLE)
        return self.store.list_roles()

    def delete(self, caller: AuthContext, name: str) -> None:
        """Remove a role and strip it from every user; unknown names are a no-op."""
        require_role(caller, ADMIN_ROLE)
        self.store.delete_role(name)

    def seed_defaults(self) -> None:
        for name, description in DEFAULT_ROLES.items():
            if self.store.get_role(name) is None:
                self.store.save_role(name, description)
