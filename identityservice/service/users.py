from __future__ import annotations

from datetime import date
from typing import Iterable, List, Optional

from identityservice.logging import get_logger
from identityservice.service.auth import AuthService
from identityservice.service.authorization import (
    ADMIN_ROLE,
    USER_ROLE,
    AuthContext,
    authorize_owner,
    require_role,
)
from identityservice.service.errors import ConflictError, NotFoundError
from identityservice.service.validation import (
    raise_for_violations,
    validate_user_creation,
    validate_user_update,
)
from identityservice.storage.memory import MemoryStore
from identityservice.storage.models import User

logger = get_logger(__name__)


class UserService:
    """Registration and profile management on top of the credential store.

    Every operation that reveals or mutates another account takes the
    caller's ``AuthContext`` and applies the owner-or-admin rule.
    """

    def __init__(self, store: MemoryStore, auth: AuthService) -> None:
        self.store = store
        self.auth = auth

    def create_user(
        self,
        username: str,
        password: str,
        *,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        dob: Optional[date] = None,
    ) -> User:
        raise_for_violations(validate_user_creation(username, password, dob))
        if self.store.exists_by_username(username):
            raise ConflictError()
        user = self.store.create_user(
            username,
            self.auth.hash_password(password),
            first_name=first_name,
            last_name=last_name,
            dob=dob,
            roles=[USER_ROLE],
        )
        logger.info("user_created", user_id=user.id, username=username)
        return user

    def get_my_info(self, caller: AuthContext) -> User:
        user = self.store.get_user_by_username(caller.username)
        if not user:
            raise NotFoundError()
        return user

    def list_users(self, caller: AuthContext) -> List[User]:
        require_role(caller, ADMIN_ROLE)
        return self.store.list_users()

    def get_user(self, caller: AuthContext, user_id: str) -> User:
        user = self._require_user(user_id)
        return authorize_owner(caller, user.username, user)

    def update_user(
        self,
        caller: AuthContext,
        user_id: str,
        *,
        password: Optional[str] = None,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        dob: Optional[date] = None,
        roles: Optional[Iterable[str]] = None,
    ) -> User:
        """Apply a partial update; ``None`` leaves a field unchanged.

        ``roles`` replaces the whole role set and is admin-only. Names that
        do not match an existing role are dropped.
        """
        user = self._require_user(user_id)
        authorize_owner(caller, user.username, user)
        raise_for_violations(validate_user_update(password, dob))

        changes: dict = {}
        if password is not None:
            changes["password_hash"] = self.auth.hash_password(password)
        if first_name is not None:
            changes["first_name"] = first_name
        if last_name is not None:
            changes["last_name"] = last_name
        if dob is not None:
            changes["dob"] = dob
        if roles is not None:
            require_role(caller, ADMIN_ROLE)
            changes["roles"] = {
                name for name in roles if self.store.get_role(name) is not None
            }

        updated = self.store.update_user(user_id, changes)
        if not updated:
            raise NotFoundError()
        logger.info(
            "user_updated",
            user_id=user_id,
            fields=sorted(changes),
            actor=caller.username,
        )
        return updated

    async def delete_user(self, caller: AuthContext, user_id: str) -> None:
        user = self._require_user(user_id)
        authorize_owner(caller, user.username, user)
        if not self.store.delete_user(user_id):
            raise NotFoundError()
        # The username may be registered again; its old refresh token must not carry over
        await self.auth.revoke_refresh_token(user.username)
        logger.info("user_deleted", user_id=user_id, actor=caller.username)

    def ensure_admin(self, username: str, password: str) -> Optional[User]:
        """Create the bootstrap admin account unless it already exists."""
        if self.store.exists_by_username(username):
            return None
        user = self.store.create_user(
            username,
            self.auth.hash_password(password),
            roles=[ADMIN_ROLE],
        )
        logger.warning(
            "default_admin_created",
            username=username,
            message="admin user has been created with the default password, please change it",
        )
        return user

    def _require_user(self, user_id: str) -> User:
        user = self.store.get_user(user_id)
        if not user:
            raise NotFoundError()
        return user
