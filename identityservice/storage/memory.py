from __future__ import annotations

import threading
import uuid
from datetime import date
from typing import Any, Dict, Iterable, List, Optional

from identityservice.logging import get_logger
from identityservice.storage.errors import ConstraintViolation
from identityservice.storage.models import Role, User

_UPDATABLE_USER_FIELDS = frozenset(
    {"password_hash", "first_name", "last_name", "dob", "roles"}
)


class MemoryStore:
    """In-memory credential store holding user and role records."""

    def __init__(self) -> None:
        self.logger = get_logger(__name__)
        self.users: Dict[str, User] = {}
        self.roles: Dict[str, Role] = {}
        # RLock so store methods can call each other while holding it
        self._data_lock = threading.RLock()

    def create_user(
        self,
        username: str,
        password_hash: str,
        *,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        dob: Optional[date] = None,
        roles: Optional[Iterable[str]] = None,
    ) -> User:
        with self._data_lock:
            if self._find_by_username(username):
                raise ConstraintViolation(
                    "username already exists", {"field": "username"}
                )
            user = User(
                id=str(uuid.uuid4()),
                username=username,
                password_hash=password_hash,
                first_name=first_name,
                last_name=last_name,
                dob=dob,
                roles=set(roles or ()),
            )
            self.users[user.id] = user
            return user

    def _find_by_username(self, username: str) -> Optional[User]:
        return next((u for u in self.users.values() if u.username == username), None)

    def get_user(self, user_id: str) -> Optional[User]:
        with self._data_lock:
            return self.users.get(user_id)

    def get_user_by_username(self, username: str) -> Optional[User]:
        with self._data_lock:
            return self._find_by_username(username)

    def exists_by_username(self, username: str) -> bool:
        with self._data_lock:
            return self._find_by_username(username) is not None

    def list_users(self) -> List[User]:
        with self._data_lock:
            return sorted(self.users.values(), key=lambda u: u.created_at)

    def update_user(self, user_id: str, changes: Dict[str, Any]) -> Optional[User]:
        unknown = set(changes) - _UPDATABLE_USER_FIELDS
        if unknown:
            raise ValueError(f"cannot update user fields: {sorted(unknown)}")
        with self._data_lock:
            user = self.users.get(user_id)
            if not user:
                return None
            for name, value in changes.items():
                if name == "roles":
                    value = set(value)
                setattr(user, name, value)
            return user

    def delete_user(self, user_id: str) -> bool:
        with self._data_lock:
            return self.users.pop(user_id, None) is not None

    def save_role(self, name: str, description: Optional[str] = None) -> Role:
        with self._data_lock:
            role = Role(name=name, description=description)
            self.roles[name] = role
            return role

    def get_role(self, name: str) -> Optional[Role]:
        with self._data_lock:
            return self.roles.get(name)

    def list_roles(self) -> List[Role]:
        with self._data_lock:
            return sorted(self.roles.values(), key=lambda r: r.name)

    def delete_role(self, name: str) -> bool:
        with self._data_lock:
            if self.roles.pop(name, None) is None:
                return False
            for user in self.users.values():
                user.roles.discard(name)
            self.logger.info("role_deleted", role=name)
            return True
