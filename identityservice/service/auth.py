from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, List, Optional, Protocol

from argon2 import PasswordHasher, Type
from argon2.exceptions import InvalidHashError, VerificationError

from identityservice.config import Settings
from identityservice.logging import get_logger
from identityservice.service.authorization import (
    AuthContext,
    authorities_from_scope,
    build_scope,
)
from identityservice.service.errors import (
    AuthenticationError,
    InvalidTokenError,
    NotFoundError,
)
from identityservice.service.tokens import TokenCodec
from identityservice.storage.models import User
from identityservice.storage.redis_cache import RedisCache

logger = get_logger(__name__)


class CredentialStore(Protocol):
    def create_user(
        self,
        username: str,
        password_hash: str,
        *,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        dob: Any = None,
        roles: Optional[Iterable[str]] = None,
    ) -> User: ...

    def get_user(self, user_id: str) -> Optional[User]: ...

    def get_user_by_username(self, username: str) -> Optional[User]: ...

    def exists_by_username(self, username: str) -> bool: ...

    def list_users(self) -> List[User]: ...

    def update_user(self, user_id: str, changes: dict) -> Optional[User]: ...

    def delete_user(self, user_id: str) -> bool: ...


@dataclass
class TokenPair:
    access_token: str
    refresh_token: str
    authenticated: bool = True


class AuthService:
    """Login, introspection, refresh and logout over HS512 tokens.

    The refresh registry lives in Redis when a cache is configured. Without
    one (tests, local development) an in-process dict with the same
    get / set-with-TTL / delete semantics stands in.
    """

    def __init__(
        self,
        store: CredentialStore,
        cache: Optional[RedisCache],
        settings: Settings,
    ) -> None:
        self.store: CredentialStore = store
        self.cache = cache
        self.settings = settings
        self.codec = TokenCodec(settings.jwt_signer_key)
        self._state_lock = threading.Lock()
        # username -> (refresh token, expires_at); used only when cache is None
        self._refresh_tokens: dict[str, tuple[str, datetime]] = {}
        self._pwd_hasher = PasswordHasher(type=Type.ID)
        self.logger = logger

    def _now(self) -> datetime:
        """Timezone-aware UTC helper to avoid naive datetime usage."""

        return datetime.now(timezone.utc)

    @property
    def access_ttl(self) -> timedelta:
        return timedelta(minutes=self.settings.access_token_ttl_minutes)

    @property
    def refresh_ttl(self) -> timedelta:
        return timedelta(minutes=self.settings.refresh_token_ttl_minutes)

    def hash_password(self, password: str) -> str:
        return self._pwd_hasher.hash(password)

    def verify_password(self, user: User, password: str) -> bool:
        try:
            return self._pwd_hasher.verify(user.password_hash, password)
        except (InvalidHashError, VerificationError):
            return False

    async def authenticate(self, username: str, password: str) -> TokenPair:
        user = self.store.get_user_by_username(username)
        if not user:
            raise NotFoundError()
        if not self.verify_password(user, password):
            self.logger.warning("password_verification_failed", username=username)
            raise AuthenticationError()

        access_token = self._issue_access_token(user)
        refresh_token = self._issue_refresh_token(user)
        await self._store_refresh_token(user.username, refresh_token)
        self.logger.info("user_authenticated", username=user.username)
        return TokenPair(access_token=access_token, refresh_token=refresh_token)

    def introspect(self, token: str) -> bool:
        """Report whether ``token`` is well signed and unexpired.

        A token with a bad signature or a past expiry is simply invalid; only
        input that cannot be decoded at all raises ``InvalidTokenError``.
        """
        parsed = self.codec.parse(token)
        if not self.codec.signature_valid(parsed):
            return False
        return not self.codec.is_expired(parsed.claims)

    async def refresh(self, refresh_token: str) -> TokenPair:
        """Mint a new access token; the refresh token itself is not rotated."""
        try:
            username = await self._verify_registered_refresh_token(refresh_token)
            user = self.store.get_user_by_username(username)
            if not user:
                raise NotFoundError()
            access_token = self._issue_access_token(user)
        except Exception as exc:
            # Malformed, expired, revoked and orphaned tokens all look the same
            self.logger.info("refresh_rejected", reason=type(exc).__name__)
            raise AuthenticationError() from exc
        self.logger.info("access_token_refreshed", username=username)
        return TokenPair(access_token=access_token, refresh_token=refresh_token)

    async def logout(self, refresh_token: str) -> None:
        try:
            username = await self._verify_registered_refresh_token(refresh_token)
            await self._delete_refresh_token(username)
        except Exception as exc:
            self.logger.info("logout_rejected", reason=type(exc).__name__)
            raise AuthenticationError() from exc
        self.logger.info("user_logged_out", username=username)

    async def revoke_refresh_token(self, username: str) -> None:
        """Drop the registered refresh token for ``username``, if any."""
        await self._delete_refresh_token(username)
        self.logger.info("refresh_token_revoked", username=username)

    def resolve_caller(self, authorization: Optional[str]) -> AuthContext:
        """Turn an ``Authorization: Bearer`` header into the caller identity."""
        token = self._extract_bearer(authorization)
        if not token:
            raise AuthenticationError()
        try:
            claims = self.codec.verify(token)
        except InvalidTokenError as exc:
            raise AuthenticationError() from exc
        if self.codec.is_expired(claims):
            raise AuthenticationError()
        if claims.get("iss") != self.settings.jwt_issuer:
            raise AuthenticationError()
        # Only access tokens carry a scope claim
        scope = claims.get("scope")
        if not isinstance(scope, str):
            raise AuthenticationError()
        return AuthContext(
            username=claims["sub"],
            authorities=authorities_from_scope(scope),
        )

    def _issue_access_token(self, user: User) -> str:
        now = self._now()
        return self.codec.issue(
            user.username,
            self.settings.jwt_issuer,
            now,
            now + self.access_ttl,
            scope=build_scope(user.roles),
        )

    def _issue_refresh_token(self, user: User) -> str:
        now = self._now()
        return self.codec.issue(
            user.username,
            self.settings.jwt_issuer,
            now,
            now + self.refresh_ttl,
        )

    async def _verify_registered_refresh_token(self, refresh_token: str) -> str:
        """Return the token's subject if it is the one currently registered."""
        claims = self.codec.verify(refresh_token)
        if self.codec.is_expired(claims):
            raise AuthenticationError()
        username = claims["sub"]
        stored = await self._get_refresh_token(username)
        if stored is None or stored != refresh_token:
            raise AuthenticationError()
        return username

    async def _store_refresh_token(self, username: str, token: str) -> None:
        ttl_seconds = int(self.refresh_ttl.total_seconds())
        if self.cache:
            await self.cache.store_refresh_token(username, token, ttl_seconds)
            return
        with self._state_lock:
            self._refresh_tokens[username] = (token, self._now() + self.refresh_ttl)

    async def _get_refresh_token(self, username: str) -> Optional[str]:
        if self.cache:
            return await self.cache.get_refresh_token(username)
        with self._state_lock:
            entry = self._refresh_tokens.get(username)
            if not entry:
                return None
            token, expires_at = entry
            if expires_at <= self._now():
                self._refresh_tokens.pop(username, None)
                return None
            return token

    async def _delete_refresh_token(self, username: str) -> None:
        if self.cache:
            await self.cache.delete_refresh_token(username)
            return
        with self._state_lock:
            self._refresh_tokens.pop(username, None)

    def _extract_bearer(self, header: Optional[str]) -> Optional[str]:
        if not header:
            return None
        lower = header.lower()
        if not lower.startswith("bearer "):
            return None
        return header.split(" ", 1)[1].strip()
