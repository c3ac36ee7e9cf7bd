"""Compact HS512-signed JWTs.

Tokens are ``base64url(header).base64url(claims).base64url(mac)`` with the
padding stripped. The MAC is HMAC-SHA512 over ``header.claims`` keyed with the
shared signer key from settings.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from identityservice.logging import get_logger
from identityservice.service.errors import InvalidTokenError

logger = get_logger(__name__)

ALGORITHM = "HS512"


@dataclass(frozen=True)
class SignedToken:
    header: dict[str, Any]
    claims: dict[str, Any]
    signing_input: str
    signature: str


def _encode_segment(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("utf-8").rstrip("=")


def _decode_segment(segment: str) -> bytes:
    padding = "=" * ((4 - len(segment) % 4) % 4)
    return base64.urlsafe_b64decode(segment + padding)


def _epoch_seconds(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp())


class TokenCodec:
    def __init__(self, signer_key: str) -> None:
        self._key = signer_key.encode()

    def _sign(self, signing_input: str) -> str:
        digest = hmac.new(self._key, signing_input.encode(), hashlib.sha512).digest()
        return _encode_segment(digest)

    def issue(
        self,
        subject: str,
        issuer: str,
        issued_at: datetime,
        expiry: datetime,
        scope: Optional[str] = None,
    ) -> str:
        claims: dict[str, Any] = {
            "sub": subject,
            "iss": issuer,
            "iat": _epoch_seconds(issued_at),
            "exp": _epoch_seconds(expiry),
            "jti": str(uuid.uuid4()),
        }
        if scope is not None:
            claims["scope"] = scope
        header_enc = _encode_segment(
            json.dumps({"alg": ALGORITHM, "typ": "JWT"}, separators=(",", ":")).encode()
        )
        claims_enc = _encode_segment(json.dumps(claims, separators=(",", ":")).encode())
        signing_input = f"{header_enc}.{claims_enc}"
        return f"{signing_input}.{self._sign(signing_input)}"

    def parse(self, token: str) -> SignedToken:
        """Decode a token without checking its signature.

        Raises:
            InvalidTokenError: the token is not three segments of base64url
                JSON, is not HS512, or lacks a subject or expiration.
        """
        if not isinstance(token, str):
            raise InvalidTokenError(detail={"reason": "not_a_string"})
        try:
            header_b64, claims_b64, sig_b64 = token.split(".")
        except ValueError:
            raise InvalidTokenError(detail={"reason": "segment_count"}) from None
        try:
            header = json.loads(_decode_segment(header_b64))
            claims = json.loads(_decode_segment(claims_b64))
        except (binascii.Error, UnicodeDecodeError, ValueError) as exc:
            logger.warning("jwt_decode_failed", error=str(exc))
            raise InvalidTokenError(detail={"reason": "decode"}) from exc
        if not isinstance(header, dict) or not isinstance(claims, dict):
            raise InvalidTokenError(detail={"reason": "not_an_object"})
        # Reject anything but HS512 to prevent algorithm confusion
        if header.get("alg") != ALGORITHM:
            logger.warning("jwt_invalid_algorithm", alg=header.get("alg"))
            raise InvalidTokenError(detail={"reason": "algorithm"})
        if not isinstance(claims.get("sub"), str):
            raise InvalidTokenError(detail={"reason": "subject"})
        exp = claims.get("exp")
        if isinstance(exp, bool) or not isinstance(exp, (int, float)):
            raise InvalidTokenError(detail={"reason": "expiration"})
        return SignedToken(
            header=header,
            claims=claims,
            signing_input=f"{header_b64}.{claims_b64}",
            signature=sig_b64,
        )

    def signature_valid(self, parsed: SignedToken) -> bool:
        return hmac.compare_digest(
            self._sign(parsed.signing_input).encode(), parsed.signature.encode()
        )

    def verify(self, token: str) -> dict[str, Any]:
        parsed = self.parse(token)
        if not self.signature_valid(parsed):
            raise InvalidTokenError(detail={"reason": "signature"})
        return parsed.claims

    @staticmethod
    def is_expired(claims: dict[str, Any], now: Optional[float] = None) -> bool:
        """Expired iff the expiration instant lies strictly before ``now``."""
        current = time.time() if now is None else now
        return float(claims["exp"]) < current
