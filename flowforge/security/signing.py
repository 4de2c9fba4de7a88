"""Signature verification for deliveries from the external scheduler.

A delivery carries a JWT signed (HS256) with one of two signing keys. The
token's claims bind it to the issuer, the destination URL and a SHA-256
digest of the exact request body.
"""

from __future__ import annotations

import base64
import hashlib
import logging
import time
import uuid
from typing import Any, Optional

import jwt

from ..errors import AuthError

logger = logging.getLogger(__name__)

DEFAULT_ISSUER = "Upstash"


def body_digest(body: bytes | str) -> str:
    """Unpadded base64url SHA-256 of ``body``."""
    if isinstance(body, str):
        body = body.encode("utf-8")
    digest = hashlib.sha256(body).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


def sign(
    signing_key: str,
    body: bytes | str,
    url: str,
    issuer: str = DEFAULT_ISSUER,
    ttl_seconds: int = 300,
    now: Optional[float] = None,
) -> str:
    """Produce a signature that :class:`SigningKeyVerifier` accepts."""

    issued_at = int(now if now is not None else time.time())
    claims = {
        "iss": issuer,
        "sub": url,
        "iat": issued_at,
        "nbf": issued_at,
        "exp": issued_at + ttl_seconds,
        "jti": uuid.uuid4().hex,
        "body": body_digest(body),
    }
    return jwt.encode(claims, signing_key, algorithm="HS256")


class SigningKeyVerifier:
    """Accept a signature when either the current or the next key validates it."""

    def __init__(
        self,
        current_key: Optional[str],
        next_key: Optional[str],
        issuer: str = DEFAULT_ISSUER,
        clock_tolerance: int = 5,
    ) -> None:
        self.keys = [k for k in (current_key, next_key) if k]
        self.issuer = issuer
        self.clock_tolerance = clock_tolerance

    def verify(
        self, signature: Optional[str], body: bytes | str, url: Optional[str] = None
    ) -> dict[str, Any]:
        """Return the verified claims or raise :class:`AuthError`."""

        if not signature:
            raise AuthError("Missing signature")
        if not self.keys:
            raise AuthError("No signing keys configured")

        failures = []
        for key in self.keys:
            try:
                return self._verify_with_key(key, signature, body, url)
            except (jwt.InvalidTokenError, AuthError) as e:
                failures.append(str(e))
        logger.warning(f"Signature verification failed: {'; '.join(failures)}")
        raise AuthError("Invalid signature")

    def _verify_with_key(
        self, key: str, signature: str, body: bytes | str, url: Optional[str]
    ) -> dict[str, Any]:
        claims = jwt.decode(
            signature,
            key,
            algorithms=["HS256"],
            issuer=self.issuer,
            leeway=self.clock_tolerance,
            options={"require": ["iss", "sub", "exp", "nbf", "body"]},
        )
        if url is not None and claims["sub"] != url:
            raise AuthError(f"Invalid subject {claims['sub']!r}, expected {url!r}")
        if str(claims["body"]).rstrip("=") != body_digest(body):
            raise AuthError("Body digest does not match")
        return claims
