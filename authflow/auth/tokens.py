"""
Token Codec
===========

Signs and verifies the compact tokens carried in engine cookies (session,
refresh, state, PKCE verifier, nonce). Tokens are HMAC-signed JWTs; the
caller's payload lives under the ``data`` claim next to ``iat`` and ``exp``.

Both functions are pure: the secret and clock are supplied by the caller.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import jwt
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError
from pydantic import BaseModel, Field

from authflow.exceptions import TokenError

logger = logging.getLogger(__name__)

DEFAULT_ALGORITHM = "HS256"

SUPPORTED_ALGORITHMS = ("HS256", "HS384", "HS512")

PAYLOAD_CLAIM = "data"


# =============================================================================
# Token Creation
# =============================================================================

def sign(
    payload: Any,
    secret: str,
    max_age: int,
    *,
    algorithm: str = DEFAULT_ALGORITHM,
    issued_at: Optional[datetime] = None,
) -> str:
    """
    Sign ``payload`` into a token that expires ``max_age`` seconds after
    ``issued_at`` (now when omitted).

    Args:
        payload: Any JSON-serializable value
        secret: Signing secret
        max_age: Lifetime in seconds
        algorithm: One of HS256, HS384, HS512
        issued_at: Override the issue time (deterministic signing, tests)

    Returns:
        Encoded token string

    Raises:
        TokenError: If the secret or algorithm is unusable, or the payload
            cannot be serialized
    """
    if not secret:
        raise TokenError("Token secret is not configured")
    if algorithm not in SUPPORTED_ALGORITHMS:
        raise TokenError(f"Unsupported token algorithm: {algorithm}")

    now = issued_at or datetime.now(timezone.utc)
    claims = {
        PAYLOAD_CLAIM: payload,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(seconds=max_age)).timestamp()),
    }

    try:
        return jwt.encode(claims, secret, algorithm=algorithm)
    except (TypeError, ValueError) as e:
        raise TokenError(f"Failed to sign token: {e}") from e


# =============================================================================
# Token Verification
# =============================================================================

def verify(
    token: Optional[str],
    secret: str,
    *,
    algorithm: str = DEFAULT_ALGORITHM,
    leeway: int = 0,
) -> Any:
    """
    Verify a token produced by :func:`sign` and return its payload.

    Raises:
        TokenError: On a missing token, signature mismatch, malformed
            structure, missing claims, or expiry in the past
    """
    if not token:
        raise TokenError("No token provided")
    if not secret:
        raise TokenError("Token secret is not configured")

    try:
        decoded = jwt.decode(
            token,
            secret,
            algorithms=[algorithm],
            leeway=leeway,
            options={
                "verify_signature": True,
                "verify_exp": True,
                "require": ["exp", "iat"],
            },
        )
    except ExpiredSignatureError as e:
        raise TokenError("Token has expired") from e
    except InvalidTokenError as e:
        raise TokenError(f"Invalid token: {e}") from e

    if PAYLOAD_CLAIM not in decoded:
        raise TokenError(f"Token is missing the '{PAYLOAD_CLAIM}' claim")

    return decoded[PAYLOAD_CLAIM]


def verify_or_none(token: Optional[str], secret: str, **kwargs) -> Any:
    """Like :func:`verify`, but returns ``None`` instead of raising."""
    if not token:
        return None
    try:
        return verify(token, secret, **kwargs)
    except TokenError as e:
        logger.debug(f"Rejected token: {e}")
        return None


# =============================================================================
# Bound Options
# =============================================================================

class JWTOptions(BaseModel):
    """Secret and algorithm shared by the session manager and providers."""
    secret: str = Field(default="", repr=False)
    algorithm: str = Field(default=DEFAULT_ALGORITHM)
    leeway: int = Field(default=0, ge=0)

    def sign(self, payload: Any, max_age: int) -> str:
        return sign(payload, self.secret, max_age, algorithm=self.algorithm)

    def verify(self, token: Optional[str]) -> Any:
        return verify(token, self.secret, algorithm=self.algorithm, leeway=self.leeway)

    def verify_or_none(self, token: Optional[str]) -> Any:
        return verify_or_none(token, self.secret, algorithm=self.algorithm, leeway=self.leeway)


__all__ = [
    "JWTOptions",
    "sign",
    "verify",
    "verify_or_none",
    "DEFAULT_ALGORITHM",
    "SUPPORTED_ALGORITHMS",
]
