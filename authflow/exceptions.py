"""
Exceptions raised inside the engine.

Providers and the router convert these into ``InternalResponse.error`` at
their boundary; they only escape to callers from constructors
(``ConfigurationError``) and from the Token Codec (``TokenError``).
"""

from typing import Optional


class AuthError(Exception):
    """Base exception for authflow errors"""

    status_code: int = 500

    def __init__(self, message: str = "", *, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        return {"error": type(self).__name__, "message": self.message}


class ValidationError(AuthError):
    """State / PKCE / nonce mismatch or a malformed callback request."""

    status_code = 400


class UpstreamError(AuthError):
    """Token, userinfo, discovery or JWKS endpoint failed or was unreachable."""

    status_code = 502


class TokenError(AuthError):
    """Signature, structure or expiry failure while verifying a token."""

    status_code = 401


class CallbackContractError(AuthError):
    """A caller-supplied callback raised or returned something unusable."""

    status_code = 500


class ConfigurationError(AuthError):
    """The engine was configured inconsistently."""


__all__ = [
    "AuthError",
    "ValidationError",
    "UpstreamError",
    "TokenError",
    "CallbackContractError",
    "ConfigurationError",
]
