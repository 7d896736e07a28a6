"""
authflow: authentication orchestration for OAuth 2.0, OpenID Connect and
first-party logins, with sessions carried in signed cookies.
"""

from authflow.auth import Auth, NewSession, SessionManager
from authflow.auth.providers import (
    Credentials,
    Discord,
    Email,
    Facebook,
    GitHub,
    Google,
    OAuthProvider,
    OIDCProvider,
    Twitch,
)
from authflow.exceptions import (
    AuthError,
    CallbackContractError,
    ConfigurationError,
    TokenError,
    UpstreamError,
    ValidationError,
)
from authflow.models import Cookie, CookieOptions, InternalRequest, InternalResponse

__version__ = "0.1.0"

__all__ = [
    "Auth",
    "NewSession",
    "SessionManager",
    "Credentials",
    "Discord",
    "Email",
    "Facebook",
    "GitHub",
    "Google",
    "OAuthProvider",
    "OIDCProvider",
    "Twitch",
    "AuthError",
    "CallbackContractError",
    "ConfigurationError",
    "TokenError",
    "UpstreamError",
    "ValidationError",
    "Cookie",
    "CookieOptions",
    "InternalRequest",
    "InternalResponse",
]
