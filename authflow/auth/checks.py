"""
OAuth flow checks: state, PKCE and nonce.

Each check is created at login time (a random value plus a short-lived signed
cookie that carries it) and used at callback time (the cookie is verified,
compared with what came back, and cleared). Nothing is kept in server memory.
"""

import base64
import hashlib
import hmac
import logging
import secrets
from typing import Optional, Tuple

from authflow.auth.cookies import CookieOption
from authflow.exceptions import TokenError, ValidationError
from authflow.models import Cookie, InternalRequest

logger = logging.getLogger(__name__)

STATE = "state"
PKCE = "pkce"
NONCE = "nonce"

CHECKS = (STATE, PKCE, NONCE)


# =============================================================================
# Random Values
# =============================================================================

def generate_state() -> str:
    return secrets.token_urlsafe(32)


def generate_nonce() -> str:
    return secrets.token_urlsafe(32)


def generate_code_verifier() -> str:
    """
    Generate a cryptographically random code verifier for PKCE.

    Returns:
        Base64-URL-encoded random string (43 characters)
    """
    verifier_bytes = secrets.token_bytes(32)
    return base64.urlsafe_b64encode(verifier_bytes).decode('utf-8').rstrip('=')


def generate_code_challenge(verifier: str) -> str:
    """
    Generate code challenge from verifier using S256 method.

    Returns:
        Base64-URL-encoded SHA256 hash of verifier
    """
    digest = hashlib.sha256(verifier.encode('utf-8')).digest()
    return base64.urlsafe_b64encode(digest).decode('utf-8').rstrip('=')


def constant_time_equals(a: Optional[str], b: Optional[str]) -> bool:
    if not a or not b:
        return False
    return hmac.compare_digest(a.encode('utf-8'), b.encode('utf-8'))


# =============================================================================
# Signed Check Cookies
# =============================================================================

def _sign_cookie(provider, option: CookieOption, value: str) -> Cookie:
    token = provider.jwt.sign({"value": value}, provider.check_max_age)
    return option.set(token, max_age=provider.check_max_age)


def _read_cookie(request: InternalRequest, provider, option: CookieOption, label: str) -> str:
    raw = request.cookies.get(option.name)
    if not raw:
        raise ValidationError(f"{label} cookie was missing.")

    try:
        payload = provider.jwt.verify(raw)
    except TokenError as e:
        raise ValidationError(f"{label} cookie could not be verified: {e.message}") from e

    value = payload.get("value") if isinstance(payload, dict) else None
    if not value:
        raise ValidationError(f"{label} value could not be parsed.")
    return value


# =============================================================================
# State
# =============================================================================

def create_state(provider) -> Tuple[str, Cookie]:
    value = generate_state()
    return value, _sign_cookie(provider, provider.cookies.state, value)


def use_state(request: InternalRequest, provider) -> Tuple[str, Cookie]:
    """
    Compare the ``state`` query parameter with the state cookie.

    Always enforced, whatever the provider lists in ``checks``. Returns the
    state and a cookie clearing the container.

    Raises:
        ValidationError: If the cookie or parameter is missing, or they differ
    """
    expected = _read_cookie(request, provider, provider.cookies.state, "State")
    received = request.query.get("state")

    if not received:
        raise ValidationError("Missing state parameter.")

    if not constant_time_equals(received, expected):
        logger.warning(f"State mismatch on callback for provider '{provider.id}'")
        raise ValidationError("Invalid state parameter. This may be a CSRF attack or an expired login.")

    return expected, provider.cookies.state.clear()


# =============================================================================
# PKCE
# =============================================================================

def create_pkce(provider) -> Tuple[str, Cookie]:
    """Returns the S256 code challenge and the cookie holding the verifier."""
    verifier = generate_code_verifier()
    challenge = generate_code_challenge(verifier)
    return challenge, _sign_cookie(provider, provider.cookies.pkce_code_verifier, verifier)


def use_pkce(request: InternalRequest, provider) -> Tuple[Optional[str], Optional[Cookie]]:
    if PKCE not in provider.checks:
        return None, None

    verifier = _read_cookie(request, provider, provider.cookies.pkce_code_verifier, "PKCE code_verifier")
    return verifier, provider.cookies.pkce_code_verifier.clear()


# =============================================================================
# Nonce
# =============================================================================

def create_nonce(provider) -> Tuple[str, Cookie]:
    value = generate_nonce()
    return value, _sign_cookie(provider, provider.cookies.nonce, value)


def use_nonce(request: InternalRequest, provider) -> Tuple[Optional[str], Optional[Cookie]]:
    if NONCE not in provider.checks:
        return None, None

    nonce = _read_cookie(request, provider, provider.cookies.nonce, "Nonce")
    return nonce, provider.cookies.nonce.clear()


def validate_nonce(claims: dict, expected_nonce: Optional[str]) -> None:
    """
    Raises:
        ValidationError: If a nonce was expected and the ID token's differs
    """
    if expected_nonce is None:
        return
    if not constant_time_equals(claims.get("nonce"), expected_nonce):
        raise ValidationError("Nonce mismatch. Please try again.")
