"""
Authentication engine: token codec, flow checks, providers, session manager
and the request router.
"""

from authflow.auth.engine import Auth
from authflow.auth.session import NewSession, SessionManager
from authflow.auth.tokens import JWTOptions

__all__ = ["Auth", "JWTOptions", "NewSession", "SessionManager"]
