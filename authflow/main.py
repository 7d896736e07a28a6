"""
FastAPI Application Factory
===========================

Mounts an ``Auth`` engine on a FastAPI application:

    Client → AuthMiddleware (login, callback, logout, refresh) → application routes

Routes:
    - /auth/*   : Handled by the engine through ``AuthMiddleware``
    - /health   : Health check endpoint

Running the Service:
    Build the engine in your own module and hand it to ``create_app``:

        auth = Auth(session=SessionManager(...), providers=[GitHub(...)])
        app = create_app(auth)

    then ``uvicorn yourmodule:app``, or call ``serve(app)``.
"""

import logging
import sys
from typing import Dict, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from authflow.auth.engine import Auth
from authflow.config import Settings, get_settings
from authflow.integrations.fastapi import AuthMiddleware

logger = logging.getLogger(__name__)


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s", "module": "%(module)s", "function": "%(funcName)s"}',
        handlers=[logging.StreamHandler(sys.stdout)]
    )


def create_app(auth: Auth, settings: Optional[Settings] = None) -> FastAPI:
    """
    Application factory function.

    Creates a FastAPI application with:
        - ``AuthMiddleware`` running ``auth`` on every request
        - A health check route
        - A global exception handler

    Returns:
        FastAPI: Configured application instance
    """
    settings = settings or get_settings()
    setup_logging(settings.LOG_LEVEL)

    app = FastAPI(
        title="authflow",
        description="Authentication orchestration for OAuth, OIDC and credentials logins",
        version="0.1.0",
    )
    app.add_middleware(AuthMiddleware, auth=auth)
    app.state.auth = auth

    @app.get("/health", tags=["System"])
    async def health_check() -> Dict[str, str]:
        return {
            "status": "ok",
            "providers": ",".join(auth.providers),
        }

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Log unhandled errors and return a standardized error response.
        """
        logger.error(
            f"Unhandled exception: {str(exc)}",
            extra={
                "path": request.url.path,
                "method": request.method,
                "exception_type": type(exc).__name__
            },
            exc_info=True
        )

        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred",
                "detail": str(exc) if settings.LOG_LEVEL == "DEBUG" else None
            }
        )

    logger.info(
        "authflow application created",
        extra={"providers": list(auth.providers), "log_level": settings.LOG_LEVEL}
    )
    return app


def serve(app: FastAPI, host: str = "0.0.0.0", port: int = 8080) -> None:
    """Run ``app`` with uvicorn."""
    settings = get_settings()
    uvicorn.run(app, host=host, port=port, log_level=settings.LOG_LEVEL.lower())
