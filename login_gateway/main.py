"""
FastAPI Login Gateway Application Factory
=========================================

Main entry point for the login gateway. It authenticates visitors against
UIC Shibboleth (or a local shibalike user list) and guards the application
routes behind a server-side session.

Routers:
    - {PRE_AUTH_URL}/login*   : Login, Shibboleth callback (federated)
    - /shibboleth.sso/metadata : Service provider metadata (federated, never prefixed)
    - {PRE_AUTH_URL}/logout   : End the session
    - {PRE_AUTH_URL}/user     : Details of the logged in user
    - /health                 : Health check endpoint
    - /                       : Static files from PUBLIC_ROOT, if present

Environment Variables Required:
    - DOMAIN: Public host name of this server (e.g., "test.uic.edu")
    - SECRET: Secret used to sign the session cookie
    - SHIBALIKE: Use local users instead of Shibboleth (default: false)
    - LOGFORMAT: Request log format: dev, combined or json (default: dev)
    - LOG_LEVEL: Logging level (default: INFO)

Running the Service:
    Both listeners (HTTPS + HTTP redirect in Shibboleth mode):
        login-gateway

    Development, local users only:
        SHIBALIKE=true uvicorn login_gateway.main:create_app --factory --reload
"""

import logging
import sys
import time
from contextlib import asynccontextmanager
from typing import Optional, Sequence

from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from starlette.middleware.sessions import SessionMiddleware

from login_gateway import __version__
from login_gateway.auth.dependencies import GatewayState
from login_gateway.auth.guard import AccessGuard
from login_gateway.auth.redirects import RedirectCoordinator
from login_gateway.auth.routes import build_auth_router, login_path
from login_gateway.auth.session import InMemorySessionStore, SessionManager, SessionStore
from login_gateway.auth.strategy import FEDERATED, Strategy, build_strategy
from login_gateway.config import Settings, get_settings, validate_configuration
from login_gateway.exceptions import (
    AuthFailure,
    ConfigurationError,
    LoginRequired,
    SessionUnavailable,
    UnhandledServerError,
)
from login_gateway.models import AuthErrorResponse, HealthResponse
from login_gateway.server import serve

logger = logging.getLogger(__name__)
access_logger = logging.getLogger("login_gateway.access")

JSON_LOG_FORMAT = (
    '{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", '
    '"message": "%(message)s", "module": "%(module)s", "function": "%(funcName)s"}'
)
PLAIN_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


# =============================================================================
# Logging
# =============================================================================

def setup_logging(log_level: str = "INFO", log_format: str = "dev") -> None:
    """
    Configure logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: ``json`` for structured lines, anything else for plain text
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format=JSON_LOG_FORMAT if log_format == "json" else PLAIN_LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )


def format_access_line(request: Request, status_code: int, elapsed_ms: float, log_format: str) -> str:
    """Render one request log line in the configured LOGFORMAT."""
    path = request.url.path
    if request.url.query:
        path += "?" + request.url.query

    if log_format == "combined":
        client = request.client.host if request.client else "-"
        timestamp = time.strftime("%d/%b/%Y:%H:%M:%S %z")
        referer = request.headers.get("referer", "-")
        agent = request.headers.get("user-agent", "-")
        return (
            f'{client} - - [{timestamp}] "{request.method} {path} HTTP/{request.scope.get("http_version", "1.1")}" '
            f'{status_code} - "{referer}" "{agent}"'
        )

    return f"{request.method} {path} {status_code} {elapsed_ms:.3f} ms"


# =============================================================================
# Application Factory
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Log startup/shutdown and surface configuration warnings."""
    gateway: GatewayState = app.state.gateway
    report = validate_configuration(gateway.settings)
    for warning in report["warnings"]:
        logger.warning(warning)

    logger.info(
        "Login gateway started",
        extra={
            "mode": gateway.strategy.kind,
            "strategy": gateway.strategy.name,
            "domain": gateway.settings.DOMAIN,
        }
    )

    yield

    logger.info("Login gateway shutdown complete")


def create_app(
    settings: Optional[Settings] = None,
    strategy: Optional[Strategy] = None,
    session_store: Optional[SessionStore] = None,
    routers: Optional[Sequence[APIRouter]] = None,
) -> FastAPI:
    """
    Application factory function.

    Args:
        settings: Gateway settings (defaults to the environment)
        strategy: Authentication strategy (defaults to build_strategy(settings))
        session_store: Session persistence (defaults to in-memory)
        routers: Application routers to mount; protect them with
                 ``Depends(require_identity)``

    Returns:
        FastAPI: Configured application instance

    Raises:
        ConfigurationError: If settings, key material or the user list are invalid
    """
    if settings is None:
        settings = get_settings()
    if strategy is None:
        strategy = build_strategy(settings)
    if session_store is None:
        session_store = InMemorySessionStore()

    app = FastAPI(
        title="Login Gateway",
        description="UIC Shibboleth / shibalike login gateway",
        version=__version__,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
    )

    app.state.gateway = GatewayState(
        settings=settings,
        strategy=strategy,
        sessions=SessionManager(session_store),
        guard=AccessGuard(login_path(settings)),
        coordinator=RedirectCoordinator(),
    )

    # The IdP posts the callback cross-site, so the cookie must allow it.
    federated = strategy.kind == FEDERATED
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.SECRET,
        session_cookie=settings.SESSION_COOKIE,
        max_age=settings.SESSION_MAX_AGE,
        same_site="none" if federated else "lax",
        https_only=federated,
    )

    @app.middleware("http")
    async def access_log(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000
        access_logger.info(
            format_access_line(request, response.status_code, elapsed_ms, settings.LOGFORMAT),
            extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": round(elapsed_ms, 3),
            }
        )
        return response

    app.include_router(build_auth_router(settings, strategy.kind))
    for router in routers or ():
        app.include_router(router)

    # Health check endpoint
    @app.get("/health", tags=["System"], response_model=HealthResponse)
    async def health_check() -> HealthResponse:
        return HealthResponse(status="ok", service="login-gateway", mode=strategy.kind)

    # =========================================================================
    # Exception Handlers
    # =========================================================================

    @app.exception_handler(LoginRequired)
    async def login_required_handler(request: Request, exc: LoginRequired) -> RedirectResponse:
        return RedirectResponse(url=exc.login_url, status_code=302)

    @app.exception_handler(AuthFailure)
    async def auth_failure_handler(request: Request, exc: AuthFailure) -> JSONResponse:
        logger.warning(
            "Login failed",
            extra={"path": request.url.path, "code": exc.code, "reason": exc.reason}
        )
        body = AuthErrorResponse(error=exc.code, message=exc.reason)
        return JSONResponse(status_code=401, content=body.model_dump())

    @app.exception_handler(SessionUnavailable)
    async def session_unavailable_handler(request: Request, exc: SessionUnavailable) -> JSONResponse:
        logger.error(
            f"Session store unavailable: {exc}",
            extra={"path": request.url.path, "method": request.method}
        )
        return JSONResponse(
            status_code=503,
            content={
                "error": "session_unavailable",
                "message": "Session storage is unavailable, please try again later",
            }
        )

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Global exception handler for unhandled errors.

        Logs the error with its traceback and returns a generic 500.
        """
        error = UnhandledServerError(exc)
        logger.error(
            f"Unhandled exception: {error}",
            extra={
                "path": request.url.path,
                "method": request.method,
                "exception_type": type(exc).__name__
            },
            exc_info=exc
        )
        return JSONResponse(
            status_code=500,
            content=error.to_payload(include_detail=settings.LOG_LEVEL.upper() == "DEBUG")
        )

    # Static files last so the routes above take precedence.
    if settings.PUBLIC_ROOT.is_dir():
        app.mount("/", StaticFiles(directory=settings.PUBLIC_ROOT, html=True), name="public")
    else:
        logger.info("Static files disabled", extra={"public_root": str(settings.PUBLIC_ROOT)})

    return app


def run() -> None:
    """
    Console entry point (``login-gateway``).

    Exits non-zero when the deployment is misconfigured.
    """
    try:
        settings = get_settings()
    except ConfigurationError as e:
        setup_logging()
        logger.error(str(e))
        sys.exit(1)

    setup_logging(settings.LOG_LEVEL, settings.LOGFORMAT)

    try:
        app = create_app(settings)
    except ConfigurationError as e:
        logger.error(str(e))
        sys.exit(1)

    serve(app, settings)


if __name__ == "__main__":
    run()
