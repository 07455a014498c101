"""
FastAPI dependencies shared by the authentication routes and protected routes.

Usage in routes:
    @router.get("/reports")
    async def reports(identity: Identity = Depends(require_identity)):
        return {"uid": identity.uid}
"""

import logging
from dataclasses import dataclass

from fastapi import Depends, Request

from login_gateway.auth.guard import AccessGuard
from login_gateway.auth.redirects import RedirectCoordinator
from login_gateway.auth.session import Session, SessionManager
from login_gateway.auth.strategy import Strategy
from login_gateway.config import Settings
from login_gateway.exceptions import LoginRequired, SessionUnavailable
from login_gateway.models import Identity

logger = logging.getLogger(__name__)


@dataclass
class GatewayState:
    """Per-application collaborators, attached as ``app.state.gateway``."""

    settings: Settings
    strategy: Strategy
    sessions: SessionManager
    guard: AccessGuard
    coordinator: RedirectCoordinator


def get_gateway(request: Request) -> GatewayState:
    return request.app.state.gateway


def get_session(request: Request, gateway: GatewayState = Depends(get_gateway)) -> Session:
    """Session bound to the current request (anonymous if none)."""
    return gateway.sessions.load(request)


def original_path(request: Request) -> str:
    """Requested path including the query string."""
    path = request.url.path
    if request.url.query:
        path += "?" + request.url.query
    return path


def require_identity(
    request: Request,
    session: Session = Depends(get_session),
    gateway: GatewayState = Depends(get_gateway),
) -> Identity:
    """
    Admit only authenticated sessions.

    Anonymous callers have the requested path stored as their pending
    redirect and are sent to the login page.

    Raises:
        LoginRequired: If the session carries no identity
    """
    decision = gateway.guard.check(original_path(request), session)
    if decision.allowed:
        return session.identity

    try:
        gateway.sessions.save(request, session)
    except SessionUnavailable as e:
        logger.warning(
            "Could not remember the requested page before login",
            extra={"path": session.pending_redirect, "error": str(e)}
        )
    raise LoginRequired(decision.redirect_to)
