"""
Authentication routes for Shibboleth and local (shibalike) login.

The router is built per application from the active strategy. Every route
except the metadata one sits under PRE_AUTH_URL.

Shibboleth (federated):
    GET  {LOGIN_URL}           redirect to the UIC IdP
    POST {LOGIN_CALLBACK_URL}  SAML POST binding, then back to the saved page
    GET  {METADATA_URL}        service provider metadata (unprefixed)

Local:
    GET  {LOGIN_URL}           login form (PUBLIC_ROOT/index.html)
    POST {LOGIN_URL}           identifier/secret check

Both:
    GET  {LOGOUT_URL}          end the session
    GET  {USER_URL}            details of the logged in user
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import FileResponse, JSONResponse, PlainTextResponse, RedirectResponse, Response
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from login_gateway.auth.dependencies import GatewayState, get_gateway, get_session, require_identity
from login_gateway.auth.saml import saml_request_data
from login_gateway.auth.session import Session, serialize
from login_gateway.auth.strategy import FEDERATED, FederatedStrategy, LocalStrategy
from login_gateway.config import Settings
from login_gateway.models import Identity, LoginForm, UserResponse

logger = logging.getLogger(__name__)

REDIRECT_HEADER = "X-Auth-Redirect"


# =============================================================================
# Helpers
# =============================================================================

def login_path(settings: Settings) -> str:
    return settings.PRE_AUTH_URL + settings.LOGIN_URL


def establish_login(
    request: Request,
    session: Session,
    identity: Identity,
    gateway: GatewayState,
) -> str:
    """
    Attach the identity to the session and work out where to send the user.

    The pending redirect is consumed here, so it is persisted as cleared.

    Returns:
        Post-login target path

    Raises:
        SessionUnavailable: If the session cannot be persisted
    """
    session.identity = identity
    target = gateway.coordinator.resolve(session, fallback=gateway.settings.POST_LOGIN_URL)
    gateway.sessions.save(request, session, rotate=True)

    logger.info(
        "User logged in",
        extra={"uid": identity.uid, "strategy": gateway.strategy.name, "redirect": target}
    )
    return target


async def read_login_form(request: Request) -> LoginForm:
    """Parse a JSON or form-encoded login submission."""
    content_type = request.headers.get("content-type", "")
    data: Any
    if content_type.startswith("application/json"):
        try:
            data = await request.json()
        except ValueError:
            data = {}
    else:
        data = dict(await request.form())

    if not isinstance(data, dict):
        data = {}

    try:
        return LoginForm.model_validate(data)
    except ValidationError:
        return LoginForm()


# =============================================================================
# Router Factory
# =============================================================================

def build_auth_router(settings: Settings, kind: str) -> APIRouter:
    """
    Create the authentication router for the given strategy kind.

    Args:
        settings: Route paths and the PRE_AUTH_URL prefix
        kind: ``"federated"`` or ``"local"``

    Returns:
        APIRouter with login, logout and user routes mounted
    """
    router = APIRouter(tags=["authentication"])
    prefixed = APIRouter(prefix=settings.PRE_AUTH_URL)

    if kind == FEDERATED:
        _add_federated_routes(prefixed, settings)
        # Registered with the IdP at a fixed path, outside PRE_AUTH_URL.
        _add_metadata_route(router, settings)
    else:
        _add_local_routes(prefixed, settings)

    _add_common_routes(prefixed, settings)
    router.include_router(prefixed)
    return router


# =============================================================================
# Shibboleth Routes
# =============================================================================

def _add_federated_routes(router: APIRouter, settings: Settings) -> None:

    @router.get(settings.LOGIN_URL, response_class=RedirectResponse)
    async def login(request: Request, gateway: GatewayState = Depends(get_gateway)):
        """Send the user agent to the UIC Shibboleth IdP."""
        strategy: FederatedStrategy = gateway.strategy
        request_data = await saml_request_data(request)
        idp_url = await run_in_threadpool(strategy.initiate, request_data)
        return RedirectResponse(url=idp_url, status_code=status.HTTP_302_FOUND)

    @router.post(settings.LOGIN_CALLBACK_URL, response_class=RedirectResponse)
    async def login_callback(
        request: Request,
        session: Session = Depends(get_session),
        gateway: GatewayState = Depends(get_gateway),
    ):
        """
        Assertion consumer endpoint.

        On success the user is sent back to the page they originally asked
        for. Failures are re-raised to the AuthFailure handler.
        """
        strategy: FederatedStrategy = gateway.strategy
        submission = await saml_request_data(request)
        outcome = await run_in_threadpool(strategy.complete, submission)
        if not outcome.ok:
            raise outcome.error

        target = establish_login(request, session, outcome.identity, gateway)
        return RedirectResponse(url=target, status_code=status.HTTP_302_FOUND)


def _add_metadata_route(router: APIRouter, settings: Settings) -> None:

    @router.get(settings.METADATA_URL)
    async def metadata(gateway: GatewayState = Depends(get_gateway)):
        """Service provider metadata for registration with the IdP."""
        strategy: FederatedStrategy = gateway.strategy
        xml = await run_in_threadpool(strategy.metadata, strategy.config.public_cert)
        return Response(content=xml, media_type="application/xml")


# =============================================================================
# Local (Shibalike) Routes
# =============================================================================

def _add_local_routes(router: APIRouter, settings: Settings) -> None:

    @router.get(settings.LOGIN_URL)
    async def login_page(gateway: GatewayState = Depends(get_gateway)):
        """Serve the compiled client's login page."""
        index = gateway.settings.PUBLIC_ROOT / "index.html"
        if not index.is_file():
            logger.warning("Login page not found", extra={"path": str(index)})
            return JSONResponse(
                status_code=status.HTTP_404_NOT_FOUND,
                content={"error": "not_found", "message": "Login page not found"}
            )
        return FileResponse(index)

    @router.post(settings.LOGIN_URL)
    async def login(
        request: Request,
        session: Session = Depends(get_session),
        gateway: GatewayState = Depends(get_gateway),
    ):
        """
        Check posted credentials against the local user list.

        Returns:
            200 "Logged in" with the post-login target in X-Auth-Redirect,
            or 400 ``[null, "Cannot log in", {"message": reason}]``
        """
        strategy: LocalStrategy = gateway.strategy
        form = await read_login_form(request)
        outcome = strategy.complete(form.model_dump())
        if not outcome.ok:
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                content=[None, "Cannot log in", {"message": outcome.error.reason}]
            )

        target = establish_login(request, session, outcome.identity, gateway)
        return PlainTextResponse("Logged in", headers={REDIRECT_HEADER: target})


# =============================================================================
# Common Routes
# =============================================================================

def _add_common_routes(router: APIRouter, settings: Settings) -> None:

    @router.get(settings.LOGOUT_URL, response_class=RedirectResponse)
    async def logout(
        request: Request,
        session: Session = Depends(get_session),
        gateway: GatewayState = Depends(get_gateway),
    ):
        uid = session.identity.uid if session.identity else None
        gateway.sessions.destroy(request, session)
        logger.info("Logged out", extra={"uid": uid})
        return RedirectResponse(url=login_path(gateway.settings), status_code=status.HTTP_302_FOUND)

    @router.get(settings.USER_URL, response_model=UserResponse)
    async def user(identity: Identity = Depends(require_identity)) -> Dict[str, Any]:
        """User details route."""
        return {"user": serialize(identity)}
