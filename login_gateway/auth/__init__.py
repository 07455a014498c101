"""
Authentication Package

This package handles login for the gateway using either UIC Shibboleth
(SAML single sign-on) or a local "shibalike" user list for development.

Modules:
- profile: Shibboleth attribute bag -> Identity
- credentials: Local user list and credential checks
- saml: python3-saml collaborator and SP key material
- strategy: Federated / local strategies and their selection
- session: Session records, stores and the cookie binding
- guard: Access decisions for protected routes
- redirects: Read-once post-login redirect
- dependencies: FastAPI dependencies (require_identity, ...)
- routes: Login, callback, metadata, logout and user endpoints

The authentication flow:
1. A protected route rejects an anonymous visitor and remembers the page
2. The visitor logs in (IdP round trip, or the local login form)
3. The strategy produces an Identity, which is attached to the session
4. The visitor is sent back to the remembered page
"""

from .dependencies import GatewayState, require_identity
from .routes import build_auth_router
from .strategy import AuthOutcome, FederatedStrategy, LocalStrategy, Strategy, build_strategy

__all__ = [
    "AuthOutcome",
    "FederatedStrategy",
    "GatewayState",
    "LocalStrategy",
    "Strategy",
    "build_auth_router",
    "build_strategy",
    "require_identity",
]
