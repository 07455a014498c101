"""
Gateway Exceptions
==================

Error taxonomy for the login gateway.

- ConfigurationError: fatal at startup, the process must not start
- AuthFailure and its subclasses: authentication failed, surfaced to the caller
- SessionUnavailable: session store unreachable, degrade gracefully
- LoginRequired: access guard denial, rendered as a redirect to login
- UnhandledServerError: anything else reaching the outermost handler
"""

from typing import Optional


class GatewayError(Exception):
    """Base exception for all login gateway errors"""
    pass


class ConfigurationError(GatewayError):
    """Missing or invalid deployment parameter."""
    pass


# =============================================================================
# Authentication Failures
# =============================================================================

class AuthFailure(GatewayError):
    """
    Authentication attempt failed.

    Attributes:
        code: Stable machine-readable failure kind
        reason: Human-readable reason, safe to show to the client
    """

    code = "auth_failure"
    default_reason = "Authentication failed"

    def __init__(self, reason: Optional[str] = None):
        self.reason = reason or self.default_reason
        super().__init__(self.reason)


class EmptyProfile(AuthFailure):
    """Identity provider returned no usable attributes."""

    code = "empty_profile"
    default_reason = "Empty SAML profile returned!"


class InvalidAssertion(AuthFailure):
    """Assertion missing, unparseable, or rejected by signature validation."""

    code = "invalid_assertion"
    default_reason = "Invalid SAML assertion"


class InvalidCredentials(AuthFailure):
    """Local credential check did not match any record."""

    code = "invalid_credentials"
    default_reason = "Incorrect username or password, please try again"


# =============================================================================
# Session / Request Flow
# =============================================================================

class SessionUnavailable(GatewayError):
    """Session store could not be reached."""
    pass


class LoginRequired(GatewayError):
    """Raised by the access guard to short-circuit a request to login."""

    def __init__(self, login_url: str):
        self.login_url = login_url
        super().__init__(f"Authentication required, redirecting to {login_url}")


class UnhandledServerError(GatewayError):
    """Wraps an unexpected exception recovered at the outermost handler."""

    def __init__(self, original: Exception):
        self.original = original
        super().__init__(f"{type(original).__name__}: {original}")

    def to_payload(self, include_detail: bool = False) -> dict:
        """Client-facing body; internals only leak when explicitly asked."""
        return {
            "error": "internal_server_error",
            "message": "An unexpected error occurred",
            "detail": str(self.original) if include_detail else None,
        }
