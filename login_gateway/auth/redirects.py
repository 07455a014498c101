"""
Post-login redirect coordination.

The access guard records where an anonymous user was heading; after a
successful login the coordinator hands that target back exactly once.
"""

import logging
from urllib.parse import urlsplit

from login_gateway.auth.session import Session

logger = logging.getLogger(__name__)


def is_safe_redirect(target: str) -> bool:
    """
    True for same-origin relative paths only.

    ``/reports?page=2`` is safe; ``//evil.example``, ``https://evil.example``
    and anything containing a backslash are not.
    """
    if not target or not target.startswith("/") or target.startswith("//"):
        return False
    if "\\" in target:
        return False

    parts = urlsplit(target)
    return not parts.scheme and not parts.netloc


class RedirectCoordinator:
    """Read-once resolution of the pending post-login target."""

    def resolve(self, session: Session, fallback: str = "/") -> str:
        """
        Return and clear the session's pending redirect.

        Args:
            session: Session that just authenticated
            fallback: Target used when nothing (safe) is pending

        Returns:
            The pending target, or ``fallback``
        """
        target = session.pending_redirect
        session.pending_redirect = None

        if target is None:
            return fallback

        if not is_safe_redirect(target):
            logger.warning("Ignoring unsafe post-login redirect", extra={"target": target})
            return fallback

        return target
