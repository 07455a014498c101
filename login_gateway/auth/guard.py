"""
Access guard for protected routes.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from login_gateway.auth.session import Session

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Decision:
    allowed: bool
    redirect_to: Optional[str] = None


class AccessGuard:
    """
    Admit authenticated sessions; send everyone else to the login page.

    A denial records the requested path (query string included) as the
    session's pending redirect. The last denial wins.
    """

    def __init__(self, login_url: str):
        self.login_url = login_url

    def check(self, original_path: str, session: Session) -> Decision:
        if session.identity is not None:
            return Decision(allowed=True)

        session.pending_redirect = original_path
        logger.debug(
            "Unauthenticated request, redirecting to login",
            extra={"path": original_path, "login_url": self.login_url}
        )
        return Decision(allowed=False, redirect_to=self.login_url)
