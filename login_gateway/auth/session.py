"""
Session Bridge
==============

Stores the authenticated Identity between requests.

The browser only ever holds an opaque session id inside Starlette's signed
session cookie (``request.session["sid"]``). The session record itself
lives in a SessionStore keyed by that id:

- serialize / deserialize: Identity <-> storable dict
- SessionStore: pluggable persistence (in-memory by default)
- SessionManager: binds the cookie, the store and the bridge together
"""

import logging
import secrets
import threading
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

from fastapi import Request
from pydantic import BaseModel, Field, ValidationError

from login_gateway.exceptions import SessionUnavailable
from login_gateway.models import Identity

logger = logging.getLogger(__name__)

SESSION_ID_KEY = "sid"


# =============================================================================
# Serialization
# =============================================================================

def serialize(identity: Identity) -> Dict[str, Any]:
    """
    Convert an Identity into its storable form.

    Returns:
        Plain dict keyed by canonical attribute names, absent attributes omitted
    """
    return identity.attributes()


def deserialize(data: Optional[Dict[str, Any]]) -> Optional[Identity]:
    """
    Rebuild an Identity from its storable form.

    Returns:
        The Identity, or None when nothing was stored
    """
    if not data:
        return None
    return Identity.model_validate(data)


# =============================================================================
# Session Records
# =============================================================================

@dataclass
class Session:
    """Per-visitor state for the current request."""

    session_id: Optional[str] = None
    identity: Optional[Identity] = None
    pending_redirect: Optional[str] = None
    persistent: bool = True

    @property
    def is_authenticated(self) -> bool:
        return self.identity is not None


class SessionRecord(BaseModel):
    """Storable form of a Session."""
    identity: Optional[Dict[str, Any]] = Field(None, description="Serialized identity")
    pending_redirect: Optional[str] = Field(None, description="Post-login target path")

    @classmethod
    def from_session(cls, session: Session) -> "SessionRecord":
        return cls(
            identity=serialize(session.identity) if session.identity else None,
            pending_redirect=session.pending_redirect,
        )

    def to_session(self, session_id: str) -> Session:
        return Session(
            session_id=session_id,
            identity=deserialize(self.identity),
            pending_redirect=self.pending_redirect,
        )


# =============================================================================
# Stores
# =============================================================================

class SessionStore(Protocol):
    """
    Persistence for session records.

    Implementations raise SessionUnavailable when the backing store cannot
    be reached.
    """

    def get(self, session_id: str) -> Optional[SessionRecord]:
        ...

    def put(self, session_id: str, record: SessionRecord) -> None:
        ...

    def delete(self, session_id: str) -> None:
        ...


class InMemorySessionStore:
    """Process-local store. Sessions are lost on restart."""

    def __init__(self):
        self._records: Dict[str, SessionRecord] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def get(self, session_id: str) -> Optional[SessionRecord]:
        with self._lock:
            return self._records.get(session_id)

    def put(self, session_id: str, record: SessionRecord) -> None:
        with self._lock:
            self._records[session_id] = record

    def delete(self, session_id: str) -> None:
        with self._lock:
            self._records.pop(session_id, None)


# =============================================================================
# Manager
# =============================================================================

def new_session_id() -> str:
    return secrets.token_urlsafe(32)


class SessionManager:
    """Loads, persists and destroys sessions for incoming requests."""

    def __init__(self, store: SessionStore):
        self.store = store

    def load(self, request: Request) -> Session:
        """
        Load the session bound to this request's cookie.

        A missing or unknown session id yields a fresh anonymous session.
        If the store is unreachable, the session is marked non-persistent
        so that later saves are skipped.
        """
        session_id = request.session.get(SESSION_ID_KEY)
        if not session_id:
            return Session()

        try:
            record = self.store.get(session_id)
        except SessionUnavailable as e:
            logger.warning(
                "Session store unavailable; continuing without a session",
                extra={"error": str(e)}
            )
            return Session(persistent=False)

        if record is None:
            return Session()

        try:
            return record.to_session(session_id)
        except ValidationError as e:
            logger.warning("Discarding unreadable session record", extra={"error": str(e)})
            return Session(session_id=session_id)

    def save(self, request: Request, session: Session, rotate: bool = False) -> Session:
        """
        Persist the session and bind its id to the cookie.

        Args:
            request: Current request (its cookie session is updated)
            session: Session to store
            rotate: Issue a new session id, discarding the old record

        Raises:
            SessionUnavailable: If the store cannot be reached
        """
        if not session.persistent:
            raise SessionUnavailable("Session store unavailable for this request")

        previous_id = session.session_id
        if rotate or not previous_id:
            session.session_id = new_session_id()

        self.store.put(session.session_id, SessionRecord.from_session(session))
        if previous_id and previous_id != session.session_id:
            self.store.delete(previous_id)

        request.session[SESSION_ID_KEY] = session.session_id
        return session

    def destroy(self, request: Request, session: Session) -> None:
        """
        Remove the session record and clear the cookie.

        Store failures are logged; the cookie is cleared regardless.
        """
        if session.session_id:
            try:
                self.store.delete(session.session_id)
            except SessionUnavailable as e:
                logger.warning("Unable to delete session record", extra={"error": str(e)})

        request.session.clear()
        session.session_id = None
        session.identity = None
        session.pending_redirect = None


__all__ = [
    "serialize",
    "deserialize",
    "Session",
    "SessionRecord",
    "SessionStore",
    "InMemorySessionStore",
    "SessionManager",
    "SESSION_ID_KEY",
]
