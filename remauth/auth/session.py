"""
Server-Side Session Management Module
=====================================

Sessions live in the shared store under ``<prefix><session id>`` with a TTL
that is renewed on every request carrying the session. The browser only holds
the opaque session id (secure, HTTP-only, SameSite=Lax cookie); API clients may
present the same id as a Bearer token.

This module also turns a verified identity assertion into the session ``User``
and provides the FastAPI dependencies used by protected routes.
"""

import json
import logging
import secrets
from typing import Any, Dict, List, Optional

from fastapi import Request
from pydantic import ValidationError
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from remauth.auth.errors import Unauthorized
from remauth.models import IdentityAssertion, User
from remauth.store import KeyValueStore

logger = logging.getLogger(__name__)

USER_KEY = "user"

SESSION_ID_BYTES = 32


# =============================================================================
# Session Objects
# =============================================================================

class Session:
    """Request-scoped view of one session record."""

    def __init__(
        self,
        session_id: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
        *,
        from_bearer: bool = False,
    ):
        self.id = session_id
        self.data: Dict[str, Any] = dict(data or {})
        self.from_bearer = from_bearer
        self.destroyed = False
        self.modified = False
        self.stale_ids: List[str] = []

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def __getitem__(self, key: str) -> Any:
        return self.data[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self.data[key] = value
        self.modified = True

    def __contains__(self, key: str) -> bool:
        return key in self.data

    def regenerate(self) -> None:
        """Move the data to a fresh id on the next save; the old record is deleted."""
        if self.id:
            self.stale_ids.append(self.id)
        self.id = None
        self.modified = True
        # a rotated id is handed back as a cookie, never via the Bearer header
        self.from_bearer = False


class SessionStore:
    """Loads, saves and destroys sessions in the shared store."""

    def __init__(self, store: KeyValueStore, prefix: str = "session:", ttl_seconds: int = 3600):
        self.store = store
        self.prefix = prefix
        self.ttl_seconds = ttl_seconds

    def key(self, session_id: str) -> str:
        return f"{self.prefix}{session_id}"

    @staticmethod
    def new_id() -> str:
        return secrets.token_urlsafe(SESSION_ID_BYTES)

    async def load(self, session_id: Optional[str], *, from_bearer: bool = False) -> Session:
        if not session_id:
            return Session()

        raw = await self.store.get(self.key(session_id))
        if raw is None:
            return Session()

        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning("Discarding unreadable session record")
            return Session()
        if not isinstance(data, dict):
            return Session()

        return Session(session_id, data, from_bearer=from_bearer)

    async def save(self, session: Session) -> None:
        """
        Persist ``session`` and renew its TTL; empty sessions are removed.

        An unmodified session only has its TTL reset, so a request that loaded
        the session before it was destroyed elsewhere cannot recreate it.
        """
        for stale_id in session.stale_ids:
            await self.store.delete(self.key(stale_id))
        session.stale_ids.clear()

        if not session.data:
            if session.id:
                await self.store.delete(self.key(session.id))
                session.id = None
            return

        if session.id is None:
            session.id = self.new_id()
        elif not session.modified:
            # renew only; a record deleted meanwhile (logout) stays deleted
            if not await self.store.expire(self.key(session.id), self.ttl_seconds):
                session.data.clear()
                session.id = None
            return

        await self.store.set(self.key(session.id), json.dumps(session.data), self.ttl_seconds)
        session.modified = False

    async def destroy(self, session: Session) -> None:
        """Delete the session record now, not at cookie expiry."""
        for session_id in [*session.stale_ids, session.id]:
            if session_id:
                await self.store.delete(self.key(session_id))
        session.stale_ids.clear()
        session.data.clear()
        session.id = None
        session.destroyed = True


# =============================================================================
# Middleware
# =============================================================================

def extract_token_from_header(authorization: Optional[str]) -> Optional[str]:
    """Return the token of a ``Bearer <token>`` header, or None."""
    if not authorization:
        return None
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1]


class ServerSideSessionMiddleware(BaseHTTPMiddleware):
    """
    Attach the caller's session to ``request.state.session`` and persist it
    after the endpoint runs.

    Reads ``app.state.settings`` and ``app.state.kv_store``.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        settings = request.app.state.settings
        cookie_name = settings.REM_AUTH_SESSION_COOKIE_NAME
        sessions = SessionStore(
            request.app.state.kv_store,
            prefix=settings.REM_AUTH_SESSION_KEY_PREFIX,
            ttl_seconds=settings.REM_AUTH_SESSION_TTL,
        )

        session_id = request.cookies.get(cookie_name)
        from_bearer = False
        if not session_id:
            session_id = extract_token_from_header(request.headers.get("authorization"))
            from_bearer = session_id is not None

        session = await sessions.load(session_id, from_bearer=from_bearer)
        request.state.session = session
        request.state.session_store = sessions

        response = await call_next(request)

        await sessions.save(session)

        if session.id and not session.from_bearer:
            response.set_cookie(
                cookie_name,
                session.id,
                max_age=settings.REM_AUTH_SESSION_TTL,
                path="/",
                secure=True,
                httponly=True,
                samesite="lax",
            )
        elif session.id is None and cookie_name in request.cookies:
            response.delete_cookie(
                cookie_name,
                path="/",
                secure=True,
                httponly=True,
                samesite="lax",
            )

        return response


# =============================================================================
# User Materialization
# =============================================================================

def materialize_user(assertion: IdentityAssertion) -> User:
    return User(
        name=assertion.user_name,
        display_name=assertion.display_name,
        email=assertion.email,
        groups=assertion.groups,
    )


def commit_user(session: Session, user: User) -> None:
    """Store ``user`` in ``session`` under a fresh session id."""
    session.regenerate()
    session[USER_KEY] = user.model_dump(mode="json", by_alias=True)


def read_user(session: Session) -> User:
    raw = session.get(USER_KEY)
    if not raw:
        raise Unauthorized("no user in session")
    try:
        return User.model_validate(raw)
    except ValidationError as e:
        logger.warning(f"Session user record is invalid: {e.error_count()} error(s)")
        raise Unauthorized("invalid user in session") from e


# =============================================================================
# FastAPI Dependencies
# =============================================================================

def get_session(request: Request) -> Session:
    return request.state.session


def get_session_store(request: Request) -> SessionStore:
    return request.state.session_store


async def get_current_user(request: Request) -> User:
    """
    FastAPI dependency returning the session user.

    Raises:
        Unauthorized: If the request carries no authenticated session
    """
    return read_user(get_session(request))
