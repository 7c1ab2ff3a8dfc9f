"""
RestGate Backend — Auth Gate & Session Provider
===============================================

What:  Decides whether a request may reach the dispatcher, and who made it.
Why:   Every route under the versioned API prefix requires a session, except
       the public prefixes (health checks, the auth provider's own routes).
How:   `AuthGate.is_protected(path)` picks the requests to check;
       `AuthGate.authenticate(headers)` asks the `SessionProvider` for a session.
       The route dependency attaches the result to `request.state` or raises
       UnauthenticatedError (→ 401) before any model access happens.

Session resolution (`DatabaseSessionProvider`):
    1. Token from `Authorization: Bearer <token>`, else the `session_token` cookie
    2. SELECT the session row (with its user) by token
    3. Reject if missing or expired
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from http.cookies import CookieError, SimpleCookie
from typing import Any, Dict, Iterable, Mapping, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from restgate.models.auth import Session

logger = logging.getLogger(__name__)

SESSION_COOKIE = "session_token"


@dataclass(frozen=True)
class AuthSession:
    user: Dict[str, Any]
    session: Dict[str, Any]


class SessionProvider(Protocol):
    async def get_session(self, headers: Mapping[str, str]) -> Optional[AuthSession]: ...


def extract_token(headers: Mapping[str, str]) -> Optional[str]:
    authorization = headers.get("authorization") or ""
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()

    raw_cookie = headers.get("cookie")
    if raw_cookie:
        cookie = SimpleCookie()
        try:
            cookie.load(raw_cookie)
        except CookieError:
            return None
        morsel = cookie.get(SESSION_COOKIE)
        if morsel is not None and morsel.value:
            return morsel.value
    return None


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; stored values are always UTC
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class DatabaseSessionProvider:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get_session(self, headers: Mapping[str, str]) -> Optional[AuthSession]:
        token = extract_token(headers)
        if token is None:
            return None

        async with self._session_factory() as db:
            result = await db.execute(select(Session).where(Session.token == token))
            row = result.scalar_one_or_none()

        if row is None:
            return None
        if _as_utc(row.expires_at) <= datetime.now(timezone.utc):
            logger.info("Rejected expired session %s", row.id)
            return None

        session = row.to_dict()
        session.pop("token", None)
        return AuthSession(user=row.user.to_dict(), session=session)


class AuthGate:
    """
    Args:
        provider:        where sessions come from
        protected_prefix: e.g. "/api/v1"; only paths under it are checked
        public_prefixes: paths exempt even if under the protected prefix
        enabled:         False lets every request through (development only)
    """

    def __init__(
        self,
        provider: SessionProvider,
        protected_prefix: str,
        public_prefixes: Iterable[str] = (),
        enabled: bool = True,
    ):
        self.provider = provider
        self.protected_prefix = protected_prefix.rstrip("/")
        self.public_prefixes = tuple(public_prefixes)
        self.enabled = enabled

    def is_protected(self, path: str) -> bool:
        if not self.enabled:
            return False
        if any(path.startswith(prefix) for prefix in self.public_prefixes):
            return False
        return path == self.protected_prefix or path.startswith(self.protected_prefix + "/")

    async def authenticate(self, headers: Mapping[str, str]) -> Optional[AuthSession]:
        return await self.provider.get_session(headers)
