"""Resolve an anonymous customer request to its session and table."""

from __future__ import annotations

from dataclasses import dataclass

import structlog
from fastapi import Request

from dinein.errors import AuthFailureReason, FormatError, UnauthorizedError
from dinein.managers.session import SessionCriteria, SessionManager
from dinein.managers.table import TableCriteria, TableManager
from dinein.models.session import Session
from dinein.models.table import DiningTable

logger = structlog.get_logger()

SESSION_HEADERS = ("x-session-id", "x-session")
SESSION_COOKIES = ("session", "session_id")
SESSION_QUERY_PARAM = "session"


@dataclass(frozen=True, slots=True)
class SessionContext:
    session: Session
    table: DiningTable | None = None


def extract_session_token(request: Request) -> str | None:
    """Find the session token on a request.

    Checked in order: ``x-session-id`` header, ``x-session`` header,
    ``session`` cookie, ``session_id`` cookie, ``session`` query param.
    """
    for header in SESSION_HEADERS:
        value = request.headers.get(header)
        if value and value.strip():
            return value.strip()
    for cookie in SESSION_COOKIES:
        value = request.cookies.get(cookie)
        if value:
            return value
    value = request.query_params.get(SESSION_QUERY_PARAM)
    if value:
        return value
    return None


class SessionContextResolver:
    """Looks up the session named by a token."""

    def __init__(self, sessions: SessionManager, tables: TableManager) -> None:
        self._sessions = sessions
        self._tables = tables

    async def resolve(
        self,
        token: str | None,
        *,
        optional: bool = False,
    ) -> SessionContext | None:
        """Resolve a token to a session context.

        Sessions of any status resolve; callers decide what a closed
        session may do.

        Raises:
            UnauthorizedError: When not optional and the token is missing,
                malformed, or unknown
        """
        if not token:
            if optional:
                return None
            raise UnauthorizedError(AuthFailureReason.MISSING_SESSION)

        session = None
        try:
            session = await self._sessions.find(SessionCriteria(uuid=token))
        except FormatError:
            logger.debug("session_context.malformed_token")

        if session is None:
            if optional:
                return None
            raise UnauthorizedError(AuthFailureReason.INVALID_SESSION)

        table = None
        try:
            table = await self._tables.find(TableCriteria(id=session.table_id))
        except Exception as e:
            logger.warning(
                "session_context.table_lookup_failed",
                session_uuid=session.uuid,
                table_id=session.table_id,
                error=str(e),
            )

        return SessionContext(session=session, table=table)
