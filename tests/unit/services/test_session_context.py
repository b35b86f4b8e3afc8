"""Unit tests for session token extraction and context resolution."""

from __future__ import annotations

import uuid
from unittest.mock import AsyncMock, patch

import pytest
from fastapi import Request

from dinein.errors import AuthFailureReason, StoreError, UnauthorizedError
from dinein.managers.session import SessionAttributes, SessionCriteria, SessionManager
from dinein.managers.table import TableManager
from dinein.models.session import SessionStatus
from dinein.services.session_context import SessionContextResolver, extract_session_token


def _request(
    headers: dict[str, str] | None = None,
    cookies: dict[str, str] | None = None,
    query: str = "",
) -> Request:
    raw = [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()]
    if cookies:
        raw.append((b"cookie", "; ".join(f"{k}={v}" for k, v in cookies.items()).encode()))
    return Request(
        {
            "type": "http",
            "method": "GET",
            "path": "/",
            "headers": raw,
            "query_string": query.encode(),
        }
    )


class TestExtractSessionToken:
    def test_nothing(self):
        assert extract_session_token(_request()) is None

    def test_precedence(self):
        request = _request(
            headers={"x-session-id": "h1", "x-session": "h2"},
            cookies={"session": "c1", "session_id": "c2"},
            query="session=q",
        )
        assert extract_session_token(request) == "h1"

    def test_second_header(self):
        request = _request(headers={"x-session": "h2"}, cookies={"session": "c1"})
        assert extract_session_token(request) == "h2"

    def test_cookies_before_query(self):
        assert extract_session_token(_request(cookies={"session_id": "c2"}, query="session=q")) == "c2"
        assert (
            extract_session_token(_request(cookies={"session": "c1", "session_id": "c2"}))
            == "c1"
        )

    def test_query_param(self):
        assert extract_session_token(_request(query="session=q")) == "q"

    def test_blank_header_skipped(self):
        request = _request(headers={"x-session-id": "   "}, query="session=q")
        assert extract_session_token(request) == "q"

    def test_header_trimmed(self):
        assert extract_session_token(_request(headers={"x-session-id": " abc "})) == "abc"


class TestResolve:
    @pytest.fixture
    def resolver(self, db_session) -> SessionContextResolver:
        return SessionContextResolver(SessionManager(db_session), TableManager(db_session))

    @pytest.fixture
    async def session(self, db_session):
        await TableManager(db_session).create(7)
        return await SessionManager(db_session).create(SessionAttributes(table_number=7))

    async def test_resolves_session_and_table(self, resolver, session):
        context = await resolver.resolve(session.uuid)

        assert context.session.id == session.id
        assert context.table.number == 7

    async def test_closed_session_still_resolves(self, db_session, resolver, session):
        await SessionManager(db_session).close(SessionCriteria(uuid=session.uuid))

        context = await resolver.resolve(session.uuid)

        assert context.session.status == SessionStatus.CLOSED

    @pytest.mark.parametrize(
        ("token", "reason"),
        [
            (None, AuthFailureReason.MISSING_SESSION),
            ("", AuthFailureReason.MISSING_SESSION),
            ("not-a-uuid", AuthFailureReason.INVALID_SESSION),
            (str(uuid.uuid4()), AuthFailureReason.INVALID_SESSION),
        ],
    )
    async def test_required_failures(self, resolver, token, reason):
        with pytest.raises(UnauthorizedError) as exc_info:
            await resolver.resolve(token)

        assert exc_info.value.reason == reason

    @pytest.mark.parametrize("token", [None, "not-a-uuid", str(uuid.uuid4())])
    async def test_optional_returns_none(self, resolver, token):
        assert await resolver.resolve(token, optional=True) is None

    async def test_table_lookup_failure_is_tolerated(self, resolver, session):
        with patch.object(resolver._tables, "find", AsyncMock(side_effect=StoreError())):
            context = await resolver.resolve(session.uuid)

        assert context.session.id == session.id
        assert context.table is None
