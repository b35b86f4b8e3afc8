"""FastAPI dependencies for dinein API.

Provides dependency injection for:
- Settings and the cookie codec (built once in create_app)
- Database sessions
- Managers (ApiKey, Staff, Session, Table)
- Services (Authenticator, SessionContextResolver)
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from dinein.config import Settings
from dinein.db.session import Database
from dinein.db.transactions import TransactionSupport
from dinein.managers.api_key import ApiKeyManager
from dinein.managers.session import SessionManager
from dinein.managers.staff import StaffManager
from dinein.managers.table import TableManager
from dinein.services.auth_cookie import AuthCookieCodec
from dinein.services.authenticator import Authenticator
from dinein.services.session_context import SessionContextResolver


def get_settings_dependency(request: Request) -> Settings:
    return request.app.state.settings


def get_cookie_codec(request: Request) -> AuthCookieCodec:
    return request.app.state.cookie_codec


def get_transaction_support(request: Request) -> TransactionSupport:
    return request.app.state.transactions


async def get_db_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Per-request database session, committed when the request succeeds."""
    database: Database = request.app.state.database
    async with database.session() as session:
        yield session


SettingsDep = Annotated[Settings, Depends(get_settings_dependency)]
CookieCodecDep = Annotated[AuthCookieCodec, Depends(get_cookie_codec)]
TransactionSupportDep = Annotated[TransactionSupport, Depends(get_transaction_support)]
SessionDep = Annotated[AsyncSession, Depends(get_db_session)]


async def get_api_key_manager(
    session: SessionDep,
    transactions: TransactionSupportDep,
) -> ApiKeyManager:
    return ApiKeyManager(db_session=session, transactions=transactions)


async def get_staff_manager(session: SessionDep) -> StaffManager:
    return StaffManager(db_session=session)


async def get_session_manager(session: SessionDep) -> SessionManager:
    return SessionManager(db_session=session)


async def get_table_manager(session: SessionDep) -> TableManager:
    return TableManager(db_session=session)


ApiKeyManagerDep = Annotated[ApiKeyManager, Depends(get_api_key_manager)]
StaffManagerDep = Annotated[StaffManager, Depends(get_staff_manager)]
SessionManagerDep = Annotated[SessionManager, Depends(get_session_manager)]
TableManagerDep = Annotated[TableManager, Depends(get_table_manager)]


async def get_authenticator(
    codec: CookieCodecDep,
    api_keys: ApiKeyManagerDep,
    staff: StaffManagerDep,
) -> Authenticator:
    return Authenticator(codec=codec, api_keys=api_keys, staff=staff)


async def get_session_context_resolver(
    sessions: SessionManagerDep,
    tables: TableManagerDep,
) -> SessionContextResolver:
    return SessionContextResolver(sessions=sessions, tables=tables)


AuthenticatorDep = Annotated[Authenticator, Depends(get_authenticator)]
SessionContextResolverDep = Annotated[
    SessionContextResolver, Depends(get_session_context_resolver)
]
