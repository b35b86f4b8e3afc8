"""Sessions API endpoints.

Floor staff open and close sessions; customers read their own session
through the session token.
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Query
from pydantic import BaseModel, ConfigDict, Field

from dinein.api.auth import FloorStaffDep, SessionContextDep
from dinein.api.dependencies import SessionManagerDep, TableManagerDep
from dinein.api.v1.tables import TableResponse, table_to_response
from dinein.errors import ConflictError, NotFoundError
from dinein.managers.session import SessionAttributes, SessionCriteria, SessionManager
from dinein.managers.table import TableCriteria
from dinein.models.session import Session, SessionStatus
from dinein.models.table import DiningTable

router = APIRouter()


# Request/Response Models


class CreateSessionRequest(BaseModel):
    """Request to open a session.

    With neither field set, any available table is reserved.
    """

    model_config = ConfigDict(populate_by_name=True)

    table_id: str | None = Field(default=None, alias="tableId")
    table_number: int | None = Field(default=None, alias="tableNumber", ge=1)


class SessionResponse(BaseModel):
    """Session response model."""

    id: str
    uuid: str
    status: SessionStatus
    table_id: str
    created_at: datetime
    closed_at: datetime | None
    table: TableResponse | None = None


class SessionListResponse(BaseModel):
    items: list[SessionResponse]


def _session_to_response(
    session: Session,
    table: DiningTable | None = None,
) -> SessionResponse:
    return SessionResponse(
        id=session.id,
        uuid=session.uuid,
        status=session.status,
        table_id=session.table_id,
        created_at=session.created_at,
        closed_at=session.closed_at,
        table=table_to_response(table) if table is not None else None,
    )


# Endpoints


@router.get("/current", response_model=SessionResponse)
async def get_current_session(context: SessionContextDep) -> SessionResponse:
    """Get the session named by the caller's session token."""
    return _session_to_response(context.session, context.table)


@router.get("", response_model=SessionListResponse)
async def list_sessions(
    role: FloorStaffDep,
    session_mgr: SessionManagerDep,
    table_mgr: TableManagerDep,
    status: SessionStatus | None = Query(None),
    table_number: int | None = Query(None, alias="tableNumber", ge=1),
) -> SessionListResponse:
    table_id = None
    if table_number is not None:
        table = await table_mgr.find(TableCriteria(number=table_number))
        if table is None:
            return SessionListResponse(items=[])
        table_id = table.id

    sessions = await session_mgr.find_many(
        SessionCriteria(status=status, table_id=table_id)
    )
    return SessionListResponse(items=[_session_to_response(s) for s in sessions])


@router.post("", response_model=SessionResponse, status_code=201)
async def create_session(
    role: FloorStaffDep,
    session_mgr: SessionManagerDep,
    table_mgr: TableManagerDep,
    request: CreateSessionRequest | None = None,
) -> SessionResponse:
    """Open a session and reserve its table."""
    body = request or CreateSessionRequest()
    session = await session_mgr.create(
        SessionAttributes(table_id=body.table_id, table_number=body.table_number)
    )
    table = await table_mgr.find(TableCriteria(id=session.table_id))
    return _session_to_response(session, table)


@router.get("/{session_uuid}", response_model=SessionResponse)
async def get_session(
    session_uuid: str,
    role: FloorStaffDep,
    session_mgr: SessionManagerDep,
    table_mgr: TableManagerDep,
) -> SessionResponse:
    session = await session_mgr.find(SessionCriteria(uuid=session_uuid))
    if session is None:
        raise NotFoundError(f"Session not found: {session_uuid}")
    table = await table_mgr.find(TableCriteria(id=session.table_id))
    return _session_to_response(session, table)


async def _finish_session(
    session_uuid: str,
    session_mgr: SessionManager,
    status: SessionStatus,
) -> SessionResponse:
    criteria = SessionCriteria(uuid=session_uuid)
    if status == SessionStatus.CLOSED:
        session = await session_mgr.close(criteria)
    else:
        session = await session_mgr.cancel(criteria)
    if session is not None:
        return _session_to_response(session)

    existing = await session_mgr.find(criteria)
    if existing is None:
        raise NotFoundError(f"Session not found: {session_uuid}")
    raise ConflictError(
        f"Session is already {existing.status.value}",
        details={"status": existing.status.value},
    )


@router.patch("/{session_uuid}/close", response_model=SessionResponse)
async def close_session(
    session_uuid: str,
    role: FloorStaffDep,
    session_mgr: SessionManagerDep,
) -> SessionResponse:
    """Close an active session. The table stays reserved until released."""
    return await _finish_session(session_uuid, session_mgr, SessionStatus.CLOSED)


@router.patch("/{session_uuid}/cancel", response_model=SessionResponse)
async def cancel_session(
    session_uuid: str,
    role: FloorStaffDep,
    session_mgr: SessionManagerDep,
) -> SessionResponse:
    return await _finish_session(session_uuid, session_mgr, SessionStatus.CANCELLED)
