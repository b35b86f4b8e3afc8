"""Tables API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Query
from pydantic import BaseModel, Field

from dinein.api.auth import AdminDep, AnyStaffDep, FloorStaffDep
from dinein.api.dependencies import SessionManagerDep, TableManagerDep
from dinein.errors import ConflictError, NotFoundError
from dinein.managers.session import SessionCriteria
from dinein.managers.table import TableCriteria
from dinein.models.session import SessionStatus
from dinein.models.table import DiningTable

router = APIRouter()


class CreateTableRequest(BaseModel):
    # None = next number after the highest in use
    number: int | None = Field(default=None, ge=1)


class TableResponse(BaseModel):
    id: str
    number: int
    available: bool


class TableListResponse(BaseModel):
    items: list[TableResponse]


def table_to_response(table: DiningTable) -> TableResponse:
    return TableResponse(id=table.id, number=table.number, available=table.available)


@router.post("", response_model=TableResponse, status_code=201)
async def create_table(
    role: AdminDep,
    table_mgr: TableManagerDep,
    request: CreateTableRequest | None = None,
) -> TableResponse:
    body = request or CreateTableRequest()
    table = await table_mgr.create(body.number)
    return table_to_response(table)


@router.get("", response_model=TableListResponse)
async def list_tables(
    role: AnyStaffDep,
    table_mgr: TableManagerDep,
    available: bool | None = Query(None),
) -> TableListResponse:
    tables = await table_mgr.find_many(TableCriteria(available=available))
    return TableListResponse(items=[table_to_response(t) for t in tables])


@router.patch("/{number}/release", response_model=TableResponse)
async def release_table(
    number: int,
    role: FloorStaffDep,
    table_mgr: TableManagerDep,
    session_mgr: SessionManagerDep,
) -> TableResponse:
    """Mark a table available again after its session has ended.

    Refused while the table still holds an active session.
    """
    table = await table_mgr.find(TableCriteria(number=number))
    if table is None:
        raise NotFoundError(f"Table not found: {number}")

    active = await session_mgr.find_many(
        SessionCriteria(status=SessionStatus.ACTIVE, table_id=table.id)
    )
    if active:
        raise ConflictError(
            f"Table {number} has an active session",
            details={"session_uuid": active[0].uuid},
        )

    released = await table_mgr.set_available(TableCriteria(id=table.id), True)
    if released is None:
        raise NotFoundError(f"Table not found: {number}")
    return table_to_response(released)
