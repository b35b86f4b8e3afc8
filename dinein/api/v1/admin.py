"""Admin API endpoints.

Staff and API key administration plus a manual GC trigger. Every endpoint
requires the admin role.
"""

from __future__ import annotations

import time
from datetime import datetime

from fastapi import APIRouter, HTTPException, Request, Response
from pydantic import BaseModel, Field

from dinein.api.auth import AdminDep
from dinein.api.dependencies import ApiKeyManagerDep, StaffManagerDep
from dinein.errors import NotFoundError, StoreError
from dinein.managers.api_key import ApiKeyAttributes, ApiKeyCriteria
from dinein.managers.staff import StaffCriteria
from dinein.models.staff import StaffRole
from dinein.utils.datetime import to_naive_utc, utcnow

router = APIRouter()


# ---- Request/Response Models ----


class CreateStaffRequest(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    role: StaffRole


class StaffResponse(BaseModel):
    id: str
    name: str
    role: StaffRole


class CreateApiKeyRequest(BaseModel):
    # None = never expires
    expired_at: datetime | None = None


class ApiKeyResponse(BaseModel):
    """Newly created key. The plaintext is only ever returned here."""

    id: str
    api_key: str
    created_at: datetime
    expired_at: datetime | None


class SweepApiKeysRequest(BaseModel):
    """Bulk key removal.

    With ``created_before`` set, removes keys older than it; otherwise
    removes expired keys.
    """

    created_before: datetime | None = None


class SweepApiKeysResponse(BaseModel):
    deleted: int


class GCTaskResult(BaseModel):
    task_name: str
    cleaned_count: int
    errors: list[str]


class GCRunResponse(BaseModel):
    results: list[GCTaskResult]
    total_cleaned: int
    total_errors: int
    duration_ms: int


# ---- Endpoints ----


@router.post("/staff", response_model=StaffResponse, status_code=201)
async def create_staff(
    body: CreateStaffRequest,
    role: AdminDep,
    staff_mgr: StaffManagerDep,
) -> StaffResponse:
    staff = await staff_mgr.create(body.name, body.role)
    return StaffResponse(id=staff.id, name=staff.name, role=staff.role)


@router.post("/staff/{staff_id}/api-keys", response_model=ApiKeyResponse, status_code=201)
async def create_api_key(
    staff_id: str,
    role: AdminDep,
    api_key_mgr: ApiKeyManagerDep,
    staff_mgr: StaffManagerDep,
    body: CreateApiKeyRequest | None = None,
) -> ApiKeyResponse:
    """Issue a new key to a staff member."""
    if await staff_mgr.find(StaffCriteria(id=staff_id)) is None:
        raise NotFoundError(f"Staff member not found: {staff_id}")

    expired_at = None
    if body is not None and body.expired_at is not None:
        expired_at = to_naive_utc(body.expired_at)

    key = await api_key_mgr.create(
        staff_id,
        ApiKeyAttributes(created_at=utcnow(), expired_at=expired_at),
    )
    record = await api_key_mgr.find(ApiKeyCriteria(key=key))
    if record is None:
        raise StoreError("Created API key could not be read back")
    return ApiKeyResponse(
        id=record.id,
        api_key=record.key,
        created_at=record.created_at,
        expired_at=record.expired_at,
    )


@router.delete("/api-keys/{key_id}", status_code=204)
async def delete_api_key(
    key_id: str,
    role: AdminDep,
    api_key_mgr: ApiKeyManagerDep,
) -> Response:
    record = await api_key_mgr.find(ApiKeyCriteria(id=key_id))
    if record is None:
        raise NotFoundError(f"API key not found: {key_id}")
    if not await api_key_mgr.delete(ApiKeyCriteria(id=record.id, key=record.key)):
        raise NotFoundError(f"API key not found: {key_id}")
    return Response(status_code=204)


@router.post("/api-keys/sweep", response_model=SweepApiKeysResponse)
async def sweep_api_keys(
    role: AdminDep,
    api_key_mgr: ApiKeyManagerDep,
    body: SweepApiKeysRequest | None = None,
) -> SweepApiKeysResponse:
    if body is not None and body.created_before is not None:
        deleted = await api_key_mgr.delete_created_before(to_naive_utc(body.created_before))
    else:
        deleted = await api_key_mgr.delete_expired()
    return SweepApiKeysResponse(deleted=deleted)


@router.post("/gc/run", response_model=GCRunResponse)
async def run_gc(request: Request, role: AdminDep) -> GCRunResponse:
    """Run one GC cycle synchronously.

    Works even when ``gc.enabled`` is false.

    **Status Codes**:
    - 200: GC executed (even if some tasks reported errors)
    - 423: A cycle is already running
    - 503: Scheduler unavailable
    """
    scheduler = getattr(request.app.state, "gc_scheduler", None)
    if scheduler is None:
        raise HTTPException(status_code=503, detail="GC scheduler is not available")
    if scheduler.is_cycle_running:
        raise HTTPException(status_code=423, detail="GC is already running")

    start = time.monotonic()
    results = await scheduler.run_once()
    duration_ms = int((time.monotonic() - start) * 1000)

    return GCRunResponse(
        results=[
            GCTaskResult(
                task_name=r.task_name or "unknown",
                cleaned_count=r.cleaned_count,
                errors=r.errors,
            )
            for r in results
        ],
        total_cleaned=sum(r.cleaned_count for r in results),
        total_errors=sum(len(r.errors) for r in results),
        duration_ms=duration_ms,
    )
