"""Auth API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Request
from pydantic import BaseModel

from dinein.api.auth import OptionalStaffRoleDep

router = APIRouter()


class WhoAmIResponse(BaseModel):
    authenticated: bool
    role: str | None = None
    auth_source: str | None = None


@router.get("/me", response_model=WhoAmIResponse)
async def whoami(request: Request, role: OptionalStaffRoleDep) -> WhoAmIResponse:
    """Report the caller's staff role, logging in with ``x-api-key`` if sent."""
    return WhoAmIResponse(
        authenticated=role is not None,
        role=role,
        auth_source=getattr(request.state, "auth_source", None),
    )
