"""API v1 router."""

from fastapi import APIRouter

from dinein.api.v1.admin import router as admin_router
from dinein.api.v1.auth import router as auth_router
from dinein.api.v1.sessions import router as sessions_router
from dinein.api.v1.tables import router as tables_router

router = APIRouter()

# Include sub-routers
router.include_router(auth_router, prefix="/auth", tags=["auth"])
router.include_router(sessions_router, prefix="/sessions", tags=["sessions"])
router.include_router(tables_router, prefix="/tables", tags=["tables"])
router.include_router(admin_router, prefix="/admin", tags=["admin"])
