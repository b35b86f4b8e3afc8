"""dinein FastAPI application entry point."""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from dinein import __version__
from dinein.api.auth import clear_auth_cookie
from dinein.config import Settings, get_settings
from dinein.db.session import Database
from dinein.db.transactions import TransactionSupport
from dinein.errors import DineinError
from dinein.services.auth_cookie import AuthCookieCodec
from dinein.services.bootstrap import bootstrap_admin
from dinein.services.gc.lifecycle import init_gc_scheduler

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    settings: Settings = app.state.settings
    database: Database = app.state.database

    logger.info("dinein.startup", version=__version__, environment=settings.environment)
    await database.init()

    async with database.session() as db:
        await bootstrap_admin(db, settings, app.state.transactions)

    app.state.gc_scheduler = await init_gc_scheduler(
        database, settings, app.state.transactions
    )

    yield

    logger.info("dinein.shutdown")

    await app.state.gc_scheduler.stop()
    app.state.gc_scheduler = None

    await database.close()


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure FastAPI application.

    Raises:
        ConfigurationError: If the cookie secret cannot be resolved
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="dinein",
        description="Staff authentication and table sessions for restaurant ordering",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.cookie_codec = AuthCookieCodec.from_settings(settings)
    app.state.database = Database(settings.database)
    app.state.transactions = TransactionSupport(settings.database.transactions)
    app.state.gc_scheduler = None

    # Request ID middleware
    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        """Add request ID to all requests."""
        request_id = request.headers.get("X-Request-Id") or str(uuid.uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-Id"] = request_id
        return response

    # Error handler
    @app.exception_handler(DineinError)
    async def dinein_error_handler(request: Request, exc: DineinError):
        """Handle dinein errors with consistent format."""
        request_id = getattr(request.state, "request_id", None)
        if exc.status_code >= 500:
            logger.error(
                "request.failed",
                code=exc.code,
                error=exc.message,
                path=request.url.path,
                request_id=request_id,
            )
        response = JSONResponse(
            status_code=exc.status_code,
            content=exc.to_dict(request_id),
        )
        if getattr(request.state, "clear_auth_cookie", False):
            clear_auth_cookie(response, settings)
        return response

    # Health check
    @app.get("/health")
    async def health() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok"}

    from dinein.api.v1 import router as v1_router

    app.include_router(v1_router, prefix=f"/{settings.server.api_version}")

    return app


def main() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "dinein.main:create_app",
        factory=True,
        host=settings.server.host,
        port=settings.server.port,
    )


if __name__ == "__main__":
    main()
