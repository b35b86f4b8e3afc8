"""GC lifecycle management for FastAPI lifespan integration."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog

from dinein.config import Settings
from dinein.db.session import Database
from dinein.db.transactions import TransactionSupport
from dinein.services.gc.base import GCTask
from dinein.services.gc.scheduler import GCScheduler, TaskFactory
from dinein.services.gc.tasks import ExpiredApiKeyGC

logger = structlog.get_logger()


def build_task_factory(
    database: Database,
    settings: Settings,
    transactions: TransactionSupport | None = None,
) -> TaskFactory:
    """Tasks for one cycle share a fresh db session, closed after the cycle."""
    gc_config = settings.gc

    @asynccontextmanager
    async def create_tasks() -> AsyncIterator[list[GCTask]]:
        async with database.session_factory() as db_session:
            tasks: list[GCTask] = []
            if gc_config.expired_api_key.enabled:
                tasks.append(ExpiredApiKeyGC(db_session, transactions))
            yield tasks

    return create_tasks


async def init_gc_scheduler(
    database: Database,
    settings: Settings,
    transactions: TransactionSupport | None = None,
) -> GCScheduler:
    """Create the GC scheduler, and start it if enabled.

    The scheduler always exists so the admin API can trigger a cycle, but
    the background loop only runs when ``gc.enabled`` is true.
    """
    gc_config = settings.gc

    logger.info(
        "gc.init",
        enabled=gc_config.enabled,
        interval_seconds=gc_config.interval_seconds,
        run_on_startup=gc_config.run_on_startup,
        tasks={"expired_api_key": gc_config.expired_api_key.enabled},
    )

    scheduler = GCScheduler(
        build_task_factory(database, settings, transactions),
        config=gc_config,
    )

    if not gc_config.enabled:
        logger.info("gc.background_disabled", reason="gc.enabled=false")
        return scheduler

    if gc_config.run_on_startup:
        try:
            results = await scheduler.run_once()
            logger.info(
                "gc.run_on_startup.complete",
                cleaned=sum(r.cleaned_count for r in results),
                errors=sum(len(r.errors) for r in results),
            )
        except Exception as e:
            # Startup continues without a first sweep
            logger.exception("gc.run_on_startup.failed", error=str(e))

    await scheduler.start()
    return scheduler
