"""Background cleanup of expired records.

Usage:
    from dinein.services.gc import GCScheduler

    scheduler = GCScheduler(task_factory, config)
    await scheduler.start()
"""

from dinein.services.gc.base import GCResult, GCTask
from dinein.services.gc.scheduler import GCScheduler

__all__ = ["GCTask", "GCResult", "GCScheduler"]
