"""ExpiredApiKeyGC - remove API keys past their expiry."""

from __future__ import annotations

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from dinein.db.transactions import TransactionSupport
from dinein.errors import DineinError
from dinein.managers.api_key import ApiKeyManager
from dinein.services.gc.base import GCResult, GCTask
from dinein.utils.datetime import utcnow

logger = structlog.get_logger()


class ExpiredApiKeyGC(GCTask):
    """Deletes expired keys and their staff memberships.

    Trigger condition:
        api_key.expired_at <= now
    """

    def __init__(
        self,
        db_session: AsyncSession,
        transactions: TransactionSupport | None = None,
    ) -> None:
        self._db = db_session
        self._api_key_mgr = ApiKeyManager(db_session, transactions)
        self._log = logger.bind(gc_task="expired_api_key")

    @property
    def name(self) -> str:
        return "expired_api_key"

    async def run(self) -> GCResult:
        result = GCResult(task_name=self.name)
        now = utcnow()

        try:
            result.cleaned_count = await self._api_key_mgr.delete_expired(now)
        except DineinError as e:
            self._log.warning("gc.expired_api_key.failed", error=e.message)
            result.add_error(f"{e.code}: {e.message}")
            return result

        if result.cleaned_count:
            self._log.info("gc.expired_api_key.cleaned", count=result.cleaned_count)
        return result
