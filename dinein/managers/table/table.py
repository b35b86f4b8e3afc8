"""TableManager - dining table records and manual availability changes.

Reservation (flipping ``available`` for a new session) lives in
SessionManager; this manager covers setup and staff overrides.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass

import structlog
from sqlalchemy import delete, func, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from dinein.concurrency.locks import cleanup_table_lock
from dinein.db.transactions import STORE_ERRORS, rollback_quietly, translate_store_error
from dinein.errors import ConflictError, ValidationError
from dinein.models.table import DiningTable

logger = structlog.get_logger()


@dataclass(frozen=True, slots=True)
class TableCriteria:
    id: str | None = None
    number: int | None = None
    available: bool | None = None

    @property
    def is_empty(self) -> bool:
        return self.id is None and self.number is None and self.available is None

    def apply(self, query):
        if self.id is not None:
            query = query.where(DiningTable.id == self.id)
        if self.number is not None:
            query = query.where(DiningTable.number == self.number)
        if self.available is not None:
            query = query.where(DiningTable.available == self.available)
        return query


class TableManager:
    """Manages dining tables."""

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session
        self._log = logger.bind(manager="table")

    async def create(self, number: int | None = None) -> DiningTable:
        """Create a table.

        Args:
            number: Table number; defaults to one past the highest in use

        Raises:
            ValidationError: If number is not positive
            ConflictError: If the number is taken
        """
        if number is None:
            result = await self._execute(select(func.max(DiningTable.number)))
            number = (result.scalar_one_or_none() or 0) + 1
        elif number < 1:
            raise ValidationError("Table number must be positive", details={"field": "number"})

        table = DiningTable(id=f"tbl-{uuid.uuid4().hex[:12]}", number=number)
        try:
            self._db.add(table)
            await self._db.commit()
        except STORE_ERRORS as e:
            await rollback_quietly(self._db, operation="table.create")
            error = translate_store_error(e)
            if isinstance(error, ConflictError):
                raise ConflictError(f"Table number already exists: {number}") from e
            raise error from e

        self._log.info("table.create", table_id=table.id, number=number)
        return table

    async def find(self, criteria: TableCriteria) -> DiningTable | None:
        if criteria.is_empty:
            raise ValidationError("Table lookup requires at least one criterion")
        result = await self._execute(criteria.apply(select(DiningTable)))
        return result.scalars().first()

    async def find_many(self, criteria: TableCriteria | None = None) -> list[DiningTable]:
        query = (criteria or TableCriteria()).apply(select(DiningTable))
        result = await self._execute(query.order_by(DiningTable.number))
        return list(result.scalars().all())

    async def set_available(
        self,
        criteria: TableCriteria,
        available: bool,
    ) -> DiningTable | None:
        """Force a table's availability flag.

        Returns:
            The updated table, or None if nothing matched
        """
        table = await self.find(criteria)
        if table is None:
            return None

        try:
            await self._db.execute(
                update(DiningTable)
                .where(DiningTable.id == table.id)
                .values(available=available)
            )
            await self._db.commit()
        except STORE_ERRORS as e:
            await rollback_quietly(self._db, operation="table.set_available")
            raise translate_store_error(e) from e

        await self._db.refresh(table)
        self._log.info(
            "table.set_available",
            table_id=table.id,
            number=table.number,
            available=available,
        )
        return table

    async def delete(self, criteria: TableCriteria) -> bool:
        table = await self.find(criteria)
        if table is None:
            return False
        try:
            await self._db.execute(delete(DiningTable).where(DiningTable.id == table.id))
            await self._db.commit()
        except STORE_ERRORS as e:
            await rollback_quietly(self._db, operation="table.delete")
            raise translate_store_error(e) from e
        await cleanup_table_lock(table.id)
        self._log.info("table.delete", table_id=table.id, number=table.number)
        return True

    async def _execute(self, query):
        try:
            return await self._db.execute(query)
        except STORE_ERRORS as e:
            raise translate_store_error(e) from e
