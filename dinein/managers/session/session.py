"""SessionManager - customer sessions and table reservation.

A session is bound to exactly one table, and a table holds at most one
active session. Reservation runs as a single transaction:

1. check the table has no active session
2. compare-and-swap ``tables.available`` from true to false
3. insert the session row
4. commit

Any failure rolls the whole unit back, so a table is never left reserved
without a session and a session never exists without its reservation.
"""

from __future__ import annotations

import uuid as uuid_lib
from dataclasses import dataclass

import structlog
from sqlalchemy import delete, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from dinein.concurrency.locks import get_table_lock, get_table_pool_lock
from dinein.db.transactions import STORE_ERRORS, rollback_quietly, translate_store_error
from dinein.errors import (
    NoAvailableTablesError,
    NotFoundError,
    TableUnavailableError,
    ValidationError,
)
from dinein.models.session import Session, SessionStatus
from dinein.models.table import DiningTable
from dinein.utils.datetime import utcnow
from dinein.validators import validate_session_uuid

logger = structlog.get_logger()


@dataclass(frozen=True, slots=True)
class SessionCriteria:
    """Exact-match filter for sessions.

    ``uuid`` is validated and normalised on construction.
    """

    id: str | None = None
    uuid: str | None = None
    status: SessionStatus | None = None
    table_id: str | None = None

    def __post_init__(self) -> None:
        if self.uuid is not None:
            object.__setattr__(self, "uuid", validate_session_uuid(self.uuid))

    @property
    def identifies_one(self) -> bool:
        return self.id is not None or self.uuid is not None

    def apply(self, query):
        if self.id is not None:
            query = query.where(Session.id == self.id)
        if self.uuid is not None:
            query = query.where(Session.uuid == self.uuid)
        if self.status is not None:
            query = query.where(Session.status == self.status)
        if self.table_id is not None:
            query = query.where(Session.table_id == self.table_id)
        return query


@dataclass(frozen=True, slots=True)
class SessionAttributes:
    """Reservation target for a new session.

    Give at most one of ``table_id`` and ``table_number``; with neither,
    any available table is reserved.
    """

    table_id: str | None = None
    table_number: int | None = None

    def __post_init__(self) -> None:
        if self.table_id is not None and self.table_number is not None:
            raise ValidationError("Specify either table_id or table_number, not both")


class SessionManager:
    """Manages customer session lifecycle."""

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session
        self._log = logger.bind(manager="session")

    async def create(self, attributes: SessionAttributes | None = None) -> Session:
        """Create an active session and reserve its table.

        Args:
            attributes: Optional explicit table

        Returns:
            Created session

        Raises:
            NotFoundError: If the requested table does not exist
            TableUnavailableError: If the requested table is taken
            NoAvailableTablesError: If no table can be reserved
            StoreError: On data store failure
        """
        attrs = attributes or SessionAttributes()

        if attrs.table_id is None and attrs.table_number is None:
            async with get_table_pool_lock():
                return await self._create_on_any_table()

        table = await self._resolve_table(attrs)
        table_id, table_number = table.id, table.number
        lock = await get_table_lock(table_id)
        async with lock:
            session = await self._reserve(table_id)
            if session is None:
                raise TableUnavailableError(
                    details={"table_id": table_id, "table_number": table_number}
                )
            return session

    async def _resolve_table(self, attrs: SessionAttributes) -> DiningTable:
        query = select(DiningTable)
        if attrs.table_id is not None:
            query = query.where(DiningTable.id == attrs.table_id)
        else:
            query = query.where(DiningTable.number == attrs.table_number)

        try:
            result = await self._db.execute(query)
        except STORE_ERRORS as e:
            raise translate_store_error(e) from e
        table = result.scalars().first()
        if table is None:
            ref = attrs.table_id if attrs.table_id is not None else attrs.table_number
            raise NotFoundError(f"Table not found: {ref}")
        return table

    async def _create_on_any_table(self) -> Session:
        """Reserve the first available table, moving on when a race is lost."""
        try:
            result = await self._db.execute(
                select(DiningTable.id)
                .where(DiningTable.available == True)  # noqa: E712
                .order_by(DiningTable.number)
            )
            candidates = list(result.scalars().all())
        except STORE_ERRORS as e:
            await rollback_quietly(self._db, operation="session.create")
            raise translate_store_error(e) from e

        for table_id in candidates:
            lock = await get_table_lock(table_id)
            async with lock:
                session = await self._reserve(table_id)
            if session is not None:
                return session
            self._log.debug("session.create.candidate_taken", table_id=table_id)

        raise NoAvailableTablesError()

    async def _reserve(self, table_id: str) -> Session | None:
        """Run the reservation transaction for one table.

        Caller must hold the table lock.

        Returns:
            The new session, or None if the table was not reservable
        """
        try:
            active = await self._db.execute(
                select(Session.id).where(
                    Session.table_id == table_id,
                    Session.status == SessionStatus.ACTIVE,
                )
            )
            if active.scalars().first() is not None:
                await rollback_quietly(self._db, operation="session.create")
                return None

            flipped = await self._db.execute(
                update(DiningTable)
                .where(DiningTable.id == table_id, DiningTable.available == True)  # noqa: E712
                .values(available=False)
            )
            if flipped.rowcount == 0:
                await rollback_quietly(self._db, operation="session.create")
                return None

            session = Session(
                id=f"sess-{uuid_lib.uuid4().hex[:12]}",
                uuid=str(uuid_lib.uuid4()),
                status=SessionStatus.ACTIVE,
                table_id=table_id,
                created_at=utcnow(),
            )
            self._db.add(session)
            await self._db.commit()
        except Exception as e:
            await rollback_quietly(self._db, operation="session.create")
            if isinstance(e, STORE_ERRORS):
                raise translate_store_error(e) from e
            raise

        self._log.info(
            "session.create",
            session_id=session.id,
            session_uuid=session.uuid,
            table_id=table_id,
        )
        return session

    async def find(self, criteria: SessionCriteria) -> Session | None:
        """Find exactly matching session.

        Raises:
            ValidationError: If criteria names neither uuid nor id
        """
        if not criteria.identifies_one:
            raise ValidationError("Session lookup requires a uuid or id")
        try:
            result = await self._db.execute(criteria.apply(select(Session)))
        except STORE_ERRORS as e:
            raise translate_store_error(e) from e
        return result.scalars().first()

    async def find_many(self, criteria: SessionCriteria | None = None) -> list[Session]:
        query = (criteria or SessionCriteria()).apply(select(Session))
        try:
            result = await self._db.execute(query.order_by(Session.created_at))
        except STORE_ERRORS as e:
            raise translate_store_error(e) from e
        return list(result.scalars().all())

    async def close(self, criteria: SessionCriteria) -> Session | None:
        """Transition an active session to closed.

        The table stays reserved until staff release it.

        Returns:
            The closed session, or None if no active session matched
        """
        return await self._finish(criteria, SessionStatus.CLOSED)

    async def cancel(self, criteria: SessionCriteria) -> Session | None:
        """Transition an active session to cancelled."""
        return await self._finish(criteria, SessionStatus.CANCELLED)

    async def _finish(
        self,
        criteria: SessionCriteria,
        status: SessionStatus,
    ) -> Session | None:
        if criteria.status not in (None, SessionStatus.ACTIVE):
            return None

        session = await self.find(criteria)
        if session is None or not session.is_active:
            return None

        closed_at = utcnow()
        try:
            result = await self._db.execute(
                update(Session)
                .where(Session.id == session.id, Session.status == SessionStatus.ACTIVE)
                .values(status=status, closed_at=closed_at)
            )
            await self._db.commit()
        except STORE_ERRORS as e:
            await rollback_quietly(self._db, operation=f"session.{status.value}")
            raise translate_store_error(e) from e

        # Lost a race with another close/cancel
        if result.rowcount == 0:
            return None

        await self._db.refresh(session)
        self._log.info(
            f"session.{status.value}",
            session_id=session.id,
            session_uuid=session.uuid,
            table_id=session.table_id,
        )
        return session

    async def delete(self, criteria: SessionCriteria) -> bool:
        session = await self.find(criteria)
        if session is None:
            return False
        try:
            await self._db.execute(delete(Session).where(Session.id == session.id))
            await self._db.commit()
        except STORE_ERRORS as e:
            await rollback_quietly(self._db, operation="session.delete")
            raise translate_store_error(e) from e
        self._log.info("session.delete", session_id=session.id)
        return True
