"""StaffManager - staff identities and their API key sets."""

from __future__ import annotations

import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Literal

import structlog
from sqlalchemy import func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from dinein.db.transactions import STORE_ERRORS, rollback_quietly, translate_store_error
from dinein.errors import ConflictError, ValidationError
from dinein.models.staff import Staff, StaffApiKey, StaffRole
from dinein.validators import validate_api_key

logger = structlog.get_logger()


@dataclass(frozen=True, slots=True)
class StaffCriteria:
    """Exact-match filter for a single staff member."""

    id: str | None = None
    name: str | None = None
    role: StaffRole | None = None
    api_key: str | None = None

    def __post_init__(self) -> None:
        if self.api_key is not None:
            validate_api_key(self.api_key)


@dataclass(frozen=True, slots=True)
class StaffSearch:
    """Loose filter for staff listings.

    Filters combine with AND. ``names`` matches any case-insensitive
    substring, ``roles`` any listed role, ``api_keys`` requires every key.
    """

    ids: Sequence[str] = field(default_factory=tuple)
    names: Sequence[str] = field(default_factory=tuple)
    roles: Sequence[StaffRole] = field(default_factory=tuple)
    api_keys: Sequence[str] = field(default_factory=tuple)
    sort: Literal["asc", "desc"] | None = None

    def __post_init__(self) -> None:
        for key in self.api_keys:
            validate_api_key(key, field_name="api_keys")
        if self.sort not in (None, "asc", "desc"):
            raise ValidationError(
                "Invalid sort direction", details={"field": "sort"}
            )


class StaffManager:
    """Manages staff identities."""

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session
        self._log = logger.bind(manager="staff")

    async def create(self, name: str, role: StaffRole) -> Staff:
        """Create a staff member with an empty key set.

        Raises:
            ValidationError: If name is blank
            ConflictError: If the name is taken
        """
        name = name.strip() if name else ""
        if not name:
            raise ValidationError("Staff name must not be empty", details={"field": "name"})

        if await self.find(StaffCriteria(name=name)) is not None:
            raise ConflictError(f"Staff name already exists: {name}")

        staff = Staff(id=f"staff-{uuid.uuid4().hex[:12]}", name=name, role=role)
        try:
            self._db.add(staff)
            await self._db.commit()
        except STORE_ERRORS as e:
            await rollback_quietly(self._db, operation="staff.create")
            raise translate_store_error(e) from e

        self._log.info("staff.create", staff_id=staff.id, role=staff.role.value)
        return staff

    async def find(self, criteria: StaffCriteria) -> Staff | None:
        """Find exactly matching staff member."""
        query = select(Staff)
        if criteria.id is not None:
            query = query.where(Staff.id == criteria.id)
        if criteria.name is not None:
            query = query.where(Staff.name == criteria.name)
        if criteria.role is not None:
            query = query.where(Staff.role == criteria.role)
        if criteria.api_key is not None:
            query = query.join(StaffApiKey, StaffApiKey.staff_id == Staff.id).where(
                StaffApiKey.api_key == criteria.api_key
            )

        try:
            result = await self._db.execute(query)
        except STORE_ERRORS as e:
            raise translate_store_error(e) from e
        return result.scalars().first()

    async def find_many(self, search: StaffSearch | None = None) -> list[Staff]:
        """List staff members matching every given filter."""
        search = search or StaffSearch()
        query = select(Staff)

        if search.ids:
            query = query.where(Staff.id.in_(list(search.ids)))
        if search.names:
            query = query.where(
                or_(*(func.lower(Staff.name).contains(n.lower()) for n in search.names))
            )
        if search.roles:
            query = query.where(Staff.role.in_(list(search.roles)))
        if search.api_keys:
            wanted = set(search.api_keys)
            holders = (
                select(StaffApiKey.staff_id)
                .where(StaffApiKey.api_key.in_(sorted(wanted)))
                .group_by(StaffApiKey.staff_id)
                .having(func.count(StaffApiKey.api_key) == len(wanted))
            )
            query = query.where(Staff.id.in_(holders))

        if search.sort == "asc":
            query = query.order_by(Staff.name.asc())
        elif search.sort == "desc":
            query = query.order_by(Staff.name.desc())

        try:
            result = await self._db.execute(query)
        except STORE_ERRORS as e:
            raise translate_store_error(e) from e
        return list(result.scalars().all())

    async def api_keys(self, staff_id: str) -> set[str]:
        """Get the key set of a staff member."""
        query = select(StaffApiKey.api_key).where(StaffApiKey.staff_id == staff_id)
        try:
            result = await self._db.execute(query)
        except STORE_ERRORS as e:
            raise translate_store_error(e) from e
        return set(result.scalars().all())

    async def count_by_role(self, role: StaffRole) -> int:
        query = select(func.count()).select_from(Staff).where(Staff.role == role)
        try:
            result = await self._db.execute(query)
        except STORE_ERRORS as e:
            raise translate_store_error(e) from e
        return result.scalar_one()
