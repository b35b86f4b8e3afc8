"""ApiKeyManager - credential store for staff API keys.

Creating a key is a dual write: the credential row and its membership in
the owning staff member's key set. ``TransactionSupport`` decides whether
that runs as one transaction or as two committed writes with compensation.
"""

from __future__ import annotations

import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime

import structlog
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from dinein.db.transactions import (
    STORE_ERRORS,
    TransactionSupport,
    rollback_quietly,
    translate_store_error,
)
from dinein.errors import NotFoundError, TransactionUnsupportedError, ValidationError
from dinein.models.api_key import ApiKey
from dinein.models.staff import Staff, StaffApiKey
from dinein.utils.datetime import utcnow
from dinein.validators import validate_api_key

logger = structlog.get_logger()


def generate_api_key() -> str:
    """Generate a new 256-bit key as 64 lowercase hex chars."""
    return secrets.token_hex(32)


@dataclass(frozen=True, slots=True)
class ApiKeyCriteria:
    """Exact-match filter for API keys.

    The key shape is checked on construction, before any query exists.
    """

    id: str | None = None
    key: str | None = None

    def __post_init__(self) -> None:
        if self.key is not None:
            validate_api_key(self.key)

    @property
    def is_empty(self) -> bool:
        return self.id is None and self.key is None


@dataclass(frozen=True, slots=True)
class ApiKeyAttributes:
    """Optional overrides applied when creating a key."""

    key: str | None = None
    created_at: datetime | None = None
    expired_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.key is not None:
            validate_api_key(self.key)
        if (
            self.created_at is not None
            and self.expired_at is not None
            and self.created_at >= self.expired_at
        ):
            raise ValidationError(
                "Invalid expiration date - must be after creation date",
                details={"field": "expired_at"},
            )


class ApiKeyManager:
    """Manages API key lifecycle and staff key-set consistency."""

    def __init__(
        self,
        db_session: AsyncSession,
        transactions: TransactionSupport | None = None,
    ) -> None:
        self._db = db_session
        self._tx = transactions or TransactionSupport()
        self._log = logger.bind(manager="api_key")

    async def create(
        self,
        staff_id: str,
        attributes: ApiKeyAttributes | None = None,
    ) -> str:
        """Create a key and add it to the staff member's key set.

        Args:
            staff_id: Owning staff ID
            attributes: Optional key/created_at/expired_at overrides

        Returns:
            The plaintext key

        Raises:
            ValidationError: If staff_id is empty
            NotFoundError: If the staff member does not exist
            ConflictError: If the key already exists
            StoreError: On data store failure
        """
        if not staff_id:
            raise ValidationError("staff_id must be provided when creating an API key")

        attrs = attributes or ApiKeyAttributes()
        created_at = attrs.created_at or utcnow()
        if attrs.expired_at is not None and attrs.expired_at <= created_at:
            raise ValidationError(
                "Invalid expiration date - must be after creation date",
                details={"field": "expired_at"},
            )
        fields = {
            "id": f"key-{uuid.uuid4().hex[:12]}",
            "key": attrs.key or generate_api_key(),
            "created_at": created_at,
            "expired_at": attrs.expired_at,
        }
        key = fields["key"]

        self._log.info(
            "api_key.create",
            staff_id=staff_id,
            key_prefix=key[:12],
            transactional=self._tx.available,
        )

        if self._tx.available:
            try:
                await self._create_transactional(ApiKey(**fields), staff_id)
                return key
            except TransactionUnsupportedError as e:
                if not self._tx.can_fall_back:
                    raise
                self._tx.mark_unsupported(e)

        self._log.warning(
            "api_key.create.fallback",
            staff_id=staff_id,
            key_prefix=key[:12],
            msg="Creating API key without a transaction; consistency is best-effort",
        )
        await self._create_sequential(ApiKey(**fields), staff_id)
        return key

    async def _create_transactional(self, record: ApiKey, staff_id: str) -> None:
        """Insert credential and membership, committing both or neither."""
        key = record.key
        try:
            self._db.add(record)
            await self._db.flush()
            await self._bind_to_staff(key, staff_id)
            await self._db.commit()
        except Exception as e:
            await rollback_quietly(self._db, operation="api_key.create")
            if isinstance(e, STORE_ERRORS):
                raise translate_store_error(e) from e
            raise

    async def _create_sequential(self, record: ApiKey, staff_id: str) -> None:
        """Commit the credential, then the membership; undo on failure."""
        key = record.key
        try:
            self._db.add(record)
            await self._db.commit()
        except STORE_ERRORS as e:
            await rollback_quietly(self._db, operation="api_key.create.insert")
            raise translate_store_error(e) from e

        try:
            await self._bind_to_staff(key, staff_id)
            await self._db.commit()
        except Exception as e:
            self._log.error(
                "api_key.create.bind_failed",
                staff_id=staff_id,
                key_prefix=key[:12],
                error=str(e),
                msg="Failed to add API key to staff, cleaning up orphaned key",
            )
            await rollback_quietly(self._db, operation="api_key.create.bind")
            await self._delete_orphaned_key(key)
            if isinstance(e, STORE_ERRORS):
                raise translate_store_error(e) from e
            raise

    async def _bind_to_staff(self, key: str, staff_id: str) -> None:
        staff = await self._db.get(Staff, staff_id)
        if staff is None:
            raise NotFoundError(f"Staff member not found: {staff_id}")
        self._db.add(StaffApiKey(staff_id=staff_id, api_key=key))
        await self._db.flush()

    async def _delete_orphaned_key(self, key: str) -> bool:
        """Compensate a failed binding by removing the committed credential.

        Failure here is logged only; the caller's error decides the outcome.

        Returns:
            True if the orphan was removed
        """
        try:
            await self._db.execute(delete(ApiKey).where(ApiKey.key == key))
            await self._db.commit()
        except Exception as e:
            self._log.error(
                "api_key.orphan_cleanup_failed",
                key_prefix=key[:12],
                error=str(e),
            )
            await rollback_quietly(self._db, operation="api_key.orphan_cleanup")
            return False
        self._log.info("api_key.orphan_cleaned", key_prefix=key[:12])
        return True

    async def find(self, criteria: ApiKeyCriteria) -> ApiKey | None:
        """Find exactly matching API key.

        Raises:
            ValidationError: If criteria is empty
        """
        if criteria.is_empty:
            raise ValidationError("API key lookup requires an id or key")

        query = select(ApiKey)
        if criteria.id is not None:
            query = query.where(ApiKey.id == criteria.id)
        if criteria.key is not None:
            query = query.where(ApiKey.key == criteria.key)

        try:
            result = await self._db.execute(query)
        except STORE_ERRORS as e:
            raise translate_store_error(e) from e
        return result.scalars().first()

    async def list_for_staff(self, staff_id: str) -> list[ApiKey]:
        """List the keys in a staff member's key set."""
        query = (
            select(ApiKey)
            .join(StaffApiKey, StaffApiKey.api_key == ApiKey.key)
            .where(StaffApiKey.staff_id == staff_id)
            .order_by(ApiKey.created_at)
        )
        try:
            result = await self._db.execute(query)
        except STORE_ERRORS as e:
            raise translate_store_error(e) from e
        return list(result.scalars().all())

    async def delete(self, criteria: ApiKeyCriteria) -> bool:
        """Delete one key matched by both id and key value.

        Returns:
            True if a key was deleted. False if criteria is incomplete or
            nothing matched.
        """
        if criteria.id is None or criteria.key is None:
            self._log.warning(
                "api_key.delete.skip",
                reason="delete requires both id and key",
            )
            return False

        match = (ApiKey.id == criteria.id) & (ApiKey.key == criteria.key)
        deleted = await self._delete_where(match, operation="api_key.delete")
        return deleted > 0

    async def delete_created_before(self, cutoff: datetime) -> int:
        """Delete every key created strictly before ``cutoff``."""
        return await self._delete_where(
            ApiKey.created_at < cutoff,
            operation="api_key.delete_created_before",
        )

    async def delete_expired(self, now: datetime | None = None) -> int:
        """Delete every key whose expiry has passed."""
        now = now or utcnow()
        return await self._delete_where(
            ApiKey.expired_at.is_not(None) & (ApiKey.expired_at <= now),
            operation="api_key.delete_expired",
        )

    async def _delete_where(self, condition, *, operation: str) -> int:
        """Delete matching keys and their staff memberships in one commit."""
        keys_query = select(ApiKey.key).where(condition)
        try:
            await self._db.execute(
                delete(StaffApiKey).where(StaffApiKey.api_key.in_(keys_query))
            )
            result = await self._db.execute(delete(ApiKey).where(condition))
            await self._db.commit()
        except STORE_ERRORS as e:
            await rollback_quietly(self._db, operation=operation)
            raise translate_store_error(e) from e

        deleted = result.rowcount or 0
        self._log.info(operation, deleted=deleted)
        return deleted
