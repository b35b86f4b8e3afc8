"""Unit tests for ApiKeyManager.

Covers both creation branches (transactional and sequential with
compensation), lookups with shape checks, and cascading deletes.
"""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from dinein.db.transactions import TransactionSupport
from dinein.errors import (
    ConflictError,
    FormatError,
    NotFoundError,
    StoreError,
    TransactionUnsupportedError,
    ValidationError,
)
from dinein.managers.api_key import (
    ApiKeyAttributes,
    ApiKeyCriteria,
    ApiKeyManager,
    generate_api_key,
)
from dinein.managers.staff import StaffManager
from dinein.models.api_key import ApiKey
from dinein.models.staff import Staff, StaffApiKey, StaffRole
from dinein.utils.datetime import utcnow


@pytest.fixture
async def staff(db_session: AsyncSession) -> Staff:
    return await StaffManager(db_session).create("alice", StaffRole.WAITER)


async def _all_keys(db: AsyncSession) -> list[ApiKey]:
    return list((await db.execute(select(ApiKey))).scalars().all())


async def _all_links(db: AsyncSession) -> list[StaffApiKey]:
    return list((await db.execute(select(StaffApiKey))).scalars().all())


def _unsupported_error() -> OperationalError:
    return OperationalError(
        "BEGIN",
        {},
        Exception("Transaction numbers are only allowed on a replica set member or mongos"),
    )


class TestGenerateKey:
    def test_shape(self):
        key = generate_api_key()
        assert len(key) == 64
        assert all(c in "0123456789abcdef" for c in key)

    def test_unique(self):
        assert len({generate_api_key() for _ in range(50)}) == 50


class TestApiKeyRecord:
    def test_key_prefix(self):
        record = ApiKey(id="key-1", key="0123456789ab" + "f" * 52)
        assert record.key_prefix == "0123456789ab"

    def test_is_expired(self):
        now = utcnow()
        never = ApiKey(id="key-1", key="a" * 64)
        lapsing = ApiKey(id="key-2", key="b" * 64, expired_at=now)

        assert not never.is_expired(now)
        assert lapsing.is_expired(now)
        assert not lapsing.is_expired(now - timedelta(milliseconds=1))


class TestCreateTransactional:
    async def test_creates_key_and_binding(self, db_session, staff):
        mgr = ApiKeyManager(db_session, TransactionSupport("enabled"))

        key = await mgr.create(staff.id)

        record = await mgr.find(ApiKeyCriteria(key=key))
        assert record is not None
        assert record.id.startswith("key-")
        assert record.expired_at is None
        assert await StaffManager(db_session).api_keys(staff.id) == {key}

    async def test_seeded_key_and_expiry(self, db_session, staff):
        mgr = ApiKeyManager(db_session)
        seeded = "b" * 64
        created_at = utcnow()
        expired_at = created_at + timedelta(days=30)

        key = await mgr.create(
            staff.id,
            ApiKeyAttributes(key=seeded, created_at=created_at, expired_at=expired_at),
        )

        assert key == seeded
        record = await mgr.find(ApiKeyCriteria(key=seeded))
        assert record.expired_at == expired_at

    async def test_unknown_staff_leaves_nothing(self, db_session):
        mgr = ApiKeyManager(db_session, TransactionSupport("enabled"))

        with pytest.raises(NotFoundError):
            await mgr.create("staff-missing")

        assert await _all_keys(db_session) == []
        assert await _all_links(db_session) == []

    async def test_duplicate_key_conflicts(self, db_session, staff):
        mgr = ApiKeyManager(db_session)
        key = await mgr.create(staff.id)

        with pytest.raises(ConflictError):
            await mgr.create(staff.id, ApiKeyAttributes(key=key))

        assert len(await _all_keys(db_session)) == 1

    async def test_empty_staff_id_rejected(self, db_session):
        with pytest.raises(ValidationError):
            await ApiKeyManager(db_session).create("")

    async def test_store_failure_on_bind_rolls_back(self, db_session, staff):
        mgr = ApiKeyManager(db_session, TransactionSupport("enabled"))

        with patch.object(
            mgr,
            "_bind_to_staff",
            AsyncMock(side_effect=OperationalError("INSERT", {}, Exception("disk I/O error"))),
        ):
            with pytest.raises(StoreError) as exc_info:
                await mgr.create(staff.id)

        assert not isinstance(exc_info.value, TransactionUnsupportedError)
        assert await _all_keys(db_session) == []


class TestAttributesValidation:
    def test_expiry_must_follow_creation(self):
        now = utcnow()
        with pytest.raises(ValidationError):
            ApiKeyAttributes(created_at=now, expired_at=now)

    def test_expiry_before_creation_rejected(self):
        with pytest.raises(ValidationError):
            ApiKeyAttributes(created_at=utcnow(), expired_at=utcnow() - timedelta(seconds=1))

    def test_malformed_seed_key_rejected(self):
        with pytest.raises(FormatError):
            ApiKeyAttributes(key="not-hex")

    async def test_expiry_before_default_creation_rejected(self, db_session, staff):
        mgr = ApiKeyManager(db_session)

        with pytest.raises(ValidationError):
            await mgr.create(
                staff.id, ApiKeyAttributes(expired_at=utcnow() - timedelta(hours=1))
            )


class TestCreateSequential:
    async def test_disabled_mode_creates_both(self, db_session, staff):
        mgr = ApiKeyManager(db_session, TransactionSupport("disabled"))

        key = await mgr.create(staff.id)

        assert [k.key for k in await _all_keys(db_session)] == [key]
        assert await StaffManager(db_session).api_keys(staff.id) == {key}

    async def test_bind_failure_deletes_orphan(self, db_session):
        mgr = ApiKeyManager(db_session, TransactionSupport("disabled"))

        with pytest.raises(NotFoundError):
            await mgr.create("staff-missing")

        assert await _all_keys(db_session) == []

    async def test_orphan_cleanup_failure_keeps_original_error(self, db_session):
        mgr = ApiKeyManager(db_session, TransactionSupport("disabled"))

        with patch.object(
            mgr, "_delete_orphaned_key", AsyncMock(return_value=False)
        ) as cleanup:
            with pytest.raises(NotFoundError):
                await mgr.create("staff-missing")

        cleanup.assert_awaited_once()
        # Compensation did not run, so the credential is left behind
        assert len(await _all_keys(db_session)) == 1

    async def test_delete_orphaned_key_logs_and_returns_false(self, db_session):
        mgr = ApiKeyManager(db_session)

        with patch.object(
            db_session,
            "execute",
            AsyncMock(side_effect=OperationalError("DELETE", {}, Exception("locked"))),
        ):
            assert await mgr._delete_orphaned_key("c" * 64) is False


class TestTransactionFallback:
    async def test_unsupported_transactions_fall_back(self, db_session, staff):
        staff_id = staff.id
        support = TransactionSupport("auto")
        mgr = ApiKeyManager(db_session, support)
        original_bind = mgr._bind_to_staff
        calls = 0

        async def bind_once_unsupported(key, staff_id):
            nonlocal calls
            calls += 1
            if calls == 1:
                raise _unsupported_error()
            await original_bind(key, staff_id)

        with patch.object(mgr, "_bind_to_staff", side_effect=bind_once_unsupported):
            key = await mgr.create(staff_id)

        assert calls == 2
        assert support.available is False
        assert [k.key for k in await _all_keys(db_session)] == [key]
        assert await StaffManager(db_session).api_keys(staff_id) == {key}

    async def test_later_creates_skip_transactions(self, db_session, staff):
        support = TransactionSupport("auto")
        support.mark_unsupported(RuntimeError("probe"))
        mgr = ApiKeyManager(db_session, support)

        with patch.object(mgr, "_create_transactional", AsyncMock()) as tx_branch:
            await mgr.create(staff.id)

        tx_branch.assert_not_awaited()

    async def test_enabled_mode_does_not_fall_back(self, db_session, staff):
        mgr = ApiKeyManager(db_session, TransactionSupport("enabled"))

        with patch.object(mgr, "_bind_to_staff", AsyncMock(side_effect=_unsupported_error())):
            with pytest.raises(TransactionUnsupportedError):
                await mgr.create(staff.id)

        assert await _all_keys(db_session) == []


class TestFind:
    async def test_find_by_id_and_key(self, db_session, staff):
        mgr = ApiKeyManager(db_session)
        key = await mgr.create(staff.id)
        record = await mgr.find(ApiKeyCriteria(key=key))

        assert (await mgr.find(ApiKeyCriteria(id=record.id))).key == key
        assert await mgr.find(ApiKeyCriteria(id=record.id, key="d" * 64)) is None

    async def test_unknown_key_returns_none(self, db_session):
        assert await ApiKeyManager(db_session).find(ApiKeyCriteria(key="e" * 64)) is None

    async def test_malformed_key_rejected_before_store(self, db_session):
        mgr = ApiKeyManager(db_session)

        with patch.object(db_session, "execute", AsyncMock()) as execute:
            with pytest.raises(FormatError):
                await mgr.find(ApiKeyCriteria(key="' OR 1=1 --"))

        execute.assert_not_awaited()

    async def test_empty_criteria_rejected(self, db_session):
        with pytest.raises(ValidationError):
            await ApiKeyManager(db_session).find(ApiKeyCriteria())

    async def test_list_for_staff(self, db_session, staff):
        mgr = ApiKeyManager(db_session)
        first = await mgr.create(staff.id)
        second = await mgr.create(staff.id)

        keys = await mgr.list_for_staff(staff.id)

        assert {k.key for k in keys} == {first, second}


class TestDelete:
    async def test_requires_id_and_key(self, db_session, staff):
        mgr = ApiKeyManager(db_session)
        key = await mgr.create(staff.id)
        record = await mgr.find(ApiKeyCriteria(key=key))

        assert await mgr.delete(ApiKeyCriteria(key=key)) is False
        assert await mgr.delete(ApiKeyCriteria(id=record.id)) is False
        assert len(await _all_keys(db_session)) == 1

    async def test_delete_cascades_binding(self, db_session, staff):
        mgr = ApiKeyManager(db_session)
        key = await mgr.create(staff.id)
        record = await mgr.find(ApiKeyCriteria(key=key))

        assert await mgr.delete(ApiKeyCriteria(id=record.id, key=key)) is True

        assert await _all_keys(db_session) == []
        assert await _all_links(db_session) == []

    async def test_delete_mismatched_pair(self, db_session, staff):
        mgr = ApiKeyManager(db_session)
        key = await mgr.create(staff.id)

        assert await mgr.delete(ApiKeyCriteria(id="key-other", key=key)) is False
        assert len(await _all_keys(db_session)) == 1

    async def test_delete_created_before(self, db_session, staff):
        mgr = ApiKeyManager(db_session)
        now = utcnow()
        old = await mgr.create(staff.id, ApiKeyAttributes(created_at=now - timedelta(days=10)))
        fresh = await mgr.create(staff.id, ApiKeyAttributes(created_at=now))

        deleted = await mgr.delete_created_before(now - timedelta(days=1))

        assert deleted == 1
        assert await StaffManager(db_session).api_keys(staff.id) == {fresh}
        assert await mgr.find(ApiKeyCriteria(key=old)) is None

    async def test_delete_expired(self, db_session, staff):
        mgr = ApiKeyManager(db_session)
        now = utcnow()
        expired = await mgr.create(
            staff.id,
            ApiKeyAttributes(
                created_at=now - timedelta(days=2),
                expired_at=now - timedelta(days=1),
            ),
        )
        live = await mgr.create(
            staff.id, ApiKeyAttributes(created_at=now, expired_at=now + timedelta(days=1))
        )
        forever = await mgr.create(staff.id)

        deleted = await mgr.delete_expired(now)

        assert deleted == 1
        assert await mgr.find(ApiKeyCriteria(key=expired)) is None
        assert await StaffManager(db_session).api_keys(staff.id) == {live, forever}
