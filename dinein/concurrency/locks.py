"""Table-level in-memory locks for reservation concurrency.

Serialises session creation against the same table inside one process, so
the "no active session" check and the availability flip of one request
cannot interleave with another's.

Note: These locks only work within a single process/instance. Across
instances the compare-and-swap update on ``tables.available`` inside the
reservation transaction is what prevents double booking.
"""

from __future__ import annotations

import asyncio

# Key: table id, Value: asyncio.Lock
_table_locks: dict[str, asyncio.Lock] = {}
_table_locks_lock = asyncio.Lock()

# Held while picking "any available table"
_pool_lock = asyncio.Lock()


async def get_table_lock(table_id: str) -> asyncio.Lock:
    """Get or create a lock for a specific table.

    Args:
        table_id: The table ID to get lock for

    Returns:
        asyncio.Lock for the specified table
    """
    async with _table_locks_lock:
        if table_id not in _table_locks:
            _table_locks[table_id] = asyncio.Lock()
        return _table_locks[table_id]


def get_table_pool_lock() -> asyncio.Lock:
    """Lock serialising reservations that let the store pick a table."""
    return _pool_lock


async def cleanup_table_lock(table_id: str) -> None:
    """Cleanup lock for a deleted table."""
    async with _table_locks_lock:
        _table_locks.pop(table_id, None)


def get_lock_count() -> int:
    """Get current number of locks (for testing/metrics)."""
    return len(_table_locks)
