"""Concurrency utilities for dinein."""

from dinein.concurrency.locks import (
    cleanup_table_lock,
    get_table_lock,
    get_table_pool_lock,
)

__all__ = ["get_table_lock", "get_table_pool_lock", "cleanup_table_lock"]
