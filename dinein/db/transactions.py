"""Transaction capability detection and store error translation.

Multi-record writes (API key creation) pick one of two strategies:

- transactional: all writes in one transaction, rollback on error
- sequential: commit each write, compensate on failure

``TransactionSupport`` is the probe that selects the branch. In ``auto``
mode it starts optimistic and flips to sequential for the rest of the
process once the store reports it cannot run transactions.
"""

from __future__ import annotations

from typing import Any, Literal

import structlog
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from dinein.errors import (
    ConflictError,
    DineinError,
    StoreError,
    TransactionUnsupportedError,
)

logger = structlog.get_logger()

# Exceptions that mean "the store failed", as opposed to programming errors
STORE_ERRORS: tuple[type[BaseException], ...] = (SQLAlchemyError, OSError, TimeoutError)

_UNSUPPORTED_MARKERS = (
    "transaction numbers",
    "illegaloperation",
    "transactions are not supported",
)


class TransactionSupport:
    """Process-wide record of whether the store runs transactions."""

    def __init__(self, mode: Literal["auto", "enabled", "disabled"] = "auto") -> None:
        self._mode = mode
        self._unsupported_detected = False
        self._log = logger.bind(component="transaction_support")

    @property
    def available(self) -> bool:
        """Whether the transactional branch should be attempted."""
        if self._mode == "disabled":
            return False
        if self._mode == "enabled":
            return True
        return not self._unsupported_detected

    @property
    def can_fall_back(self) -> bool:
        """Whether an unsupported-transaction error may switch branches."""
        return self._mode == "auto"

    def mark_unsupported(self, error: BaseException) -> None:
        """Record that the store rejected a transaction."""
        if self._mode != "auto":
            return
        if not self._unsupported_detected:
            self._log.warning(
                "db.transactions.unsupported",
                error=str(error),
                msg="Store rejected transactions; multi-record writes are now best-effort",
            )
        self._unsupported_detected = True


def is_transaction_unsupported(exc: BaseException) -> bool:
    """Classify a driver error as "transactions unsupported"."""
    if isinstance(exc, TransactionUnsupportedError):
        return True
    orig = getattr(exc, "orig", None)
    code = getattr(orig, "code", None)
    code_name = getattr(orig, "codeName", None)
    if code == 20 or code_name == "IllegalOperation":
        return True
    text = str(orig if orig is not None else exc).lower()
    if any(marker in text for marker in _UNSUPPORTED_MARKERS):
        return True
    return "transaction" in text and "not supported" in text


def translate_store_error(exc: BaseException) -> DineinError:
    """Map a driver/SQLAlchemy exception onto the dinein error taxonomy."""
    if isinstance(exc, DineinError):
        return exc
    details: dict[str, Any] = {"error_type": type(exc).__name__}
    if is_transaction_unsupported(exc):
        return TransactionUnsupportedError(details=details)
    if isinstance(exc, IntegrityError):
        return ConflictError("Conflicting record", details=details)
    return StoreError(details=details)


async def rollback_quietly(db: AsyncSession, **context: Any) -> None:
    """Abort the current transaction without masking the caller's error."""
    try:
        await db.rollback()
    except Exception as e:
        logger.warning("db.rollback_failed", error=str(e), **context)
