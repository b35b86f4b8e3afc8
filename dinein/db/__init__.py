"""Database access."""

from dinein.db.session import Database
from dinein.db.transactions import TransactionSupport, translate_store_error

__all__ = ["Database", "TransactionSupport", "translate_store_error"]
