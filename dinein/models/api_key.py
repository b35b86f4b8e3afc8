"""API key data model.

Keys are bearer credentials: 64 lowercase hex characters, compared by exact
value. Ownership is recorded on the staff side (see ``StaffApiKey``).
"""

from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel

from dinein.utils.datetime import utcnow


class ApiKey(SQLModel, table=True):
    """Staff API key credential."""

    __tablename__ = "api_keys"

    id: str = Field(primary_key=True)
    key: str = Field(unique=True, index=True)  # 64 hex chars
    created_at: datetime = Field(default_factory=utcnow)
    expired_at: Optional[datetime] = Field(default=None, index=True)

    @property
    def key_prefix(self) -> str:
        """First 12 chars, safe to log."""
        return self.key[:12]

    def is_expired(self, now: datetime | None = None) -> bool:
        """Check if this key is past its expiry."""
        if self.expired_at is None:
            return False
        return self.expired_at <= (now or utcnow())
