"""Customer session data model.

A session is an anonymous customer interaction scoped to one table and
identified externally by its UUID.

State machine:
    active -> closed
    active -> cancelled
closed and cancelled are terminal.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Index
from sqlmodel import Field, SQLModel

from dinein.utils.datetime import utcnow


class SessionStatus(str, Enum):
    """Session lifecycle status."""

    ACTIVE = "active"
    CANCELLED = "cancelled"
    CLOSED = "closed"


class Session(SQLModel, table=True):
    """Customer session bound to a table."""

    __tablename__ = "sessions"
    __table_args__ = (Index("ix_sessions_table_status", "table_id", "status"),)

    id: str = Field(primary_key=True)
    uuid: str = Field(unique=True, index=True)
    status: SessionStatus = Field(default=SessionStatus.ACTIVE)
    table_id: str = Field(foreign_key="tables.id")

    created_at: datetime = Field(default_factory=utcnow)
    closed_at: Optional[datetime] = Field(default=None)

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.ACTIVE
