"""Dining table data model."""

from sqlmodel import Field, SQLModel


class DiningTable(SQLModel, table=True):
    """Physical table a customer session can be bound to.

    ``available`` is false while an active session holds the table.
    SessionManager claims it with a compare-and-swap update; the release
    endpoint sets it back through ``TableManager.set_available``.
    """

    __tablename__ = "tables"

    id: str = Field(primary_key=True)
    number: int = Field(unique=True, index=True)
    available: bool = Field(default=True, index=True)
