"""Staff data models.

A staff member holds a role and a set of API keys. The set is stored as a
link table so adding or removing a key is a single-row write.
"""

from enum import Enum

from sqlmodel import Field, SQLModel


class StaffRole(str, Enum):
    """Fixed staff roles."""

    CHEF = "chef"
    WAITER = "waiter"
    ADMIN = "admin"


class Staff(SQLModel, table=True):
    """Staff identity."""

    __tablename__ = "staff"

    id: str = Field(primary_key=True)
    name: str = Field(unique=True, index=True)
    role: StaffRole = Field()


class StaffApiKey(SQLModel, table=True):
    """Membership of an API key in a staff member's key set."""

    __tablename__ = "staff_api_keys"

    staff_id: str = Field(foreign_key="staff.id", primary_key=True)
    api_key: str = Field(foreign_key="api_keys.key", primary_key=True, index=True)
