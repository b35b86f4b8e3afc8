"""SQLModel data models."""

from dinein.models.api_key import ApiKey
from dinein.models.session import Session, SessionStatus
from dinein.models.staff import Staff, StaffApiKey, StaffRole
from dinein.models.table import DiningTable

__all__ = [
    "ApiKey",
    "DiningTable",
    "Session",
    "SessionStatus",
    "Staff",
    "StaffApiKey",
    "StaffRole",
]
