"""Manager layer - business logic."""

from dinein.managers.api_key import ApiKeyManager
from dinein.managers.session import SessionManager
from dinein.managers.staff import StaffManager
from dinein.managers.table import TableManager

__all__ = ["ApiKeyManager", "SessionManager", "StaffManager", "TableManager"]
