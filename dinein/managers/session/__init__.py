from dinein.managers.session.session import (
    SessionAttributes,
    SessionCriteria,
    SessionManager,
)

__all__ = ["SessionManager", "SessionCriteria", "SessionAttributes"]
