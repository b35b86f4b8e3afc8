"""Shape checks for identifiers that reach the data store.

Both checks run before any query is built, so a malformed value can never
widen a lookup or be mistaken for "not found".
"""

from __future__ import annotations

import re
import uuid

from dinein.errors import FormatError

API_KEY_PATTERN = re.compile(r"^[a-f0-9]{64}$")


def validate_api_key(value: str, *, field_name: str = "api_key") -> str:
    """Ensure ``value`` is 64 lowercase hex characters.

    Raises:
        FormatError: If the value has any other shape
    """
    if not isinstance(value, str) or API_KEY_PATTERN.fullmatch(value) is None:
        raise FormatError(
            message="Invalid API key format - must be 64 hexadecimal characters",
            details={"field": field_name},
        )
    return value


def validate_session_uuid(value: str, *, field_name: str = "uuid") -> str:
    """Ensure ``value`` is a hyphenated UUID string.

    Returns:
        The lowercase canonical form

    Raises:
        FormatError: If the value does not parse as a UUID
    """
    try:
        parsed = uuid.UUID(value)
    except (TypeError, ValueError, AttributeError) as e:
        raise FormatError(
            message="Invalid session identifier",
            details={"field": field_name},
        ) from e
    if str(parsed) != value.lower():
        raise FormatError(
            message="Invalid session identifier",
            details={"field": field_name},
        )
    return str(parsed)
