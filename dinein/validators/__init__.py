"""Identifier validation utilities."""

from dinein.validators.identifiers import (
    API_KEY_PATTERN,
    validate_api_key,
    validate_session_uuid,
)

__all__ = ["API_KEY_PATTERN", "validate_api_key", "validate_session_uuid"]
