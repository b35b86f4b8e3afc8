"""Signed auth cookie codec.

Token format::

    base64url(json payload) "." base64url(HMAC-SHA256(secret, encoded payload))

Both segments are unpadded. The payload carries the staff role, the API key
that authenticated the holder, and an absolute expiry in epoch
milliseconds. Verifying a token needs no data store access.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
from collections.abc import Callable
from datetime import datetime

import structlog
from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr
from pydantic import ValidationError as PydanticValidationError

from dinein.config import Settings
from dinein.errors import ConfigurationError
from dinein.utils.datetime import now_ms, to_epoch_ms

logger = structlog.get_logger()

# Signs cookies only when explicitly allowed outside production
INSECURE_PLACEHOLDER_SECRET = b"dev-insecure-secret-change-me"


class AuthCookiePayload(BaseModel):
    """Decoded auth cookie contents."""

    # Validated by alias only: the wire keys are apiKey and expiredAt
    model_config = ConfigDict(frozen=True, extra="ignore")

    role: StrictStr = Field(min_length=1)
    api_key: StrictStr = Field(alias="apiKey", min_length=1)
    expired_at: StrictInt = Field(alias="expiredAt")


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64url_decode(data: str) -> bytes:
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii"))


def load_cookie_secret(settings: Settings) -> bytes:
    """Resolve the cookie signing secret at startup.

    Raises:
        ConfigurationError: If no usable secret is configured
    """
    secret = settings.security.cookie_secret_bytes()
    if secret is not None:
        return secret

    if settings.is_production:
        raise ConfigurationError(
            "security.cookie_secret is required in production "
            "(base64, at least 32 bytes decoded)"
        )
    if settings.security.allow_insecure_cookie_secret:
        logger.warning(
            "auth.cookie.insecure_secret",
            environment=settings.environment,
            msg="Signing auth cookies with a public placeholder secret. "
            "Set DINEIN_SECURITY__COOKIE_SECRET before exposing this server.",
        )
        return INSECURE_PLACEHOLDER_SECRET
    raise ConfigurationError(
        "security.cookie_secret is not set; configure it or set "
        "security.allow_insecure_cookie_secret for local development"
    )


class AuthCookieCodec:
    """Encodes, verifies, and ages auth cookie tokens."""

    def __init__(
        self,
        secret: bytes,
        *,
        max_age_seconds: int = 15 * 60,
        refresh_threshold_seconds: int = 5 * 60,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        if not secret:
            raise ConfigurationError("Cookie secret must not be empty")
        self._secret = secret
        self._max_age_ms = max_age_seconds * 1000
        self._refresh_threshold_ms = refresh_threshold_seconds * 1000
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        clock: Callable[[], int] = now_ms,
    ) -> AuthCookieCodec:
        return cls(
            load_cookie_secret(settings),
            max_age_seconds=settings.cookie.max_age_seconds,
            refresh_threshold_seconds=settings.cookie.refresh_threshold_seconds,
            clock=clock,
        )

    @property
    def max_age_seconds(self) -> int:
        return self._max_age_ms // 1000

    def now(self) -> int:
        return self._clock()

    def _sign(self, encoded_payload: str) -> str:
        digest = hmac.new(
            self._secret, encoded_payload.encode("ascii"), hashlib.sha256
        ).digest()
        return _b64url_encode(digest)

    def encode(self, payload: AuthCookiePayload) -> str:
        """Serialise and sign a payload."""
        body = payload.model_dump_json(by_alias=True).encode("utf-8")
        encoded = _b64url_encode(body)
        return f"{encoded}.{self._sign(encoded)}"

    def decode(self, token: str | None) -> AuthCookiePayload | None:
        """Verify and parse a token.

        Returns:
            The payload, or None for any malformed or tampered token
        """
        if not token or not isinstance(token, str):
            return None
        parts = token.split(".")
        if len(parts) != 2 or not parts[0] or not parts[1]:
            return None
        encoded, signature = parts

        try:
            expected = self._sign(encoded)
        except UnicodeEncodeError:
            return None
        if not hmac.compare_digest(expected.encode("ascii"), signature.encode("utf-8")):
            return None

        try:
            raw = _b64url_decode(encoded)
            return AuthCookiePayload.model_validate_json(raw)
        except (binascii.Error, ValueError, PydanticValidationError):
            return None

    def is_expired(self, payload: AuthCookiePayload) -> bool:
        return self._clock() >= payload.expired_at

    def should_refresh(self, payload: AuthCookiePayload) -> bool:
        """True inside the refresh window before expiry."""
        remaining = payload.expired_at - self._clock()
        return 0 < remaining <= self._refresh_threshold_ms

    def build_payload(
        self,
        role: str,
        api_key: str,
        key_expired_at: datetime | None = None,
    ) -> AuthCookiePayload:
        """Payload expiring at the earlier of key expiry and cookie max age."""
        expired_at = self._clock() + self._max_age_ms
        if key_expired_at is not None:
            expired_at = min(expired_at, to_epoch_ms(key_expired_at))
        return AuthCookiePayload(role=role, apiKey=api_key, expiredAt=expired_at)

    def issue(
        self,
        role: str,
        api_key: str,
        key_expired_at: datetime | None = None,
    ) -> tuple[str, AuthCookiePayload]:
        """Build and sign a fresh cookie.

        Returns:
            (token, payload)
        """
        payload = self.build_payload(role, api_key, key_expired_at)
        return self.encode(payload), payload
