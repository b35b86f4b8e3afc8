"""Two-tier staff authentication.

A request is authenticated by its signed auth cookie when one verifies;
otherwise by the ``x-api-key`` header, which costs two store lookups and
issues a fresh cookie so later requests skip them.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from dinein.errors import (
    AuthFailureReason,
    DineinError,
    ExpiredError,
    FormatError,
    NotFoundError,
    UnauthorizedError,
    UnboundError,
)
from dinein.managers.api_key import ApiKeyCriteria, ApiKeyManager
from dinein.managers.staff import StaffCriteria, StaffManager
from dinein.models.api_key import ApiKey
from dinein.models.staff import Staff
from dinein.services.auth_cookie import AuthCookieCodec, AuthCookiePayload
from dinein.utils.datetime import from_epoch_ms

logger = structlog.get_logger()


@dataclass(frozen=True, slots=True)
class CookieAuthResult:
    """Outcome of cookie verification.

    ``role`` is None when the cookie did not authenticate the request.
    ``token`` is a replacement cookie to send back, if one was issued.
    """

    role: str | None = None
    token: str | None = None
    clear_cookie: bool = False

    @property
    def authenticated(self) -> bool:
        return self.role is not None


@dataclass(frozen=True, slots=True)
class ApiKeyAuthResult:
    role: str
    staff: Staff
    token: str
    payload: AuthCookiePayload


class Authenticator:
    """Resolves a staff role from an auth cookie or an API key."""

    def __init__(
        self,
        codec: AuthCookieCodec,
        api_keys: ApiKeyManager,
        staff: StaffManager,
    ) -> None:
        self._codec = codec
        self._api_keys = api_keys
        self._staff = staff
        self._log = logger.bind(component="authenticator")

    def _key_expired(self, record: ApiKey) -> bool:
        return record.is_expired(from_epoch_ms(self._codec.now()))

    async def authenticate_cookie(self, token: str | None) -> CookieAuthResult:
        """Verify an auth cookie and slide it forward near expiry.

        Never raises: a cookie that cannot be used simply does not
        authenticate.
        """
        payload = self._codec.decode(token)
        if payload is None:
            if token:
                self._log.debug("auth.cookie.invalid")
            return CookieAuthResult()

        if self._codec.is_expired(payload):
            self._log.info("auth.cookie.expired", role=payload.role)
            return CookieAuthResult(clear_cookie=True)

        if not self._codec.should_refresh(payload):
            return CookieAuthResult(role=payload.role)

        try:
            refreshed = await self.refresh(payload)
        except Exception as e:
            self._log.warning(
                "auth.cookie.refresh_failed",
                role=payload.role,
                error=str(e),
            )
            refreshed = None
        if refreshed is None:
            return CookieAuthResult(role=payload.role)

        token, new_payload = refreshed
        return CookieAuthResult(role=new_payload.role, token=token)

    async def refresh(
        self, payload: AuthCookiePayload
    ) -> tuple[str, AuthCookiePayload] | None:
        """Issue a replacement cookie for a still-valid, still-bound key.

        The new cookie carries the holder's current role.

        Returns:
            (token, payload), or None if the key is gone, expired or unbound
        """
        try:
            record = await self._api_keys.find(ApiKeyCriteria(key=payload.api_key))
        except FormatError:
            self._log.warning("auth.cookie.refresh_skipped", reason="malformed_api_key")
            return None

        if record is None or self._key_expired(record):
            self._log.info(
                "auth.cookie.refresh_skipped",
                reason="invalid_api_key" if record is None else "expired_api_key",
            )
            return None

        staff = await self._staff.find(StaffCriteria(api_key=record.key))
        if staff is None:
            self._log.info(
                "auth.cookie.refresh_skipped",
                reason="unbound_api_key",
                key_prefix=record.key_prefix,
            )
            return None

        role = staff.role.value
        token, new_payload = self._codec.issue(role, record.key, record.expired_at)
        self._log.info(
            "auth.cookie.refreshed",
            role=role,
            previous_role=payload.role if role != payload.role else None,
            key_prefix=record.key_prefix,
            expired_at=new_payload.expired_at,
        )
        return token, new_payload

    async def verify_api_key(self, api_key: str) -> tuple[ApiKey, Staff]:
        """Look up a key and the staff member holding it.

        Raises:
            FormatError: If the key is not 64 lowercase hex chars
            NotFoundError: If no such key exists
            ExpiredError: If the key is past its expiry
            UnboundError: If no staff member holds the key
        """
        record = await self._api_keys.find(ApiKeyCriteria(key=api_key))
        if record is None:
            raise NotFoundError("API key not found")
        if self._key_expired(record):
            raise ExpiredError("API key expired")

        staff = await self._staff.find(StaffCriteria(api_key=api_key))
        if staff is None:
            raise UnboundError("API key is not bound to a staff member")
        return record, staff

    async def authenticate_api_key(self, api_key: str | None) -> ApiKeyAuthResult:
        """Authenticate by API key and issue a cookie.

        Raises:
            UnauthorizedError: With the reason the key was rejected
        """
        if not api_key:
            raise self._reject(AuthFailureReason.MISSING_API_KEY)

        try:
            record, staff = await self.verify_api_key(api_key)
        except FormatError:
            raise self._reject(AuthFailureReason.MALFORMED_API_KEY) from None
        except NotFoundError:
            raise self._reject(AuthFailureReason.INVALID_API_KEY, api_key) from None
        except ExpiredError:
            raise self._reject(AuthFailureReason.EXPIRED_API_KEY, api_key) from None
        except UnboundError:
            raise self._reject(AuthFailureReason.UNBOUND_API_KEY, api_key) from None

        role = staff.role.value
        token, payload = self._codec.issue(role, api_key, record.expired_at)
        self._log.info(
            "auth.api_key.success",
            staff_id=staff.id,
            role=role,
            key_prefix=record.key_prefix,
        )
        return ApiKeyAuthResult(role=role, staff=staff, token=token, payload=payload)

    def _reject(
        self,
        reason: AuthFailureReason,
        api_key: str | None = None,
    ) -> DineinError:
        self._log.info(
            "auth.api_key.rejected",
            reason=reason.value,
            key_prefix=api_key[:12] if api_key else None,
        )
        return UnauthorizedError(reason)
