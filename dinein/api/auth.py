"""Authentication and session-context dependencies.

Staff endpoints:
    @router.get("/tables")
    async def list_tables(role: Annotated[str, Depends(require_staff_role("admin"))]):
        ...

Customer endpoints:
    @router.get("/orders")
    async def list_orders(ctx: SessionContextDep):
        ...
"""

from __future__ import annotations

from typing import Annotated

import structlog
from fastapi import Depends, Request, Response

from dinein.api.dependencies import (
    AuthenticatorDep,
    SessionContextResolverDep,
    SettingsDep,
)
from dinein.config import Settings
from dinein.errors import AuthFailureReason, ForbiddenError, UnauthorizedError
from dinein.models.staff import StaffRole
from dinein.services.session_context import SessionContext, extract_session_token

logger = structlog.get_logger()

API_KEY_HEADER = "x-api-key"


def _set_auth_cookie(response: Response, settings: Settings, token: str) -> None:
    cookie = settings.cookie
    response.set_cookie(
        key=cookie.name,
        value=token,
        max_age=cookie.max_age_seconds,
        path=cookie.path,
        secure=settings.cookie_secure,
        httponly=cookie.http_only,
        samesite=cookie.same_site,
    )


def clear_auth_cookie(response: Response, settings: Settings) -> None:
    cookie = settings.cookie
    response.delete_cookie(
        key=cookie.name,
        path=cookie.path,
        secure=settings.cookie_secure,
        httponly=cookie.http_only,
        samesite=cookie.same_site,
    )


def api_key_auth(optional: bool = False):
    """Factory for the staff authentication dependency.

    Authentication flow:
    1. Signed auth cookie verifies and is unexpired → its role
       (replaced with a fresh cookie when close to expiry)
    2. Else ``x-api-key`` header → key lookup, expiry check, staff lookup,
       then a new cookie is set
    3. No key and ``optional`` → role None

    Sets ``request.state.role`` and ``request.state.auth_source``. An
    expired cookie also sets ``request.state.clear_auth_cookie`` so the
    cookie is cleared even when the request ends in an error.

    Raises:
        UnauthorizedError: With the specific rejection reason
    """

    async def dependency(
        request: Request,
        response: Response,
        authenticator: AuthenticatorDep,
        settings: SettingsDep,
    ) -> str | None:
        cookie_result = await authenticator.authenticate_cookie(
            request.cookies.get(settings.cookie.name)
        )
        if cookie_result.clear_cookie:
            # Error responses drop ``response``; the error handler reads this flag
            request.state.clear_auth_cookie = True
            clear_auth_cookie(response, settings)
        if cookie_result.authenticated:
            if cookie_result.token:
                _set_auth_cookie(response, settings, cookie_result.token)
            request.state.role = cookie_result.role
            request.state.auth_source = "cookie"
            return cookie_result.role

        api_key = request.headers.get(API_KEY_HEADER)
        if not api_key and optional:
            request.state.role = None
            request.state.auth_source = None
            return None

        result = await authenticator.authenticate_api_key(api_key)
        _set_auth_cookie(response, settings, result.token)
        request.state.role = result.role
        request.state.auth_source = "api_key"
        return result.role

    return dependency


authenticate_staff = api_key_auth()
authenticate_staff_optional = api_key_auth(optional=True)

StaffRoleDep = Annotated[str, Depends(authenticate_staff)]
OptionalStaffRoleDep = Annotated[str | None, Depends(authenticate_staff_optional)]


def require_staff_role(*roles: StaffRole | str):
    """Factory for role-gated dependencies.

    Returns:
        A dependency resolving to the caller's role

    Raises:
        UnauthorizedError: If no staff credential was presented
        ForbiddenError: If the role is not among ``roles``
    """
    allowed = frozenset(StaffRole(r).value for r in roles)

    async def dependency(request: Request, role: OptionalStaffRoleDep) -> str:
        if role is None:
            raise UnauthorizedError(AuthFailureReason.AUTHENTICATION_REQUIRED)
        if role not in allowed:
            logger.info(
                "auth.role.forbidden",
                role=role,
                allowed=sorted(allowed),
                path=request.url.path,
            )
            raise ForbiddenError()
        return role

    return dependency


def session_context(optional: bool = False):
    """Factory for the customer session dependency.

    Sets ``request.state.session_context``.
    """

    async def dependency(
        request: Request,
        resolver: SessionContextResolverDep,
    ) -> SessionContext | None:
        context = await resolver.resolve(extract_session_token(request), optional=optional)
        request.state.session_context = context
        return context

    return dependency


SessionContextDep = Annotated[SessionContext, Depends(session_context())]
OptionalSessionContextDep = Annotated[
    SessionContext | None, Depends(session_context(optional=True))
]

AdminDep = Annotated[str, Depends(require_staff_role(StaffRole.ADMIN))]
FloorStaffDep = Annotated[str, Depends(require_staff_role(StaffRole.ADMIN, StaffRole.WAITER))]
AnyStaffDep = Annotated[
    str,
    Depends(require_staff_role(StaffRole.ADMIN, StaffRole.WAITER, StaffRole.CHEF)),
]
