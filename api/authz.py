"""
Session resolution for API views.

Every view that talks to the backend starts with `resolve_session(request)`,
which rebuilds the `SessionContext` from the Django session and refuses
requests without a signed-in user (401) or, unless ``company=False``,
without a selected company (403).
"""

from typing import Callable, Optional

from rest_framework import status
from rest_framework.exceptions import APIException, PermissionDenied

from gateway import tokens
from gateway.session import SessionContext


class SessionRequired(APIException):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Please sign in."
    default_code = "not_authenticated"


def _looks_like_jwt(token: Optional[str]) -> bool:
    return bool(token) and token.count(".") == 2


def resolve_session(request, *, company: bool = True) -> SessionContext:
    """
    Hydrate the caller's session.

    Raises:
        SessionRequired: nobody is signed in, or the backend token expired
        PermissionDenied: a company is required but none is selected
    """
    ctx = SessionContext.hydrate(request.session)
    if not ctx.is_authenticated:
        raise SessionRequired()
    if _looks_like_jwt(ctx.token) and tokens.is_expired(ctx.token):
        ctx.teardown()
        raise SessionRequired("Your session has expired. Please sign in again.")
    if company and not ctx.has_company:
        raise PermissionDenied("No company selected. Please select a company first.")
    return ctx


def require(ctx: SessionContext, check: Callable[[Optional[str]], bool]) -> None:
    """Raise PermissionDenied unless `check(ctx.role)` passes.

    Example:
        require(ctx, permissions.can_manage_accounts)
    """
    if not check(ctx.role):
        raise PermissionDenied(f"Your role ({ctx.role or 'none'}) does not allow this action.")


def expires_in(ctx: SessionContext) -> Optional[int]:
    if not _looks_like_jwt(ctx.token):
        return None
    return tokens.seconds_until_expiry(ctx.token)
