from __future__ import annotations

from fastapi import HTTPException, Request, status

from .guard import SessionGuard
from .session import SessionSigner
from .settings import LdapSettings
from .users import ApplicationUser


def get_settings_dep(request: Request) -> LdapSettings:
    return request.app.state.settings


def get_guard(request: Request) -> SessionGuard:
    return request.app.state.guard


def get_signer(request: Request) -> SessionSigner:
    return request.app.state.signer


def resolve_current_user(request: Request) -> tuple[ApplicationUser | None, bool]:
    """User from the session cookie, else from the remember-me cookie.

    The flag is True when the user came from the remember-me cookie, so the
    caller can start a fresh session.
    """
    s: LdapSettings = request.app.state.settings
    guard: SessionGuard = request.app.state.guard
    signer: SessionSigner = request.app.state.signer

    token = request.cookies.get(s.session_cookie, "")
    data = signer.read_session(token, s.session_max_age_seconds) if token else None
    if data:
        user = guard.user_from_session(data.get("id"))
        if user is not None:
            return user, False

    recaller = request.cookies.get(s.remember_cookie, "")
    parsed = signer.read_recaller(recaller, s.remember_max_age_seconds) if recaller else None
    if parsed:
        user = guard.user_from_recaller(*parsed)
        if user is not None:
            return user, True
    return None, False


def get_current_user(request: Request) -> ApplicationUser:
    user, _ = resolve_current_user(request)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return user
