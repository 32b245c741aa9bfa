from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError

from ..audit import audit_login
from ..deps import get_guard, get_settings_dep, get_signer, resolve_current_user
from ..guard import SessionGuard
from ..session import SessionSigner
from ..settings import LdapSettings
from ..users import session_payload

log = logging.getLogger(__name__)

router = APIRouter()


class LoginRequest(BaseModel):
    username: str = Field(default="", max_length=256)
    password: str = Field(default="", max_length=1024)
    remember: bool = False


def _set_session_cookie(resp: Response, s: LdapSettings, signer: SessionSigner, payload: dict) -> None:
    resp.set_cookie(
        key=s.session_cookie,
        value=signer.create_session(payload),
        httponly=True,
        secure=s.cookie_secure,
        samesite="lax",
        max_age=s.session_max_age_seconds,
    )


def _audit(request: Request, username: str, success: bool, result_code: str) -> None:
    store = getattr(request.app.state, "store", None)
    if store is None:
        return
    ip = request.client.host if request.client else ""
    ua = request.headers.get("user-agent", "")
    try:
        with store.session() as db:
            audit_login(db, username, success, ip, ua, result_code)
    except SQLAlchemyError:
        log.warning("Could not write login audit for %s", username, exc_info=True)


@router.post("/login")
def login(
    body: LoginRequest,
    request: Request,
    guard: SessionGuard = Depends(get_guard),
    signer: SessionSigner = Depends(get_signer),
    s: LdapSettings = Depends(get_settings_dep),
):
    username = body.username.strip()
    result = guard.attempt(username, body.password, remember=body.remember)
    if not result.success or result.user is None:
        _audit(request, username, False, "invalid")
        return JSONResponse({"ok": False, "detail": result.error_message}, status_code=status.HTTP_401_UNAUTHORIZED)

    identifier = guard.auth_identifier(result.user)
    payload = session_payload(result.user, identifier, hidden=(s.remember_token_column,))
    resp = JSONResponse({"ok": True, "user": payload})
    _set_session_cookie(resp, s, signer, payload)
    if result.remember_token:
        resp.set_cookie(
            key=s.remember_cookie,
            value=signer.create_recaller(identifier, result.remember_token),
            httponly=True,
            secure=s.cookie_secure,
            samesite="lax",
            max_age=s.remember_max_age_seconds,
        )
    _audit(request, username, True, "ok")
    return resp


@router.get("/me")
def me(
    request: Request,
    guard: SessionGuard = Depends(get_guard),
    signer: SessionSigner = Depends(get_signer),
    s: LdapSettings = Depends(get_settings_dep),
):
    user, via_recaller = resolve_current_user(request)
    if user is None:
        return JSONResponse({"ok": False, "detail": "Not authenticated"}, status_code=status.HTTP_401_UNAUTHORIZED)
    payload = session_payload(user, guard.auth_identifier(user), hidden=(s.remember_token_column,))
    resp = JSONResponse({"ok": True, "user": payload})
    if via_recaller:
        _set_session_cookie(resp, s, signer, payload)
    return resp


@router.post("/logout")
def logout(
    request: Request,
    guard: SessionGuard = Depends(get_guard),
    s: LdapSettings = Depends(get_settings_dep),
):
    user, _ = resolve_current_user(request)
    guard.logout(user)
    resp = JSONResponse({"ok": True})
    resp.delete_cookie(s.session_cookie)
    resp.delete_cookie(s.remember_cookie)
    return resp
