from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Form
from fastapi.responses import JSONResponse
from sqlmodel import Session, select

from artists_api.core.deps import get_current_user, get_session
from artists_api.core.security import SESSION_COOKIE, sign_session, verify_password
from artists_api.db.models.user import User

router = APIRouter()
log = logging.getLogger(__name__)


# ---------------------- LOGIN ----------------------
@router.post("/login")
def login_submit(
    login: str = Form(...),
    password: str = Form(...),
    session: Session = Depends(get_session),
):
    """
    Authenticate user and set the signed session cookie.

    Inactive users are rejected with the same message as a wrong password.
    """
    user = session.exec(select(User).where(User.login == login)).first()

    if not user or not user.is_active or not verify_password(password, user.password_hash):
        log.info("Failed login for %r", login)
        return JSONResponse(
            status_code=401,
            content={"ok": False, "error": "Invalid username or password"},
        )

    resp = JSONResponse({"ok": True, "id": user.id, "role": user.role})
    # secure=False is fine for local development; set True behind HTTPS.
    resp.set_cookie(
        key=SESSION_COOKIE,
        value=sign_session(user.id),
        httponly=True,
        samesite="lax",
        secure=False,
        path="/",
        max_age=60 * 60 * 24 * 30,  # 30 days
    )
    return resp


# ---------------------- LOGOUT ----------------------
@router.get("/logout")
def logout():
    """Remove the session cookie."""
    resp = JSONResponse({"ok": True})
    resp.delete_cookie(SESSION_COOKIE, path="/")
    return resp


# ---------------------- WHO AM I ----------------------
@router.get("/me")
def whoami(user: User = Depends(get_current_user)):
    """Return current authenticated user details."""
    return {
        "id": user.id,
        "login": user.login,
        "role": user.role,
    }
