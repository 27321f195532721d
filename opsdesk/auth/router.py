"""Auth router — Google OAuth, token refresh, logout, profile and page access."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from opsdesk.auth.dependencies import get_current_user, has_page_access, hash_token
from opsdesk.auth.models import User
from opsdesk.auth.schemas import (
    GoogleAuthRequest,
    MeResponse,
    PageAccessResponse,
    RefreshRequest,
    RefreshResponse,
    TokenResponse,
    UserInfo,
)
from opsdesk.auth.service import (
    get_highest_role,
    get_user_by_email,
    open_session,
    refresh_session,
    revoke_session,
    validate_domain,
    verify_google_token,
)
from opsdesk.common.audit import create_audit_entry
from opsdesk.common.constants import PageKey, UserRole
from opsdesk.common.exceptions import ValidationException
from opsdesk.database import get_db

router = APIRouter(prefix="", tags=["auth"])


# ── POST /google — Google OAuth callback ────────────────────────────

@router.post("/google", response_model=TokenResponse)
async def google_auth(
    body: GoogleAuthRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    google_info = await verify_google_token(body.code, body.redirect_uri)
    validate_domain(google_info["email"])
    user = await get_user_by_email(db, google_info["email"])

    if not user.google_id:
        user.google_id = google_info["google_id"]
    if not user.avatar_url and google_info.get("picture"):
        user.avatar_url = google_info["picture"]
    await db.flush()

    role = await get_highest_role(db, user.id)

    ip = request.client.host if request.client else None
    user_agent = request.headers.get("user-agent")
    access_token, refresh_token, expires_in = await open_session(
        db, user, role, ip, user_agent,
    )

    await create_audit_entry(
        db,
        action="login",
        entity_type="user_session",
        entity_id=user.id,
        actor_id=user.id,
        new_values={"ip": ip, "user_agent": user_agent},
        ip_address=ip,
        user_agent=user_agent,
    )

    return TokenResponse(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_in=expires_in,
        user=UserInfo(
            id=user.id,
            display_name=user.display_name,
            email=user.email,
            role=role.value,
            avatar_url=user.avatar_url,
        ),
    )


# ── POST /refresh — Rotate the token pair ──────────────────────────

@router.post("/refresh", response_model=RefreshResponse)
async def refresh_token(
    body: RefreshRequest,
    db: AsyncSession = Depends(get_db),
):
    access, refresh, expires_in = await refresh_session(db, body.refresh_token)
    return RefreshResponse(access_token=access, refresh_token=refresh, expires_in=expires_in)


# ── POST /logout — Revoke current session ──────────────────────────

@router.post("/logout")
async def logout(
    request: Request,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    token = request.headers.get("Authorization", "").removeprefix("Bearer ")
    await revoke_session(db, hash_token(token))

    await create_audit_entry(
        db,
        action="logout",
        entity_type="user_session",
        entity_id=user.id,
        actor_id=user.id,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )

    return {"message": "Logged out successfully"}


# ── GET /me — Current user profile ─────────────────────────────────

@router.get("/me", response_model=MeResponse)
async def me(
    request: Request,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    role: UserRole = request.state.user_role
    pages = [
        page.value for page in PageKey
        if await has_page_access(db, user, role, page)
    ]
    return MeResponse(
        id=user.id,
        display_name=user.display_name,
        email=user.email,
        role=role.value,
        avatar_url=user.avatar_url,
        pages=pages,
    )


# ── GET /pages/{page_key} — Can the current user open a page? ──────

@router.get("/pages/{page_key}", response_model=PageAccessResponse)
async def page_access(
    page_key: str,
    request: Request,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        page = PageKey(page_key)
    except ValueError:
        raise ValidationException({"page_key": [f"Unknown page '{page_key}'."]})
    allowed = await has_page_access(db, user, request.state.user_role, page)
    return PageAccessResponse(page_key=page.value, has_access=allowed)
