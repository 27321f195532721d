"""Auth dependencies — JWT validation, RBAC and page-access enforcement."""

from __future__ import annotations

import hashlib
import uuid
from datetime import datetime, timezone
from typing import Callable

from fastapi import Depends, Request
from fastapi.exceptions import HTTPException
from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from opsdesk.auth.models import PagePermission, User, UserSession
from opsdesk.common.constants import PageKey, UserRole
from opsdesk.common.exceptions import AccessDeniedException, ForbiddenException
from opsdesk.config import settings
from opsdesk.database import get_db

# Role hierarchy — each role implicitly includes the roles listed
ROLE_HIERARCHY: dict[UserRole, set[UserRole]] = {
    UserRole.admin: {UserRole.admin, UserRole.hr, UserRole.accountant, UserRole.user},
    UserRole.hr: {UserRole.hr, UserRole.user},
    UserRole.accountant: {UserRole.accountant, UserRole.user},
    UserRole.user: {UserRole.user},
}


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def _extract_bearer(request: Request) -> str:
    """Extract Bearer token from Authorization header."""
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing or invalid Authorization header.")
    return auth_header[7:]


def effective_roles(role: UserRole) -> set[UserRole]:
    return ROLE_HIERARCHY.get(role, {role})


# ── Core dependency ─────────────────────────────────────────────────

async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> User:
    """Validate JWT, verify session, return the authenticated User."""
    token = _extract_bearer(request)

    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token has expired.")
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token.")

    if payload.get("type") != "access":
        raise HTTPException(status_code=401, detail="Invalid token type.")

    result = await db.execute(
        select(UserSession).where(
            UserSession.token_hash == hash_token(token),
            UserSession.is_revoked.is_(False),
            UserSession.expires_at > datetime.now(timezone.utc),
        ),
    )
    if result.scalars().first() is None:
        raise HTTPException(status_code=401, detail="Session invalid or expired.")

    user_result = await db.execute(
        select(User).where(
            User.id == uuid.UUID(payload["sub"]),
            User.is_active.is_(True),
        ),
    )
    user = user_result.scalars().first()
    if user is None:
        raise HTTPException(status_code=401, detail="User account is inactive or not found.")

    try:
        role = UserRole(payload.get("role", UserRole.user.value))
    except ValueError:
        role = UserRole.user
    request.state.user_role = role

    return user


# ── Role-based dependency ───────────────────────────────────────────

def require_role(*allowed_roles: UserRole) -> Callable:
    """Return a FastAPI dependency that enforces role membership.

    Respects hierarchy — e.g. admin can access accountant endpoints.
    """

    async def _check(
        request: Request,
        user: User = Depends(get_current_user),
    ) -> User:
        user_role: UserRole = request.state.user_role
        if not effective_roles(user_role).intersection(allowed_roles):
            raise ForbiddenException(
                detail=f"Role '{user_role.value}' is not permitted. Required: {[r.value for r in allowed_roles]}.",
            )
        return user

    return _check


# ── Page-access dependency ──────────────────────────────────────────

async def has_page_access(
    db: AsyncSession,
    user: User,
    role: UserRole,
    page_key: PageKey,
) -> bool:
    """Admins see every page; everyone else needs an explicit grant."""
    if role == UserRole.admin:
        return True
    result = await db.execute(
        select(PagePermission.has_access).where(
            PagePermission.user_id == user.id,
            PagePermission.page_key == page_key.value,
        ),
    )
    return bool(result.scalar_one_or_none())


def require_page_access(page_key: PageKey) -> Callable:
    """Return a dependency that raises the access-denied problem for ungranted pages."""

    async def _check(
        request: Request,
        user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
    ) -> User:
        if not await has_page_access(db, user, request.state.user_role, page_key):
            raise AccessDeniedException(page_key.value)
        return user

    return _check
