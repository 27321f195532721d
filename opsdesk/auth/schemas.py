"""Auth Pydantic schemas for request / response validation."""


import uuid
from typing import Optional

from pydantic import BaseModel, EmailStr


# ── Requests ────────────────────────────────────────────────────────

class GoogleAuthRequest(BaseModel):
    code: str
    redirect_uri: str


class RefreshRequest(BaseModel):
    refresh_token: str


# ── Responses ───────────────────────────────────────────────────────

class UserInfo(BaseModel):
    id: uuid.UUID
    display_name: str
    email: EmailStr
    role: str
    avatar_url: Optional[str] = None


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserInfo


class RefreshResponse(BaseModel):
    access_token: str
    refresh_token: str
    expires_in: int


class MeResponse(BaseModel):
    id: uuid.UUID
    display_name: str
    email: EmailStr
    role: str
    avatar_url: Optional[str] = None
    pages: list[str]


class PageAccessResponse(BaseModel):
    page_key: str
    has_access: bool
