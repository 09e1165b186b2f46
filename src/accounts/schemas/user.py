"""Pydantic schemas for users, tokens, and the response envelope.

Pydantic v2 models validate request/response data. JSON field names are
camelCase (fullName, accessToken); Python attributes stay snake_case.
UserRead is the sanitized user: it has no password hash or refresh token.
"""

import uuid
from datetime import datetime
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, computed_field
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# ─── Envelope ───────────────────────────────────────────

class ApiResponse(CamelModel, Generic[T]):
    """{statusCode, success, message, data} — success is statusCode < 400."""
    status_code: int
    message: str
    data: Optional[T] = None

    @computed_field
    @property
    def success(self) -> bool:
        return self.status_code < 400


# ─── Users ──────────────────────────────────────────────

class UserRead(CamelModel):
    id: uuid.UUID
    username: str
    email: str
    full_name: str
    avatar: str
    cover_image: str = ""
    created_at: datetime
    updated_at: datetime


class LoginRequest(CamelModel):
    username: Optional[str] = None
    email: Optional[str] = None
    password: str


class RefreshRequest(CamelModel):
    refresh_token: Optional[str] = None


class ChangePasswordRequest(CamelModel):
    old_password: str
    new_password: str
    confirm_password: str


class AccountDetailsUpdate(CamelModel):
    full_name: Optional[str] = None
    email: Optional[str] = None


# ─── Tokens ─────────────────────────────────────────────

class TokenPairRead(CamelModel):
    access_token: str
    refresh_token: str


class LoginRead(TokenPairRead):
    user: UserRead
