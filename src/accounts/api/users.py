"""User API — registration, login, token refresh, profile.

Routes:
- POST  /users/register                 → create account (multipart, avatar required)
- POST  /users/login                    → username/email + password → tokens + cookies
- POST  /users/logout                   → clear stored refresh token + cookies
- POST  /users/refresh-token            → rotate refresh token → new pair + cookies
- POST  /users/change-current-password  → verify old password, store new one
- POST  /users/current-user             → the authenticated user
- PATCH /users/update-account-details   → full name + email
- PATCH /users/update-user-avatar       → replace avatar image
- PATCH /users/update-user-cover-image  → replace cover image

Routes only translate HTTP into service calls and set cookies. Failures
are typed AccountErrors rendered by the handler in main.py.
"""

from typing import Optional

from fastapi import APIRouter, Cookie, Depends, File, Form, Response, UploadFile

from accounts.auth.dependencies import (
    ACCESS_COOKIE,
    REFRESH_COOKIE,
    get_account_service,
    get_auth_service,
    get_current_user,
)
from accounts.auth.jwt import TokenPair
from accounts.config import Settings, get_settings
from accounts.db.models import User
from accounts.errors import AccountError
from accounts.schemas.user import (
    AccountDetailsUpdate,
    ApiResponse,
    ChangePasswordRequest,
    LoginRead,
    LoginRequest,
    RefreshRequest,
    TokenPairRead,
    UserRead,
)
from accounts.services.account_service import AccountService
from accounts.services.auth_service import AuthService
from accounts.services.media import discard_local, save_upload

router = APIRouter(prefix="/users")


def _set_auth_cookies(response: Response, tokens: TokenPair, settings: Settings) -> None:
    common = {
        "httponly": True,
        "secure": settings.cookie_secure,
        "samesite": settings.cookie_samesite,
    }
    response.set_cookie(
        ACCESS_COOKIE,
        tokens.access_token,
        max_age=settings.access_token_expire_minutes * 60,
        **common,
    )
    response.set_cookie(
        REFRESH_COOKIE,
        tokens.refresh_token,
        max_age=settings.refresh_token_expire_days * 86400,
        **common,
    )


def _clear_auth_cookies(response: Response, settings: Settings) -> None:
    for name in (ACCESS_COOKIE, REFRESH_COOKIE):
        response.delete_cookie(
            name,
            httponly=True,
            secure=settings.cookie_secure,
            samesite=settings.cookie_samesite,
        )


# ─── Register ────────────────────────────────────────────


@router.post("/register", response_model=ApiResponse[UserRead], status_code=201)
async def register(
    username: Optional[str] = Form(None),
    email: Optional[str] = Form(None),
    full_name: Optional[str] = Form(None, alias="fullName"),
    password: Optional[str] = Form(None),
    avatar: Optional[UploadFile] = File(None),
    cover_image: Optional[UploadFile] = File(None, alias="coverImage"),
    svc: AccountService = Depends(get_account_service),
    settings: Settings = Depends(get_settings),
):
    """Create a new account. Avatar upload is mandatory, cover image optional."""
    avatar_path = await save_upload(avatar, settings.upload_dir, settings.max_upload_bytes)
    try:
        cover_path = await save_upload(
            cover_image, settings.upload_dir, settings.max_upload_bytes
        )
    except AccountError:
        discard_local(avatar_path)
        raise
    user = await svc.register(
        username=username,
        email=email,
        full_name=full_name,
        password=password,
        avatar_path=avatar_path,
        cover_image_path=cover_path,
    )
    return ApiResponse[UserRead](
        status_code=201,
        message="User registered successfully",
        data=UserRead.model_validate(user),
    )


# ─── Login / logout ─────────────────────────────────────


@router.post("/login", response_model=ApiResponse[LoginRead])
async def login(
    body: LoginRequest,
    response: Response,
    auth: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings),
):
    """Login with username or email → access + refresh tokens (body and cookies)."""
    result = await auth.login(body.password, username=body.username, email=body.email)
    _set_auth_cookies(response, result.tokens, settings)
    return ApiResponse[LoginRead](
        status_code=200,
        message="User logged in successfully",
        data=LoginRead(
            user=UserRead.model_validate(result.user),
            access_token=result.tokens.access_token,
            refresh_token=result.tokens.refresh_token,
        ),
    )


@router.post("/logout", response_model=ApiResponse[dict])
async def logout(
    response: Response,
    user: User = Depends(get_current_user),
    auth: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings),
):
    await auth.logout(user.id)
    _clear_auth_cookies(response, settings)
    return ApiResponse[dict](status_code=200, message="User logged out", data={})


# ─── Refresh ────────────────────────────────────────────


@router.post("/refresh-token", response_model=ApiResponse[TokenPairRead])
async def refresh_token(
    response: Response,
    body: Optional[RefreshRequest] = None,
    refresh_cookie: Optional[str] = Cookie(None, alias=REFRESH_COOKIE),
    auth: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings),
):
    """Exchange the refresh token for a new token pair.

    A token sent in the body takes precedence over the refreshToken cookie.
    """
    incoming = (body.refresh_token if body else None) or refresh_cookie
    tokens = await auth.refresh(incoming)
    _set_auth_cookies(response, tokens, settings)
    return ApiResponse[TokenPairRead](
        status_code=200,
        message="Access token refreshed",
        data=TokenPairRead(
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
        ),
    )


# ─── Password ───────────────────────────────────────────


@router.post("/change-current-password", response_model=ApiResponse[dict])
async def change_current_password(
    body: ChangePasswordRequest,
    user: User = Depends(get_current_user),
    auth: AuthService = Depends(get_auth_service),
):
    await auth.change_password(
        user.id, body.old_password, body.new_password, body.confirm_password
    )
    return ApiResponse[dict](status_code=200, message="Password changed successfully", data={})


# ─── Profile ────────────────────────────────────────────


@router.post("/current-user", response_model=ApiResponse[UserRead])
async def current_user(user: User = Depends(get_current_user)):
    return ApiResponse[UserRead](
        status_code=200,
        message="User fetched successfully",
        data=UserRead.model_validate(user),
    )


@router.patch("/update-account-details", response_model=ApiResponse[UserRead])
async def update_account_details(
    body: AccountDetailsUpdate,
    user: User = Depends(get_current_user),
    svc: AccountService = Depends(get_account_service),
):
    updated = await svc.update_account_details(user.id, body.full_name, body.email)
    return ApiResponse[UserRead](
        status_code=200,
        message="Account details updated successfully",
        data=UserRead.model_validate(updated),
    )


@router.patch("/update-user-avatar", response_model=ApiResponse[UserRead])
async def update_user_avatar(
    avatar: Optional[UploadFile] = File(None),
    user: User = Depends(get_current_user),
    svc: AccountService = Depends(get_account_service),
    settings: Settings = Depends(get_settings),
):
    path = await save_upload(avatar, settings.upload_dir, settings.max_upload_bytes)
    updated = await svc.update_avatar(user.id, path)
    return ApiResponse[UserRead](
        status_code=200,
        message="Avatar updated successfully",
        data=UserRead.model_validate(updated),
    )


@router.patch("/update-user-cover-image", response_model=ApiResponse[UserRead])
async def update_user_cover_image(
    cover_image: Optional[UploadFile] = File(None, alias="coverImage"),
    user: User = Depends(get_current_user),
    svc: AccountService = Depends(get_account_service),
    settings: Settings = Depends(get_settings),
):
    path = await save_upload(cover_image, settings.upload_dir, settings.max_upload_bytes)
    updated = await svc.update_cover_image(user.id, path)
    return ApiResponse[UserRead](
        status_code=200,
        message="Cover image updated successfully",
        data=UserRead.model_validate(updated),
    )
