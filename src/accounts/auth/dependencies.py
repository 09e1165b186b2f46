"""FastAPI auth dependencies.

These are used as Depends() in route handlers. They build the service
objects for one request from the process settings and the request's DB
session, and resolve the authenticated user.

The access token is read from the accessToken cookie first, then from an
"Authorization: Bearer <token>" header.
"""

from typing import Optional

from fastapi import Cookie, Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from accounts.auth.jwt import TokenIssuer
from accounts.auth.password import PasswordHasher
from accounts.config import Settings, get_settings
from accounts.db.engine import get_db
from accounts.db.models import User
from accounts.services.account_service import AccountService
from accounts.services.auth_service import AuthService
from accounts.services.media import MediaHost
from accounts.services.user_store import UserStore

ACCESS_COOKIE = "accessToken"
REFRESH_COOKIE = "refreshToken"


def get_token_issuer(settings: Settings = Depends(get_settings)) -> TokenIssuer:
    return TokenIssuer(settings)


def get_password_hasher(settings: Settings = Depends(get_settings)) -> PasswordHasher:
    return PasswordHasher(rounds=settings.bcrypt_rounds)


def get_media_host(settings: Settings = Depends(get_settings)) -> MediaHost:
    return MediaHost(settings)


def get_user_store(db: AsyncSession = Depends(get_db)) -> UserStore:
    return UserStore(db)


def get_auth_service(
    store: UserStore = Depends(get_user_store),
    hasher: PasswordHasher = Depends(get_password_hasher),
    issuer: TokenIssuer = Depends(get_token_issuer),
) -> AuthService:
    return AuthService(store, hasher, issuer)


def get_account_service(
    store: UserStore = Depends(get_user_store),
    auth: AuthService = Depends(get_auth_service),
    media: MediaHost = Depends(get_media_host),
) -> AccountService:
    return AccountService(store, auth, media)


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Extract the token from an "Authorization: Bearer ..." header value."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer":
        return None
    return token.strip() or None


async def get_current_user(
    access_token: Optional[str] = Cookie(None, alias=ACCESS_COOKIE),
    authorization: Optional[str] = Header(None),
    auth: AuthService = Depends(get_auth_service),
) -> User:
    """Resolve the authenticated user (401 via UnauthorizedError otherwise)."""
    return await auth.authenticate(access_token or bearer_token(authorization))
