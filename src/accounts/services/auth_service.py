"""Auth service — registration, login, token refresh, logout, password change.

Request flow:
- login: look up user → verify password → mint access+refresh pair →
  store the refresh token (overwriting any previous one) → return.
- refresh: verify refresh token signature/expiry → load user → the
  presented token must equal the stored one → mint a new pair → swap the
  stored token only if it is still the presented one.

Each user has exactly one refresh-token slot. A rotated-out or logged-out
refresh token therefore fails the equality check, which is how replayed
tokens are detected. Tokens are only returned after the new refresh token
is durably stored.
"""

import secrets
import uuid
from dataclasses import dataclass
from typing import Optional

import structlog

from accounts.auth.jwt import TokenIssuer, TokenPair
from accounts.auth.password import PasswordHasher
from accounts.db.models import (
    EMAIL_MAX_LENGTH,
    FULL_NAME_MAX_LENGTH,
    USERNAME_MAX_LENGTH,
    User,
)
from accounts.errors import (
    DuplicateUserError,
    InvalidPasswordError,
    InvalidTokenError,
    MissingCredentialsError,
    UnauthorizedError,
    UserNotFoundError,
    ValidationError,
)
from accounts.services.media import MediaAsset
from accounts.services.user_store import UserStore

logger = structlog.get_logger()


@dataclass
class LoginResult:
    user: User
    tokens: TokenPair


def normalize_username(username: Optional[str]) -> str:
    return (username or "").strip().lower()


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


FIELD_MAX_LENGTHS = {
    "username": USERNAME_MAX_LENGTH,
    "email": EMAIL_MAX_LENGTH,
    "full_name": FULL_NAME_MAX_LENGTH,
}


def check_lengths(**fields: str) -> None:
    """Reject values wider than their column."""
    for name, value in fields.items():
        limit = FIELD_MAX_LENGTHS[name]
        if len(value) > limit:
            label = name.replace("_", " ").capitalize()
            raise ValidationError(f"{label} must be at most {limit} characters")


def identity_claims(user: User) -> dict:
    """Minimal identity claims embedded in access tokens."""
    return {
        "username": user.username,
        "email": user.email,
        "full_name": user.full_name,
    }


class AuthService:
    """Session lifecycle on top of the store, hasher and token issuer."""

    def __init__(
        self,
        store: UserStore,
        hasher: PasswordHasher,
        issuer: TokenIssuer,
    ):
        self.store = store
        self.hasher = hasher
        self.issuer = issuer

    # ─── Registration ───────────────────────────────────

    async def check_registration(
        self,
        username: Optional[str],
        email: Optional[str],
        full_name: Optional[str],
        password: Optional[str],
    ) -> tuple[str, str, str]:
        """Validate registration fields and reject taken identifiers.

        Returns the normalized (username, email, full_name).
        """
        if any(not (field or "").strip() for field in (username, email, full_name, password)):
            raise ValidationError("All fields are required")

        username = normalize_username(username)
        email = normalize_email(email)
        full_name = full_name.strip()
        check_lengths(username=username, email=email, full_name=full_name)

        existing = await self.store.find_by_username_or_email(username, email)
        if existing:
            raise DuplicateUserError()
        return username, email, full_name

    async def register(
        self,
        username: Optional[str],
        email: Optional[str],
        full_name: Optional[str],
        password: Optional[str],
        avatar: Optional[MediaAsset],
        cover_image: Optional[MediaAsset] = None,
    ) -> User:
        """Create an account. An uploaded avatar is mandatory."""
        username, email, full_name = await self.check_registration(
            username, email, full_name, password
        )
        if avatar is None:
            raise ValidationError("Avatar file is required")

        user = await self.store.create(
            username=username,
            email=email,
            full_name=full_name,
            password_hash=await self.hasher.hash(password),
            avatar=avatar.url,
            avatar_public_id=avatar.public_id,
            cover_image=cover_image.url if cover_image else "",
            cover_image_public_id=cover_image.public_id if cover_image else None,
        )
        logger.info("auth.registered", user_id=str(user.id), username=username)
        return user

    # ─── Login / logout ─────────────────────────────────

    async def login(
        self,
        password: Optional[str],
        username: Optional[str] = None,
        email: Optional[str] = None,
    ) -> LoginResult:
        username = normalize_username(username)
        email = normalize_email(email)
        if not username and not email:
            raise MissingCredentialsError()

        user = await self.store.find_by_username_or_email(username, email)
        if not user:
            logger.info("auth.login_rejected", reason="unknown_user")
            raise UserNotFoundError()

        if not await self.hasher.verify(password or "", user.password_hash):
            logger.info("auth.login_rejected", reason="bad_password", user_id=str(user.id))
            raise InvalidPasswordError()

        tokens = await self._issue_tokens(user)
        logger.info("auth.login_succeeded", user_id=str(user.id))
        return LoginResult(user=await self.store.get(user.id) or user, tokens=tokens)

    async def logout(self, user_id: uuid.UUID) -> None:
        """Clear the refresh-token slot. Safe to call repeatedly."""
        await self.store.update_refresh_token(user_id, None)
        logger.info("auth.logged_out", user_id=str(user_id))

    # ─── Refresh ────────────────────────────────────────

    async def refresh(self, incoming_refresh_token: Optional[str]) -> TokenPair:
        """Exchange the current refresh token for a new access+refresh pair."""
        if not incoming_refresh_token:
            raise UnauthorizedError()

        claims = self.issuer.verify_refresh_token(incoming_refresh_token)
        user = await self.store.get(_subject(claims))
        if not user or not user.refresh_token:
            logger.info("auth.refresh_rejected", reason="no_session")
            raise InvalidTokenError()

        if not secrets.compare_digest(user.refresh_token, incoming_refresh_token):
            logger.warning("auth.refresh_rejected", reason="token_reused", user_id=str(user.id))
            raise InvalidTokenError()

        tokens = self.issuer.issue_pair(user.id, identity_claims(user))
        swapped = await self.store.swap_refresh_token(
            user.id, incoming_refresh_token, tokens.refresh_token
        )
        if not swapped:
            # A concurrent refresh rotated the slot between our read and write.
            logger.warning("auth.refresh_rejected", reason="lost_race", user_id=str(user.id))
            raise InvalidTokenError()

        logger.info("auth.refreshed", user_id=str(user.id))
        return tokens

    # ─── Password ───────────────────────────────────────

    async def change_password(
        self,
        user_id: uuid.UUID,
        old_password: Optional[str],
        new_password: Optional[str],
        confirm_password: Optional[str],
    ) -> None:
        """Replace the password and end the stored session.

        The refresh token is cleared with the new hash, so every holder of
        an old refresh token has to log in again.
        """
        if new_password != confirm_password:
            raise ValidationError("New and confirm password do not match")
        if not (new_password or "").strip():
            raise ValidationError("New password is required")

        user = await self.store.get(user_id)
        if not user:
            raise UnauthorizedError()
        if not await self.hasher.verify(old_password or "", user.password_hash):
            raise InvalidPasswordError()

        new_hash = await self.hasher.hash(new_password)
        await self.store.update_password(user.id, new_hash, clear_refresh_token=True)
        logger.info("auth.password_changed", user_id=str(user.id))

    # ─── Current user ───────────────────────────────────

    async def authenticate(self, access_token: Optional[str]) -> User:
        """Resolve a bearer access token to the user it was issued for."""
        if not access_token:
            raise UnauthorizedError()
        claims = self.issuer.verify_access_token(access_token)
        user = await self.store.get(_subject(claims))
        if not user:
            raise InvalidTokenError()
        return user

    async def get_current_user(self, user_id: uuid.UUID) -> User:
        user = await self.store.get(user_id)
        if not user:
            raise UnauthorizedError()
        return user

    # ─── Internals ──────────────────────────────────────

    async def _issue_tokens(self, user: User) -> TokenPair:
        """Mint a pair from one user snapshot and persist the refresh token."""
        tokens = self.issuer.issue_pair(user.id, identity_claims(user))
        await self.store.update_refresh_token(user.id, tokens.refresh_token)
        return tokens


def _subject(claims: dict) -> uuid.UUID:
    try:
        return uuid.UUID(claims["sub"])
    except (KeyError, ValueError, TypeError):
        raise InvalidTokenError()
