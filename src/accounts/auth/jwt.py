"""JWT token creation and verification.

- Access token: short-lived (minutes), carries the user id plus username,
  email and full name. Signed with the access secret.
- Refresh token: long-lived (days), carries only the user id. Signed with
  a separate refresh secret, so leaking one kind never forges the other.

Both carry a random "jti" so two tokens minted in the same second differ.
"""

import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from accounts.config import Settings
from accounts.errors import InvalidTokenError

ACCESS = "access"
REFRESH = "refresh"


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


class TokenIssuer:
    """Mints and verifies signed access/refresh tokens."""

    def __init__(self, settings: Settings):
        self.access_secret = settings.access_token_secret
        self.refresh_secret = settings.refresh_token_secret
        self.algorithm = settings.jwt_algorithm
        self.access_ttl = timedelta(minutes=settings.access_token_expire_minutes)
        self.refresh_ttl = timedelta(days=settings.refresh_token_expire_days)

    def issue_access_token(
        self,
        user_id: uuid.UUID | str,
        claims: Optional[dict] = None,
    ) -> str:
        """Create a JWT access token."""
        payload = self._base_payload(user_id, ACCESS, self.access_ttl)
        if claims:
            for key, value in claims.items():
                payload.setdefault(key, value)
        return jwt.encode(payload, self.access_secret, algorithm=self.algorithm)

    def issue_refresh_token(self, user_id: uuid.UUID | str) -> str:
        """Create a JWT refresh token."""
        payload = self._base_payload(user_id, REFRESH, self.refresh_ttl)
        return jwt.encode(payload, self.refresh_secret, algorithm=self.algorithm)

    def issue_pair(self, user_id: uuid.UUID | str, claims: Optional[dict] = None) -> TokenPair:
        """Mint an access and a refresh token from the same user snapshot."""
        return TokenPair(
            access_token=self.issue_access_token(user_id, claims),
            refresh_token=self.issue_refresh_token(user_id),
        )

    def verify(self, token: str, secret: str, token_type: str) -> dict:
        """Verify and decode a JWT token.

        Returns the payload dict on success. Any failure (bad signature,
        expiry, garbage input, wrong token type, missing subject) raises the
        same InvalidTokenError so callers learn nothing about the cause.
        """
        try:
            payload = jwt.decode(
                token,
                secret,
                algorithms=[self.algorithm],
                options={"require": ["exp", "sub"]},
            )
        except jwt.PyJWTError:
            raise InvalidTokenError()
        if payload.get("type") != token_type:
            raise InvalidTokenError()
        return payload

    def verify_access_token(self, token: str) -> dict:
        return self.verify(token, self.access_secret, ACCESS)

    def verify_refresh_token(self, token: str) -> dict:
        return self.verify(token, self.refresh_secret, REFRESH)

    @staticmethod
    def _base_payload(user_id, token_type: str, ttl: timedelta) -> dict:
        now = datetime.now(timezone.utc)
        return {
            "sub": str(user_id),
            "type": token_type,
            "iat": now,
            "exp": now + ttl,
            "jti": secrets.token_hex(8),
        }
