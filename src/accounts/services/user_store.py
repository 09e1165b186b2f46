"""Credential store — persistence for user identity, password hash and
the current refresh token.

Every mutation is a single UPDATE statement followed by a commit; reads
always reload the row (populate_existing) so callers never see values
cached in the session from before a bulk update.

Database failures become InternalError, uniqueness violations become
DuplicateUserError. Nothing outside this module touches the users table.
"""

import uuid
from typing import Optional

import structlog
from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from accounts.db.models import User
from accounts.errors import DuplicateUserError, InternalError

logger = structlog.get_logger()

# Columns callers may change through update_profile.
PROFILE_FIELDS = frozenset(
    {
        "full_name",
        "email",
        "avatar",
        "avatar_public_id",
        "cover_image",
        "cover_image_public_id",
    }
)


class UserStore:
    """Async repository for User rows."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ─── Reads ──────────────────────────────────────────

    async def find_by_username_or_email(
        self,
        username: Optional[str] = None,
        email: Optional[str] = None,
    ) -> User | None:
        """Return the first user matching either identifier, if any."""
        clauses = []
        if username:
            clauses.append(User.username == username)
        if email:
            clauses.append(User.email == email)
        if not clauses:
            return None
        try:
            result = await self.db.execute(
                select(User)
                .where(or_(*clauses))
                .execution_options(populate_existing=True)
            )
        except SQLAlchemyError as e:
            raise self._internal("find_by_username_or_email", e) from e
        return result.scalars().first()

    async def get(self, user_id: uuid.UUID) -> User | None:
        try:
            return await self.db.get(User, user_id, populate_existing=True)
        except SQLAlchemyError as e:
            raise self._internal("get", e) from e

    # ─── Writes ─────────────────────────────────────────

    async def create(
        self,
        *,
        username: str,
        email: str,
        full_name: str,
        password_hash: str,
        avatar: str,
        avatar_public_id: Optional[str] = None,
        cover_image: str = "",
        cover_image_public_id: Optional[str] = None,
    ) -> User:
        """Insert a new user. The unique indexes back up the pre-insert check."""
        user = User(
            username=username,
            email=email,
            full_name=full_name,
            password_hash=password_hash,
            avatar=avatar,
            avatar_public_id=avatar_public_id,
            cover_image=cover_image,
            cover_image_public_id=cover_image_public_id,
        )
        self.db.add(user)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise DuplicateUserError()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise self._internal("create", e) from e
        await self.db.refresh(user)
        return user

    async def update_refresh_token(
        self, user_id: uuid.UUID, token: Optional[str]
    ) -> None:
        """Overwrite the refresh-token slot (None clears it)."""
        await self._update(user_id, {"refresh_token": token}, op="update_refresh_token")

    async def swap_refresh_token(
        self, user_id: uuid.UUID, expected: str, new_token: str
    ) -> bool:
        """Compare-and-swap the refresh-token slot.

        Writes new_token only if the stored value still equals expected.
        Returns False when another request rotated it first.
        """
        stmt = (
            update(User)
            .where(User.id == user_id, User.refresh_token == expected)
            .values(refresh_token=new_token)
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self.db.execute(stmt)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise self._internal("swap_refresh_token", e) from e
        return result.rowcount == 1

    async def update_password(
        self,
        user_id: uuid.UUID,
        password_hash: str,
        *,
        clear_refresh_token: bool = False,
    ) -> None:
        values = {"password_hash": password_hash}
        if clear_refresh_token:
            values["refresh_token"] = None
        await self._update(user_id, values, op="update_password")

    async def update_profile(self, user_id: uuid.UUID, **fields) -> User | None:
        """Update profile columns and return the reloaded user."""
        unknown = set(fields) - PROFILE_FIELDS
        if unknown:
            raise ValueError(f"Not a profile field: {', '.join(sorted(unknown))}")
        if fields:
            await self._update(user_id, fields, op="update_profile")
        return await self.get(user_id)

    # ─── Internals ──────────────────────────────────────

    async def _update(self, user_id: uuid.UUID, values: dict, *, op: str) -> None:
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        try:
            await self.db.execute(stmt)
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise DuplicateUserError()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise self._internal(op, e) from e

    @staticmethod
    def _internal(op: str, error: Exception) -> InternalError:
        logger.error("user_store.failed", op=op, error=str(error))
        return InternalError()
