"""Account service — profile details and profile images.

Registration with uploads lives here because it has to coordinate the
media host with the auth service: fields and duplicates are checked
before anything is uploaded, and uploaded images are removed again if the
account cannot be created.
"""

import uuid
from pathlib import Path
from typing import Optional

import structlog

from accounts.db.models import User
from accounts.errors import AccountError, UnauthorizedError, ValidationError
from accounts.services.auth_service import AuthService, check_lengths, normalize_email
from accounts.services.media import MediaHost, discard_local
from accounts.services.user_store import UserStore

logger = structlog.get_logger()


class AccountService:
    def __init__(self, store: UserStore, auth: AuthService, media: MediaHost):
        self.store = store
        self.auth = auth
        self.media = media

    async def register(
        self,
        *,
        username: Optional[str],
        email: Optional[str],
        full_name: Optional[str],
        password: Optional[str],
        avatar_path: Optional[Path],
        cover_image_path: Optional[Path] = None,
    ) -> User:
        try:
            await self.auth.check_registration(username, email, full_name, password)
            if not avatar_path:
                raise ValidationError("Avatar file is required")
        except AccountError:
            discard_local(avatar_path, cover_image_path)
            raise

        avatar = await self.media.upload(avatar_path)
        cover_image = await self.media.upload(cover_image_path)
        if avatar is None:
            if cover_image:
                await self.media.delete(cover_image.public_id)
            raise ValidationError("Avatar file is required")

        try:
            return await self.auth.register(
                username, email, full_name, password, avatar, cover_image
            )
        except AccountError:
            await self.media.delete(avatar.public_id)
            if cover_image:
                await self.media.delete(cover_image.public_id)
            raise

    async def update_account_details(
        self,
        user_id: uuid.UUID,
        full_name: Optional[str],
        email: Optional[str],
    ) -> User:
        if not (full_name or "").strip() or not (email or "").strip():
            raise ValidationError("All fields are required")
        full_name = full_name.strip()
        email = normalize_email(email)
        check_lengths(full_name=full_name, email=email)

        user = await self.store.update_profile(user_id, full_name=full_name, email=email)
        if not user:
            raise UnauthorizedError()
        logger.info("account.details_updated", user_id=str(user_id))
        return user

    async def update_avatar(self, user_id: uuid.UUID, local_path: Optional[Path]) -> User:
        return await self._replace_image(user_id, local_path, "avatar")

    async def update_cover_image(
        self, user_id: uuid.UUID, local_path: Optional[Path]
    ) -> User:
        return await self._replace_image(user_id, local_path, "cover_image")

    async def _replace_image(
        self, user_id: uuid.UUID, local_path: Optional[Path], field: str
    ) -> User:
        """Upload a new image, point the user at it, then drop the old asset."""
        label = field.replace("_", " ").capitalize()
        if not local_path:
            raise ValidationError(f"{label} file is missing")

        current = await self.store.get(user_id)
        if not current:
            discard_local(local_path)
            raise UnauthorizedError()
        old_public_id = getattr(current, f"{field}_public_id")

        asset = await self.media.upload(local_path)
        if asset is None:
            raise ValidationError(f"Error while uploading {label.lower()}")

        user = await self.store.update_profile(
            user_id, **{field: asset.url, f"{field}_public_id": asset.public_id}
        )
        if old_public_id and old_public_id != asset.public_id:
            await self.media.delete(old_public_id)
        logger.info("account.image_replaced", user_id=str(user_id), field=field)
        return user
