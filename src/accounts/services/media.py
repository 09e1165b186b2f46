"""Media host client — profile images on Cloudinary.

Uploaded request files are first streamed into a local temp directory
(save_upload), then pushed to Cloudinary's upload API with a signed
request. The local file is always removed afterwards, whether the upload
worked or not.

Upload and delete never raise for host-side problems: they log and return
None/False, and the caller decides whether a missing image is fatal.
"""

import hashlib
import os
import secrets
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import httpx
import structlog
from fastapi import UploadFile

from accounts.config import Settings
from accounts.errors import ValidationError

logger = structlog.get_logger()

_CHUNK_SIZE = 64 * 1024

# Profile media are images only. Upload and destroy must use the same
# resource type or Cloudinary cannot find the asset to delete.
RESOURCE_TYPE = "image"


@dataclass(frozen=True)
class MediaAsset:
    """A file stored on the media host."""
    url: str
    public_id: str


def sign_params(params: dict, api_secret: str) -> str:
    """Cloudinary request signature: SHA-1 of sorted "k=v" pairs + secret."""
    to_sign = "&".join(f"{k}={params[k]}" for k in sorted(params))
    return hashlib.sha1(f"{to_sign}{api_secret}".encode()).hexdigest()


class MediaHost:
    """Signed Cloudinary uploads and deletes over httpx."""

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.cloud_name = settings.cloudinary_cloud_name
        self.api_key = settings.cloudinary_api_key
        self.api_secret = settings.cloudinary_api_secret
        self.api_base = settings.cloudinary_api_base.rstrip("/")
        self.timeout = settings.media_timeout_seconds
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=self.timeout)

    def _signed(self, params: dict) -> dict:
        params = {**params, "timestamp": str(int(time.time()))}
        return {
            **params,
            "api_key": self.api_key,
            "signature": sign_params(params, self.api_secret),
        }

    async def upload(self, local_path: Optional[Path | str]) -> MediaAsset | None:
        """Upload a local file and delete it from disk. None on any failure."""
        if not local_path:
            return None
        path = Path(local_path)
        url = f"{self.api_base}/{self.cloud_name}/{RESOURCE_TYPE}/upload"
        try:
            with path.open("rb") as fh:
                async with self._client() as client:
                    r = await client.post(
                        url,
                        data=self._signed({}),
                        files={"file": (path.name, fh)},
                    )
            r.raise_for_status()
            body = r.json()
            asset = MediaAsset(
                url=body.get("secure_url") or body["url"],
                public_id=body["public_id"],
            )
            logger.info("media.uploaded", public_id=asset.public_id)
            return asset
        except (httpx.HTTPError, OSError, KeyError, ValueError) as e:
            logger.warning("media.upload_failed", file=path.name, error=str(e))
            return None
        finally:
            _remove_quietly(path)

    async def delete(self, public_id: Optional[str]) -> bool:
        """Destroy an asset on the media host. False if it could not be removed."""
        if not public_id:
            return False
        url = f"{self.api_base}/{self.cloud_name}/{RESOURCE_TYPE}/destroy"
        try:
            async with self._client() as client:
                r = await client.post(url, data=self._signed({"public_id": public_id}))
            r.raise_for_status()
            result = r.json().get("result")
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("media.delete_failed", public_id=public_id, error=str(e))
            return False
        if result != "ok":
            logger.warning("media.delete_rejected", public_id=public_id, result=result)
            return False
        logger.info("media.deleted", public_id=public_id)
        return True


async def save_upload(
    file: Optional[UploadFile],
    upload_dir: str,
    max_bytes: int,
) -> Path | None:
    """Stream an uploaded file into upload_dir under a random name.

    Returns None when no file was sent. Empty or oversized files are
    rejected with ValidationError and nothing is left on disk.
    """
    if file is None or not file.filename:
        return None

    os.makedirs(upload_dir, exist_ok=True)
    suffix = Path(file.filename).suffix.lower()
    path = Path(upload_dir) / f"{secrets.token_hex(12)}{suffix}"

    written = 0
    with path.open("wb") as out:
        while True:
            chunk = await file.read(_CHUNK_SIZE)
            if not chunk:
                break
            written += len(chunk)
            if written > max_bytes:
                break
            out.write(chunk)

    if written == 0 or written > max_bytes:
        _remove_quietly(path)
        reason = "is empty" if written == 0 else "is too large"
        raise ValidationError(f"Uploaded file {reason}")
    return path


def discard_local(*paths: Optional[Path | str]) -> None:
    """Remove spooled upload files that will never reach the media host."""
    for path in paths:
        if path:
            _remove_quietly(Path(path))


def _remove_quietly(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
