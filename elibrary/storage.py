import asyncio
import hashlib
import logging
import time
from pathlib import Path
from typing import Optional

import httpx

from elibrary.config import settings

logger = logging.getLogger(__name__)

IMAGE = "image"
RAW = "raw"

COVER_FOLDER = "book-covers"
FILE_FOLDER = "book-pdfs"


class AssetStoreError(Exception):
    pass


def public_id_from_url(url: str, resource_type: str = IMAGE) -> str:
    # image public ids drop the extension, raw ones keep it
    parts = url.rstrip("/").split("/")
    if len(parts) < 2 or not parts[-1]:
        raise AssetStoreError(f"Cannot derive a public id from {url!r}")

    folder, name = parts[-2], parts[-1]
    if resource_type == IMAGE and "." in name:
        name = name.rsplit(".", 1)[0]
    return f"{folder}/{name}"


class CloudinaryStore:
    def __init__(
        self,
        cloud_name: Optional[str],
        api_key: Optional[str],
        api_secret: Optional[str],
        base_url: str = "https://api.cloudinary.com/v1_1",
        timeout: float = 30,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.cloud_name = cloud_name
        self.api_key = api_key
        self.api_secret = api_secret
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.cloud_name and self.api_key and self.api_secret)

    def _ensure_configured(self) -> None:
        if not self.configured:
            raise AssetStoreError("Cloudinary credentials are not configured")

    def _endpoint(self, resource_type: str, action: str) -> str:
        return f"{self.base_url}/{self.cloud_name}/{resource_type}/{action}"

    def sign(self, params: dict) -> str:
        to_sign = "&".join(f"{key}={params[key]}" for key in sorted(params) if params[key] not in (None, ""))
        return hashlib.sha1(f"{to_sign}{self.api_secret}".encode("utf-8")).hexdigest()

    def _signed(self, params: dict) -> dict:
        params = {key: value for key, value in params.items() if value not in (None, "")}
        params["timestamp"] = str(int(time.time()))
        params["signature"] = self.sign(params)
        params["api_key"] = self.api_key
        return params

    async def _post(self, url: str, data: dict, files: Optional[dict] = None) -> dict:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                response = await client.post(url, data=data, files=files)
            except httpx.RequestError as exc:
                logger.error(f"Error communicating with Cloudinary: {exc}")
                raise AssetStoreError("Asset store unavailable") from exc

        if response.status_code not in (200, 201):
            logger.error(f"Cloudinary request to {url} failed ({response.status_code}): {response.text}")
            raise AssetStoreError(f"Asset store returned {response.status_code}")
        try:
            return response.json()
        except ValueError as exc:
            raise AssetStoreError("Asset store returned a malformed response") from exc

    async def upload(
        self,
        path: Path,
        *,
        folder: str,
        resource_type: str = IMAGE,
        fmt: Optional[str] = None,
        filename: Optional[str] = None,
    ) -> str:
        """Upload the local file at ``path`` and return its secure URL."""
        self._ensure_configured()
        params = self._signed({
            "folder": folder,
            "format": fmt,
            "filename_override": filename,
        })
        path = Path(path)
        content = await asyncio.to_thread(path.read_bytes)
        body = await self._post(
            self._endpoint(resource_type, "upload"),
            data=params,
            files={"file": (filename or path.name, content)},
        )

        secure_url = body.get("secure_url")
        if not secure_url:
            raise AssetStoreError("Asset store response has no secure_url")
        logger.info(f"Uploaded {resource_type} object {body.get('public_id')} to {folder}")
        return secure_url

    async def destroy(self, public_id: str, *, resource_type: str = IMAGE) -> None:
        self._ensure_configured()
        body = await self._post(
            self._endpoint(resource_type, "destroy"),
            data=self._signed({"public_id": public_id}),
        )
        result = body.get("result")
        if result == "not found":
            logger.warning(f"{resource_type} object {public_id} was already gone")
        elif result != "ok":
            raise AssetStoreError(f"Unexpected destroy result for {public_id}: {result}")


def get_asset_store() -> CloudinaryStore:
    return CloudinaryStore(
        settings.CLOUDINARY_CLOUD,
        settings.CLOUDINARY_API_KEY,
        settings.CLOUDINARY_API_SECRET,
        base_url=settings.CLOUDINARY_API_URL,
        timeout=settings.ASSET_STORE_TIMEOUT_SECONDS,
    )
