"""
Cloudinary Media Service

Signed uploads and deletions against the Cloudinary upload API.
"""

import hashlib
import logging
import time
from typing import Any, Dict, Optional

import httpx

from app.config.settings import get_settings
from app.infrastructure.exceptions import ConfigurationError, MediaServiceError


logger = logging.getLogger(__name__)

CLOUDINARY_API_URL = "https://api.cloudinary.com/v1_1"
ALLOWED_CONTENT_TYPES = {"image/jpeg", "image/png", "image/webp", "image/gif"}
MAX_UPLOAD_BYTES = 5 * 1024 * 1024


def sign_params(params: Dict[str, Any], api_secret: str) -> str:
    """
    Cloudinary request signature.

    Parameters are sorted by key, joined as `k=v&k=v`, suffixed with the
    API secret and hashed with SHA-1.
    """
    to_sign = "&".join(
        f"{key}={params[key]}" for key in sorted(params) if params[key] not in (None, "")
    )
    return hashlib.sha1(f"{to_sign}{api_secret}".encode("utf-8")).hexdigest()


class CloudinaryService:
    """Thin client over the Cloudinary image upload API."""

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        settings = get_settings()
        self._cloud_name = settings.cloudinary_cloud_name
        self._api_key = settings.cloudinary_api_key
        self._api_secret = settings.cloudinary_api_secret
        self._folder = settings.cloudinary_folder
        self._timeout = settings.gateway_timeout_seconds
        self._transport = transport

    def _require_config(self) -> None:
        missing = [
            name
            for name, value in (
                ("CLOUDINARY_CLOUD_NAME", self._cloud_name),
                ("CLOUDINARY_API_KEY", self._api_key),
                ("CLOUDINARY_API_SECRET", self._api_secret),
            )
            if not value
        ]
        if missing:
            raise ConfigurationError("Cloudinary is not configured", missing_keys=missing)

    async def _post(self, action: str, data: Dict[str, Any], files=None) -> Dict[str, Any]:
        url = f"{CLOUDINARY_API_URL}/{self._cloud_name}/image/{action}"
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            try:
                response = await client.post(url, data=data, files=files)
            except httpx.TransportError as e:
                raise MediaServiceError(f"Cloudinary {action} failed: {e}", original_error=e)

        if response.status_code >= 400:
            raise MediaServiceError(
                f"Cloudinary {action} failed: {response.text}",
                details={"status_code": response.status_code},
            )
        return response.json()

    async def upload_image(
        self,
        content: bytes,
        filename: str,
        content_type: str,
        folder: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Upload an image.

        Returns:
            Dict with `url`, `public_id`, `width`, `height`
        """
        self._require_config()

        if content_type not in ALLOWED_CONTENT_TYPES:
            raise MediaServiceError(f"Unsupported image type: {content_type}")
        if len(content) > MAX_UPLOAD_BYTES:
            raise MediaServiceError("Image exceeds the 5MB limit")

        params = {"folder": folder or self._folder, "timestamp": int(time.time())}
        data = {
            **params,
            "api_key": self._api_key,
            "signature": sign_params(params, self._api_secret),
        }
        result = await self._post(
            "upload", data, files={"file": (filename, content, content_type)}
        )

        logger.info(f"Uploaded image {result.get('public_id')}")
        return {
            "url": result.get("secure_url"),
            "public_id": result.get("public_id"),
            "width": result.get("width"),
            "height": result.get("height"),
        }

    async def delete_image(self, public_id: str) -> bool:
        """Delete an image; True when Cloudinary reports `ok`."""
        self._require_config()

        params = {"public_id": public_id, "timestamp": int(time.time())}
        data = {
            **params,
            "api_key": self._api_key,
            "signature": sign_params(params, self._api_secret),
        }
        result = await self._post("destroy", data)

        deleted = result.get("result") == "ok"
        logger.info(f"Delete image {public_id}: {result.get('result')}")
        return deleted


_cloudinary_service_instance: Optional[CloudinaryService] = None


def get_cloudinary_service() -> CloudinaryService:
    """Get or create Cloudinary service singleton."""
    global _cloudinary_service_instance

    if _cloudinary_service_instance is None:
        _cloudinary_service_instance = CloudinaryService()

    return _cloudinary_service_instance
