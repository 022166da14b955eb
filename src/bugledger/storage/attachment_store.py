"""Screenshot uploads to an external object store.

Uploads are best effort: every failure is logged and reported as ``None`` so
a broken store never fails a submission.
"""

import base64
import logging
import re
import secrets
import time
from typing import Protocol

import httpx

from bugledger.config import Settings

logger = logging.getLogger(__name__)

_MAGIC_TYPES = (
    (b"\x89PNG\r\n\x1a\n", "image/png", "png"),
    (b"\xff\xd8\xff", "image/jpeg", "jpg"),
    (b"GIF87a", "image/gif", "gif"),
    (b"GIF89a", "image/gif", "gif"),
)

_NON_BASE64 = re.compile(r"[^A-Za-z0-9+/]")


def decode_attachment(encoded: str) -> bytes:
    """Decode a base64 attachment as mobile and browser clients send it.

    Line breaks, a ``data:`` URL prefix, URL-safe characters and missing
    padding are tolerated. Raises ValueError when nothing decodable remains.
    """
    if encoded.startswith("data:") and "," in encoded:
        encoded = encoded.split(",", 1)[1]
    cleaned = _NON_BASE64.sub("", encoded.replace("-", "+").replace("_", "/"))
    if len(cleaned) % 4 == 1:
        raise ValueError("attachment is not valid base64")
    data = base64.b64decode(cleaned + "=" * (-len(cleaned) % 4))
    if not data:
        raise ValueError("attachment is empty")
    return data


def sniff_image_type(data: bytes) -> tuple[str, str]:
    """Return (content_type, extension); unknown payloads are stored as PNG."""
    for magic, content_type, ext in _MAGIC_TYPES:
        if data.startswith(magic):
            return content_type, ext
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp", "webp"
    return "image/png", "png"


class AttachmentStore(Protocol):
    async def store(self, tenant_id: str, data: bytes) -> str | None:
        """Upload ``data`` and return its public URL, or None on failure."""
        ...


class DisabledAttachmentStore:
    """Used when no object store is configured; every upload degrades."""

    async def store(self, tenant_id: str, data: bytes) -> str | None:
        logger.warning(
            "attachment_upload_failed",
            extra={"tenant_id": tenant_id, "error": "attachment storage not configured"},
        )
        return None


class HttpAttachmentStore:
    """Uploads through a Supabase-storage style REST API.

    Objects are written to ``{base_url}/object/{bucket}/{key}`` and served
    from ``{base_url}/object/public/{bucket}/{key}``.
    """

    def __init__(
        self,
        base_url: str,
        service_key: str,
        bucket: str,
        client: httpx.AsyncClient,
        max_bytes: int | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.service_key = service_key
        self.bucket = bucket
        self.client = client
        self.max_bytes = max_bytes

    def object_key(self, tenant_id: str, ext: str) -> str:
        return f"{tenant_id}/{int(time.time() * 1000)}-{secrets.token_hex(8)}.{ext}"

    def public_url(self, key: str) -> str:
        return f"{self.base_url}/object/public/{self.bucket}/{key}"

    async def store(self, tenant_id: str, data: bytes) -> str | None:
        if self.max_bytes is not None and len(data) > self.max_bytes:
            logger.warning(
                "attachment_upload_failed",
                extra={"tenant_id": tenant_id, "error": f"attachment exceeds {self.max_bytes} bytes"},
            )
            return None

        content_type, ext = sniff_image_type(data)
        key = self.object_key(tenant_id, ext)
        headers = {
            "Authorization": f"Bearer {self.service_key}",
            "Content-Type": content_type,
            "x-upsert": "false",
        }
        try:
            resp = await self.client.post(
                f"{self.base_url}/object/{self.bucket}/{key}",
                content=data,
                headers=headers,
            )
        except httpx.HTTPError as exc:
            logger.warning(
                "attachment_upload_failed",
                extra={"tenant_id": tenant_id, "error": str(exc) or exc.__class__.__name__},
            )
            return None

        if resp.status_code >= 300:
            logger.warning(
                "attachment_upload_failed",
                extra={"tenant_id": tenant_id, "error": f"HTTP {resp.status_code}", "object_key": key},
            )
            return None
        return self.public_url(key)


def create_attachment_store(
    settings: Settings, client: httpx.AsyncClient | None = None
) -> HttpAttachmentStore | DisabledAttachmentStore:
    """Build the store described by ``settings``.

    The caller owns ``client`` (or the one created here, reachable as
    ``store.client``) and must close it on shutdown.
    """
    if not settings.storage_url:
        return DisabledAttachmentStore()
    return HttpAttachmentStore(
        base_url=settings.storage_url,
        service_key=settings.storage_service_key,
        bucket=settings.storage_bucket,
        client=client or httpx.AsyncClient(timeout=settings.storage_timeout_seconds),
        max_bytes=settings.max_attachment_bytes,
    )
