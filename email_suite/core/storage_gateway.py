"""
Storage Gateway client for attachment and signature image uploads.
"""

import logging
import secrets
import string
import time
from typing import AsyncIterator, Callable, Optional
from urllib.parse import quote

from email_suite.core.http_client import BackendClient, settings
from email_suite.schemas.attachment import LocalFile

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]

ATTACHMENTS_PREFIX = "attachments"
SIGNATURES_PREFIX = "signatures"

UPLOAD_CHUNK_SIZE = 64 * 1024

_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits


def build_upload_path(
    prefix: str,
    user_id: str,
    filename: str,
    default_extension: str = "bin",
) -> str:
    """``{prefix}/{user_id}/{millis}_{random}.{ext}``; the original name is kept in metadata only."""
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else default_extension
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(6))
    return f"{prefix}/{user_id}/{int(time.time() * 1000)}_{suffix}.{ext or default_extension}"


class StorageGateway(BackendClient):
    """Uploads files to the object store and returns their public URLs."""

    def __init__(self, bucket: Optional[str] = None, chunk_size: int = UPLOAD_CHUNK_SIZE, **kwargs):
        super().__init__(**kwargs)
        self.bucket = bucket or settings.storage_bucket
        self.chunk_size = chunk_size

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{quote(path)}"

    async def _stream(
        self,
        content: bytes,
        on_progress: Optional[ProgressCallback],
    ) -> AsyncIterator[bytes]:
        total = len(content)
        sent = 0
        for start in range(0, total, self.chunk_size):
            chunk = content[start:start + self.chunk_size]
            yield chunk
            sent += len(chunk)
            if on_progress:
                on_progress(sent, total)

    async def upload_file(
        self,
        file: LocalFile,
        path_hint: str,
        on_progress: Optional[ProgressCallback] = None,
        cache_control: Optional[str] = None,
    ) -> dict:
        """
        Upload ``file`` to ``path_hint`` inside the bucket.

        ``on_progress(bytes_sent, total)`` fires as the body is streamed.
        Returns ``{"path": ..., "url": ...}``.
        """
        headers = {
            "Content-Type": file.mime_type or "application/octet-stream",
            "Content-Length": str(len(file.content)),
            "x-upsert": "false",
        }
        if cache_control:
            headers["Cache-Control"] = cache_control

        await self._request(
            "POST",
            f"/storage/v1/object/{self.bucket}/{quote(path_hint)}",
            retry=False,
            headers=headers,
            content=self._stream(file.content, on_progress),
        )
        logger.debug(f"Uploaded {file.name} ({file.size} bytes) to {path_hint}")
        return {"path": path_hint, "url": self.public_url(path_hint)}
