"""Filesystem implementation of ObjectStorage."""

import asyncio
import json
import re
from pathlib import Path

from pulsechat.domain.errors import UploadError
from pulsechat.domain.ids import new_id
from pulsechat.domain.repositories.object_storage import StoredObject, UploadTicket

# ULID in Crockford base32; anything else cannot be a handle we issued.
HANDLE_PATTERN = re.compile(r"^[0-9A-HJKMNP-TV-Z]{26}$")

DEFAULT_CONTENT_TYPE = "application/octet-stream"


class LocalFileStorage:
    """Stores attachments as files under a root directory.

    Each object is kept as ``<handle>`` (the bytes) next to ``<handle>.json``
    (its metadata). Issued handles are single use and expire after
    ``upload_ttl_ms``. Only the user a handle was issued to may upload against
    it, and the uploader is recorded in the metadata.
    """

    def __init__(
        self,
        root: Path,
        public_base_url: str,
        max_upload_bytes: int,
        upload_ttl_ms: int,
    ) -> None:
        """Initialize the storage.

        Args:
            root: Directory holding the stored objects.
            public_base_url: Base URL the file routes are served under.
            max_upload_bytes: Largest accepted payload.
            upload_ttl_ms: Lifetime of an issued handle in milliseconds.
        """
        self._root = root
        self._public_base_url = public_base_url.rstrip("/")
        self._max_upload_bytes = max_upload_bytes
        self._upload_ttl_ms = upload_ttl_ms
        self._issued: dict[str, tuple[int, str]] = {}

    @property
    def root(self) -> Path:
        return self._root

    async def issue_upload(self, owner_id: str, now: int) -> UploadTicket:
        self._drop_expired(now)
        handle = new_id()
        expires_at = now + self._upload_ttl_ms
        self._issued[handle] = (expires_at, owner_id)
        return UploadTicket(handle=handle, expires_at=expires_at)

    async def put(
        self, handle: str, owner_id: str, data: bytes, content_type: str, now: int
    ) -> None:
        issued = self._issued.get(handle)
        if issued is None or issued[0] <= now:
            self._issued.pop(handle, None)
            raise UploadError(
                "Upload handle is unknown or expired", reason="invalid_handle"
            )
        if issued[1] != owner_id:
            raise UploadError(
                "Upload handle was issued to another user", reason="invalid_handle"
            )
        if len(data) > self._max_upload_bytes:
            raise UploadError(
                f"Upload exceeds {self._max_upload_bytes} bytes", reason="too_large"
            )

        metadata = {
            "content_type": content_type or DEFAULT_CONTENT_TYPE,
            "size": len(data),
            "owner_id": owner_id,
        }
        try:
            await asyncio.to_thread(self._write, handle, data, metadata)
        except OSError as e:
            raise UploadError(f"Failed to store upload: {e}", reason="storage") from e

        # A handle accepts exactly one upload.
        del self._issued[handle]

    async def exists(self, handle: str) -> bool:
        if not HANDLE_PATTERN.match(handle):
            return False
        return await asyncio.to_thread(self._metadata_path(handle).exists)

    async def owner_of(self, handle: str) -> str | None:
        if not await self.exists(handle):
            return None
        try:
            metadata = await asyncio.to_thread(self._read_metadata, handle)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            raise UploadError(f"Failed to read upload: {e}", reason="storage") from e
        return metadata.get("owner_id")

    async def get(self, handle: str) -> StoredObject | None:
        if not await self.exists(handle):
            return None
        try:
            data, metadata = await asyncio.to_thread(self._read, handle)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            raise UploadError(f"Failed to read upload: {e}", reason="storage") from e
        return StoredObject(
            handle=handle,
            content_type=metadata.get("content_type", DEFAULT_CONTENT_TYPE),
            data=data,
        )

    async def resolve_url(self, handle: str) -> str | None:
        if not await self.exists(handle):
            return None
        return f"{self._public_base_url}/api/v1/files/{handle}"

    def _drop_expired(self, now: int) -> None:
        expired = [
            handle
            for handle, (expires_at, _) in self._issued.items()
            if expires_at <= now
        ]
        for handle in expired:
            del self._issued[handle]

    def _data_path(self, handle: str) -> Path:
        return self._root / handle

    def _metadata_path(self, handle: str) -> Path:
        return self._root / f"{handle}.json"

    def _write(self, handle: str, data: bytes, metadata: dict[str, object]) -> None:
        self._root.mkdir(parents=True, exist_ok=True)
        self._data_path(handle).write_bytes(data)
        # Metadata is written last; its presence marks a complete upload.
        self._metadata_path(handle).write_text(json.dumps(metadata))

    def _read_metadata(self, handle: str) -> dict[str, str]:
        return json.loads(self._metadata_path(handle).read_text())

    def _read(self, handle: str) -> tuple[bytes, dict[str, str]]:
        metadata = self._read_metadata(handle)
        return self._data_path(handle).read_bytes(), metadata
