"""ObjectStorage protocol."""

from typing import Protocol

from pydantic import BaseModel


class UploadTicket(BaseModel):
    """A pre-authorized upload handle.

    Attributes:
        handle: Opaque handle the bytes are uploaded against.
        expires_at: Time (epoch ms) after which the handle is rejected.
    """

    handle: str
    expires_at: int


class StoredObject(BaseModel):
    """Bytes stored against a handle, with their content type."""

    handle: str
    content_type: str
    data: bytes


class ObjectStorage(Protocol):
    """Binary object storage for message attachments.

    Implementations raise UploadError for storage failures and rejected
    content, never ValidationError.
    """

    async def issue_upload(self, owner_id: str, now: int) -> UploadTicket:
        """Issue a handle that one upload may be stored against.

        Args:
            owner_id: The only user allowed to upload against the handle.
            now: Current time in epoch milliseconds.

        Returns:
            The issued ticket.
        """
        ...

    async def put(
        self, handle: str, owner_id: str, data: bytes, content_type: str, now: int
    ) -> None:
        """Store bytes against an issued, unexpired handle.

        Args:
            handle: Handle from issue_upload().
            owner_id: The uploading user; must match the issued owner.
            data: Uploaded bytes.
            content_type: MIME type reported by the uploader.
            now: Current time in epoch milliseconds.

        Raises:
            UploadError: If the handle is unknown, expired or issued to another
                user, if the payload is too large, or if the bytes cannot be
                written.
        """
        ...

    async def exists(self, handle: str) -> bool:
        """Return True if bytes are stored against the handle."""
        ...

    async def owner_of(self, handle: str) -> str | None:
        """Return the user who uploaded the object, or None if nothing is stored."""
        ...

    async def get(self, handle: str) -> StoredObject | None:
        """Return the stored object, or None if nothing is stored."""
        ...

    async def resolve_url(self, handle: str) -> str | None:
        """Return a retrievable URL for the handle, or None if nothing is stored."""
        ...
