"""Attachment upload handles and file URLs."""

from structlog.stdlib import BoundLogger

from pulsechat.application.views import UploadTarget
from pulsechat.domain.clock import Clock
from pulsechat.domain.entities import User
from pulsechat.domain.repositories.object_storage import ObjectStorage, StoredObject


class UploadService:
    """Front for the attachment storage collaborator."""

    def __init__(
        self,
        storage: ObjectStorage,
        clock: Clock,
        logger: BoundLogger,
        public_base_url: str,
    ) -> None:
        self._storage = storage
        self._clock = clock
        self._logger = logger
        self._public_base_url = public_base_url.rstrip("/")

    async def request_upload_target(self, caller: User) -> UploadTarget:
        """Issue a pre-authorized upload target for the caller."""
        ticket = await self._storage.issue_upload(caller.id, self._clock.now_ms())
        self._logger.info(
            "Upload target issued", handle=ticket.handle, user_id=caller.id
        )
        return UploadTarget(
            handle=ticket.handle,
            upload_url=f"{self._public_base_url}/api/v1/uploads/{ticket.handle}",
            expires_at=ticket.expires_at,
        )

    async def store(
        self, caller: User, handle: str, data: bytes, content_type: str
    ) -> None:
        """Store uploaded bytes against an issued handle.

        Raises:
            UploadError: If the handle is invalid or was issued to another
                user, if the payload is too large, or if the storage write fails.
        """
        await self._storage.put(
            handle, caller.id, data, content_type, self._clock.now_ms()
        )
        self._logger.info(
            "Upload stored", handle=handle, user_id=caller.id, size=len(data)
        )

    async def resolve_file_url(self, handle: str) -> str | None:
        return await self._storage.resolve_url(handle)

    async def open_file(self, handle: str) -> StoredObject | None:
        return await self._storage.get(handle)
