"""Tests for UploadService."""

import pytest

from pulsechat.application.services import ChatServices
from pulsechat.domain.entities import User
from pulsechat.domain.errors import UploadError


class TestUploads:
    """Upload targets, storage and file lookup."""

    async def test_request_upload_target(
        self, services: ChatServices, clock, alice: User
    ) -> None:
        target = await services.uploads.request_upload_target(alice)

        assert target.upload_url == f"http://chat.test/api/v1/uploads/{target.handle}"
        assert target.expires_at == clock.now + 60_000

    async def test_store_and_open(self, services: ChatServices, alice: User) -> None:
        target = await services.uploads.request_upload_target(alice)

        await services.uploads.store(alice, target.handle, b"hello", "text/plain")
        stored = await services.uploads.open_file(target.handle)
        url = await services.uploads.resolve_file_url(target.handle)

        assert stored is not None
        assert stored.data == b"hello"
        assert stored.content_type == "text/plain"
        assert url == f"http://chat.test/api/v1/files/{target.handle}"

    async def test_too_large(self, services: ChatServices, alice: User) -> None:
        target = await services.uploads.request_upload_target(alice)

        with pytest.raises(UploadError) as exc_info:
            await services.uploads.store(alice, target.handle, b"x" * 2048, "a/b")

        assert exc_info.value.reason == "too_large"
        assert await services.uploads.open_file(target.handle) is None

    async def test_handle_issued_to_other_user(
        self, services: ChatServices, alice: User, bob: User
    ) -> None:
        target = await services.uploads.request_upload_target(alice)

        with pytest.raises(UploadError) as exc_info:
            await services.uploads.store(bob, target.handle, b"x", "a/b")

        assert exc_info.value.reason == "invalid_handle"
        assert await services.uploads.open_file(target.handle) is None

    async def test_unknown_handle(self, services: ChatServices, alice: User) -> None:
        with pytest.raises(UploadError) as exc_info:
            await services.uploads.store(alice, "not-issued", b"x", "a/b")

        assert exc_info.value.reason == "invalid_handle"

    async def test_unknown_file(self, services: ChatServices) -> None:
        assert await services.uploads.open_file("01ARZ3NDEKTSV4RRFFQ69G5FAV") is None
        assert await services.uploads.resolve_file_url("../etc/passwd") is None
