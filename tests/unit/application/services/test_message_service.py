"""Tests for MessageService.

Test cases:
- sending validates content and membership
- sending updates the conversation and the sender's read cursor
- sending clears the sender's typing signal
- attachments must reference a stored upload
- listing order, membership gate and attachment URLs
- soft delete semantics
"""

import pytest

from pulsechat.application.services import ChatServices
from pulsechat.application.views import Attachment
from pulsechat.domain.entities import User
from pulsechat.domain.errors import (
    ForbiddenError,
    NotFoundError,
    NotMemberError,
    UploadError,
    ValidationError,
)
from pulsechat.infrastructure.change_feed import ChangeFeed


async def _direct(services: ChatServices, caller: User, other: User) -> str:
    return await services.conversations.get_or_create_direct(caller, other.id)


async def _uploaded_attachment(services: ChatServices, caller: User) -> Attachment:
    target = await services.uploads.request_upload_target(caller)
    await services.uploads.store(caller, target.handle, b"\x89PNG data", "image/png")
    return Attachment(handle=target.handle, mime_type="image/png", file_name="a.png")


class TestSend:
    """Sending messages."""

    async def test_send_returns_listed_message(
        self, services: ChatServices, alice: User, bob: User
    ) -> None:
        conversation_id = await _direct(services, alice, bob)

        message_id = await services.messages.send(alice, conversation_id, "  hi  ")
        [message] = await services.messages.list_messages(bob, conversation_id)

        assert message.id == message_id
        assert message.content == "hi"
        assert message.sender_id == alice.id
        assert message.sender is not None and message.sender.name == "Alice"
        assert message.is_deleted is False
        assert message.is_own_message is False
        assert message.attachment is None

    @pytest.mark.parametrize("content", ["", "   ", None])
    async def test_blank_content_rejected(
        self, services: ChatServices, alice: User, bob: User, content: str | None
    ) -> None:
        conversation_id = await _direct(services, alice, bob)

        with pytest.raises(ValidationError):
            await services.messages.send(alice, conversation_id, content)

        assert await services.messages.list_messages(alice, conversation_id) == []

    async def test_non_member_rejected(
        self, services: ChatServices, alice: User, bob: User, carol: User
    ) -> None:
        conversation_id = await _direct(services, alice, bob)

        with pytest.raises(NotMemberError):
            await services.messages.send(carol, conversation_id, "hello?")

        assert await services.messages.list_messages(alice, conversation_id) == []

    async def test_send_updates_conversation_and_own_cursor(
        self, services: ChatServices, clock, alice: User, bob: User
    ) -> None:
        conversation_id = await _direct(services, alice, bob)
        clock.advance(500)

        message_id = await services.messages.send(bob, conversation_id, "yo")
        [summary] = await services.conversations.list_my_conversations(bob)

        assert summary.last_message is not None
        assert summary.last_message.id == message_id
        assert summary.last_message_time == clock.now
        assert summary.my_last_read_time == clock.now
        assert summary.unread_count == 0

    async def test_same_millisecond_messages_keep_send_order(
        self, services: ChatServices, alice: User, bob: User
    ) -> None:
        conversation_id = await _direct(services, alice, bob)

        first = await services.messages.send(alice, conversation_id, "first")
        second = await services.messages.send(bob, conversation_id, "second")
        third = await services.messages.send(alice, conversation_id, "third")

        messages = await services.messages.list_messages(alice, conversation_id)

        assert [m.id for m in messages] == [first, second, third]

    async def test_send_clears_sender_typing(
        self, services: ChatServices, alice: User, bob: User
    ) -> None:
        conversation_id = await _direct(services, alice, bob)
        await services.typing.set_typing(alice, conversation_id)

        await services.messages.send(alice, conversation_id, "done typing")

        assert await services.typing.get_typing_users(bob, conversation_id) == []

    async def test_send_publishes_to_members(
        self,
        services: ChatServices,
        change_feed: ChangeFeed,
        alice: User,
        bob: User,
    ) -> None:
        conversation_id = await _direct(services, alice, bob)
        keys = [f"messages:{conversation_id}", f"conversations:{bob.id}"]

        with change_feed.watch(keys) as subscription:
            await services.messages.send(alice, conversation_id, "ping")

            assert subscription.pending == frozenset(keys)


class TestAttachments:
    """Messages with attachments."""

    async def test_attachment_only_message(
        self, services: ChatServices, alice: User, bob: User
    ) -> None:
        conversation_id = await _direct(services, alice, bob)
        attachment = await _uploaded_attachment(services, alice)

        await services.messages.send(alice, conversation_id, "", attachment)
        [message] = await services.messages.list_messages(bob, conversation_id)

        assert message.content == ""
        assert message.attachment is not None
        assert message.attachment.handle == attachment.handle
        assert message.attachment.mime_type == "image/png"
        assert message.attachment.file_name == "a.png"
        assert message.attachment.url == (
            f"http://chat.test/api/v1/files/{attachment.handle}"
        )

    async def test_unknown_handle_rejected(
        self, services: ChatServices, alice: User, bob: User
    ) -> None:
        conversation_id = await _direct(services, alice, bob)
        attachment = Attachment(
            handle="01ARZ3NDEKTSV4RRFFQ69G5FAV", mime_type="image/png", file_name="x"
        )

        with pytest.raises(UploadError) as exc_info:
            await services.messages.send(alice, conversation_id, "look", attachment)

        assert exc_info.value.reason == "invalid_handle"
        assert await services.messages.list_messages(alice, conversation_id) == []

    async def test_issued_but_never_uploaded_handle_rejected(
        self, services: ChatServices, alice: User, bob: User
    ) -> None:
        conversation_id = await _direct(services, alice, bob)
        target = await services.uploads.request_upload_target(alice)
        attachment = Attachment(
            handle=target.handle, mime_type="image/png", file_name="x"
        )

        with pytest.raises(UploadError):
            await services.messages.send(alice, conversation_id, "", attachment)

    async def test_attachment_uploaded_by_other_user_rejected(
        self, services: ChatServices, alice: User, bob: User
    ) -> None:
        conversation_id = await _direct(services, alice, bob)
        attachment = await _uploaded_attachment(services, alice)

        with pytest.raises(UploadError) as exc_info:
            await services.messages.send(bob, conversation_id, "mine", attachment)

        assert exc_info.value.reason == "invalid_handle"
        assert await services.messages.list_messages(bob, conversation_id) == []

    async def test_preview_flags_attachment(
        self, services: ChatServices, alice: User, bob: User
    ) -> None:
        conversation_id = await _direct(services, alice, bob)
        attachment = await _uploaded_attachment(services, alice)

        await services.messages.send(alice, conversation_id, "pic", attachment)
        [summary] = await services.conversations.list_my_conversations(bob)

        assert summary.last_message is not None
        assert summary.last_message.has_attachment is True


class TestListMessages:
    """Listing messages."""

    async def test_non_member_gets_empty_list(
        self, services: ChatServices, alice: User, bob: User, carol: User
    ) -> None:
        conversation_id = await _direct(services, alice, bob)
        await services.messages.send(alice, conversation_id, "secret")

        assert await services.messages.list_messages(carol, conversation_id) == []

    async def test_no_caller_gets_empty_list(
        self, services: ChatServices, alice: User, bob: User
    ) -> None:
        conversation_id = await _direct(services, alice, bob)
        await services.messages.send(alice, conversation_id, "secret")

        assert await services.messages.list_messages(None, conversation_id) == []

    async def test_sorted_by_send_time(
        self, services: ChatServices, clock, alice: User, bob: User
    ) -> None:
        conversation_id = await _direct(services, alice, bob)
        for text in ("a", "b", "c"):
            clock.advance(10)
            await services.messages.send(alice, conversation_id, text)

        messages = await services.messages.list_messages(bob, conversation_id)

        assert [m.content for m in messages] == ["a", "b", "c"]
        assert [m.sent_at for m in messages] == sorted(m.sent_at for m in messages)

    async def test_own_message_flag(
        self, services: ChatServices, alice: User, bob: User
    ) -> None:
        conversation_id = await _direct(services, alice, bob)
        await services.messages.send(alice, conversation_id, "mine")

        [message] = await services.messages.list_messages(alice, conversation_id)

        assert message.is_own_message is True


class TestSoftDelete:
    """Soft deletion."""

    async def test_delete_clears_content(
        self, services: ChatServices, alice: User, bob: User
    ) -> None:
        conversation_id = await _direct(services, alice, bob)
        message_id = await services.messages.send(alice, conversation_id, "oops")

        await services.messages.soft_delete(alice, message_id)
        [message] = await services.messages.list_messages(bob, conversation_id)

        assert message.id == message_id
        assert message.content == ""
        assert message.is_deleted is True

    async def test_delete_keeps_attachment_but_hides_url(
        self, services: ChatServices, alice: User, bob: User
    ) -> None:
        conversation_id = await _direct(services, alice, bob)
        attachment = await _uploaded_attachment(services, alice)
        message_id = await services.messages.send(
            alice, conversation_id, "pic", attachment
        )

        await services.messages.soft_delete(alice, message_id)
        [message] = await services.messages.list_messages(bob, conversation_id)

        assert message.attachment is not None
        assert message.attachment.handle == attachment.handle
        assert message.attachment.url is None

    async def test_delete_does_not_change_conversation_order_or_unread(
        self, services: ChatServices, clock, alice: User, bob: User
    ) -> None:
        conversation_id = await _direct(services, alice, bob)
        clock.advance(10)
        message_id = await services.messages.send(alice, conversation_id, "oops")
        sent_at = clock.now
        clock.advance(10)

        await services.messages.soft_delete(alice, message_id)
        [summary] = await services.conversations.list_my_conversations(bob)

        assert summary.last_message_time == sent_at
        assert summary.unread_count == 1
        assert summary.last_message is not None
        assert summary.last_message.is_deleted is True
        assert summary.last_message.content == ""

    async def test_delete_twice_is_a_noop(
        self,
        services: ChatServices,
        change_feed: ChangeFeed,
        alice: User,
        bob: User,
    ) -> None:
        conversation_id = await _direct(services, alice, bob)
        message_id = await services.messages.send(alice, conversation_id, "oops")
        await services.messages.soft_delete(alice, message_id)

        with change_feed.watch([f"messages:{conversation_id}"]) as subscription:
            await services.messages.soft_delete(alice, message_id)

            assert subscription.pending == frozenset()

    async def test_delete_others_message_forbidden(
        self, services: ChatServices, alice: User, bob: User
    ) -> None:
        conversation_id = await _direct(services, alice, bob)
        message_id = await services.messages.send(alice, conversation_id, "mine")

        with pytest.raises(ForbiddenError):
            await services.messages.soft_delete(bob, message_id)

        [message] = await services.messages.list_messages(alice, conversation_id)
        assert message.content == "mine"

    async def test_delete_missing_message(
        self, services: ChatServices, alice: User
    ) -> None:
        with pytest.raises(NotFoundError):
            await services.messages.soft_delete(alice, "missing")


class TestUnreadScenario:
    """End-to-end unread accounting between two users."""

    async def test_send_read_delete(
        self, services: ChatServices, clock, alice: User, bob: User
    ) -> None:
        conversation_id = await _direct(services, alice, bob)
        clock.advance(100)
        message_id = await services.messages.send(alice, conversation_id, "hi")

        [summary] = await services.conversations.list_my_conversations(bob)
        assert summary.unread_count == 1
        assert summary.last_message is not None
        assert summary.last_message.content == "hi"

        clock.advance(100)
        await services.conversations.mark_as_read(bob, conversation_id)
        [summary] = await services.conversations.list_my_conversations(bob)
        assert summary.unread_count == 0

        await services.messages.soft_delete(alice, message_id)
        [message] = await services.messages.list_messages(bob, conversation_id)
        assert message.content == ""
        assert message.is_deleted is True
