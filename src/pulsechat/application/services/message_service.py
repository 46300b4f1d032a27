"""Message sending, listing and soft deletion."""

from structlog.stdlib import BoundLogger

from pulsechat.application.views import (
    Attachment,
    AttachmentView,
    MessageView,
    UserView,
)
from pulsechat.domain.clock import Clock
from pulsechat.domain.entities import ChangeEvent, ChangeType, Message, User
from pulsechat.domain.entities.event import (
    conversations_key,
    messages_key,
    typing_key,
)
from pulsechat.domain.errors import (
    ForbiddenError,
    NotFoundError,
    NotMemberError,
    UploadError,
    ValidationError,
)
from pulsechat.domain.repositories.object_storage import ObjectStorage
from pulsechat.infrastructure.change_feed import ChangeFeed
from pulsechat.infrastructure.persistence import (
    ConversationRepository,
    Database,
    MessageRepository,
    TypingRepository,
    UserRepository,
)


class MessageService:
    """Stores messages and keeps the unread accounting consistent.

    For a member M of conversation C, the unread count is the number of
    messages in C sent after M.last_read_time by someone other than M.
    Sending moves the sender's own cursor to the send time.
    """

    def __init__(
        self,
        database: Database,
        clock: Clock,
        change_feed: ChangeFeed,
        storage: ObjectStorage,
        logger: BoundLogger,
    ) -> None:
        self._database = database
        self._clock = clock
        self._change_feed = change_feed
        self._storage = storage
        self._logger = logger

    async def send(
        self,
        caller: User,
        conversation_id: str,
        content: str | None,
        attachment: Attachment | None = None,
    ) -> str:
        """Send a message to a conversation.

        Nothing is persisted when any check fails, so a failed send can be
        retried with the same input.

        Args:
            caller: The resolved caller.
            conversation_id: Target conversation.
            content: Message text; trimmed before storing.
            attachment: Uploaded attachment, if any.

        Returns:
            The new message id.

        Raises:
            ValidationError: If content is blank and there is no attachment.
            NotMemberError: If the caller is not a member of the conversation.
            UploadError: If the attachment handle has no stored upload, or the
                upload belongs to another user.
        """
        text = (content or "").strip()
        if not text and attachment is None:
            raise ValidationError("Message cannot be empty")

        now = self._clock.now_ms()
        async with self._database.transaction() as session:
            conversations = ConversationRepository(session)
            messages = MessageRepository(session)

            membership = await conversations.get_membership(caller.id, conversation_id)
            if membership is None:
                raise NotMemberError("Not a member of this conversation")

            if attachment is not None:
                owner_id = await self._storage.owner_of(attachment.handle)
                if owner_id is None:
                    raise UploadError(
                        "Attachment upload not found", reason="invalid_handle"
                    )
                if owner_id != caller.id:
                    raise UploadError(
                        "Attachment was uploaded by another user",
                        reason="invalid_handle",
                    )

            conversation = await conversations.get(conversation_id)
            if conversation is None:
                raise NotFoundError("Conversation not found")

            message = Message(
                conversation_id=conversation_id,
                sender_id=caller.id,
                content=text,
                is_deleted=False,
                sent_at=now,
                seq=await messages.next_seq(conversation_id),
                attachment_handle=attachment.handle if attachment else None,
                attachment_mime_type=attachment.mime_type if attachment else None,
                attachment_file_name=attachment.file_name if attachment else None,
            )
            messages.add(message)

            conversation.last_message_id = message.id
            conversation.last_message_time = now
            session.add(conversation)

            membership.last_read_time = now
            session.add(membership)

            await TypingRepository(session).delete_for(caller.id, conversation_id)

            member_ids = [
                m.user_id for m in await conversations.list_members(conversation_id)
            ]
            message_id = message.id

        self._change_feed.publish(
            ChangeEvent(
                type=ChangeType.MESSAGE_SENT,
                keys=frozenset(
                    {messages_key(conversation_id), typing_key(conversation_id)}
                    | {conversations_key(user_id) for user_id in member_ids}
                ),
                payload={"conversation_id": conversation_id, "message_id": message_id},
            )
        )
        self._logger.info(
            "Message sent",
            conversation_id=conversation_id,
            message_id=message_id,
            user_id=caller.id,
            has_attachment=attachment is not None,
        )
        return message_id

    async def list_messages(
        self, caller: User | None, conversation_id: str
    ) -> list[MessageView]:
        """List a conversation's messages in send order.

        Args:
            caller: The resolved caller, or None before onboarding.
            conversation_id: The conversation.

        Returns:
            Messages oldest first, each with its sender and attachment URL.
            Empty if there is no caller or the caller is not a member.
        """
        if caller is None:
            return []

        async with self._database.get_session() as session:
            membership = await ConversationRepository(session).get_membership(
                caller.id, conversation_id
            )
            if membership is None:
                return []

            messages = await MessageRepository(session).list_for_conversation(
                conversation_id
            )
            senders = await UserRepository(session).get_many(
                m.sender_id for m in messages
            )

        views = []
        for message in messages:
            sender = senders.get(message.sender_id)
            views.append(
                MessageView(
                    id=message.id,
                    conversation_id=message.conversation_id,
                    sender_id=message.sender_id,
                    sender=UserView.from_entity(sender) if sender else None,
                    content=message.content,
                    is_deleted=message.is_deleted,
                    sent_at=message.sent_at,
                    is_own_message=message.sender_id == caller.id,
                    attachment=await self._attachment_view(message),
                )
            )
        return views

    async def soft_delete(self, caller: User, message_id: str) -> None:
        """Soft-delete one of the caller's own messages.

        The text is cleared and the flag set; attachment fields are kept.
        Deleting an already deleted message changes nothing.

        Raises:
            NotFoundError: If the message does not exist.
            ForbiddenError: If the caller did not send the message.
        """
        async with self._database.transaction() as session:
            message = await MessageRepository(session).get(message_id)
            if message is None:
                raise NotFoundError("Message not found")
            if message.sender_id != caller.id:
                raise ForbiddenError("You can only delete your own messages")

            changed = message.soft_delete()
            if not changed:
                return
            session.add(message)

            conversation_id = message.conversation_id
            member_ids = [
                m.user_id
                for m in await ConversationRepository(session).list_members(
                    conversation_id
                )
            ]

        self._change_feed.publish(
            ChangeEvent(
                type=ChangeType.MESSAGE_DELETED,
                keys=frozenset(
                    {messages_key(conversation_id)}
                    | {conversations_key(user_id) for user_id in member_ids}
                ),
                payload={"conversation_id": conversation_id, "message_id": message_id},
            )
        )
        self._logger.info(
            "Message deleted",
            conversation_id=conversation_id,
            message_id=message_id,
            user_id=caller.id,
        )

    async def _attachment_view(self, message: Message) -> AttachmentView | None:
        if message.attachment_handle is None:
            return None

        url = None
        if not message.is_deleted:
            try:
                url = await self._storage.resolve_url(message.attachment_handle)
            except UploadError as e:
                self._logger.warning(
                    "Failed to resolve attachment",
                    message_id=message.id,
                    handle=message.attachment_handle,
                    error=str(e),
                )

        return AttachmentView(
            handle=message.attachment_handle,
            mime_type=message.attachment_mime_type,
            file_name=message.attachment_file_name,
            url=url,
        )
