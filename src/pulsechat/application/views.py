"""Read models returned by the application services."""

from pydantic import BaseModel, Field

from pulsechat.domain.entities import Conversation, Message, User


class UserView(BaseModel):
    """Public profile of a user."""

    id: str
    name: str
    email: str
    avatar_url: str

    @classmethod
    def from_entity(cls, user: User) -> "UserView":
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            avatar_url=user.avatar_url,
        )


class Attachment(BaseModel):
    """Attachment descriptor supplied when sending a message."""

    handle: str = Field(min_length=1)
    mime_type: str
    file_name: str


class AttachmentView(BaseModel):
    """Attachment of a listed message with its resolved URL."""

    handle: str
    mime_type: str | None
    file_name: str | None
    url: str | None


class MessagePreview(BaseModel):
    """Last message of a conversation, as shown in the conversation list."""

    id: str
    sender_id: str
    content: str
    is_deleted: bool
    sent_at: int
    has_attachment: bool

    @classmethod
    def from_entity(cls, message: Message) -> "MessagePreview":
        return cls(
            id=message.id,
            sender_id=message.sender_id,
            content=message.content,
            is_deleted=message.is_deleted,
            sent_at=message.sent_at,
            has_attachment=message.has_attachment,
        )


class MessageView(BaseModel):
    """A message as listed to a conversation member."""

    id: str
    conversation_id: str
    sender_id: str
    sender: UserView | None
    content: str
    is_deleted: bool
    sent_at: int
    is_own_message: bool
    attachment: AttachmentView | None = None


class ConversationSummary(BaseModel):
    """Entry of a user's conversation list."""

    id: str
    is_group: bool
    name: str | None
    created_at: int
    last_message_time: int | None
    last_message: MessagePreview | None
    other_users: list[UserView]
    member_count: int
    unread_count: int
    my_last_read_time: int


class ConversationDetail(BaseModel):
    """A single conversation as seen by one of its members."""

    id: str
    is_group: bool
    name: str | None
    created_at: int
    last_message_time: int | None
    other_users: list[UserView]
    all_users: list[UserView]
    member_count: int

    @classmethod
    def build(
        cls, conversation: Conversation, users: list[User], caller_id: str
    ) -> "ConversationDetail":
        all_users = [UserView.from_entity(user) for user in users]
        return cls(
            id=conversation.id,
            is_group=conversation.is_group,
            name=conversation.name,
            created_at=conversation.created_at,
            last_message_time=conversation.last_message_time,
            other_users=[user for user in all_users if user.id != caller_id],
            all_users=all_users,
            member_count=len(users),
        )


class ReactionSummary(BaseModel):
    """Reactions with one emoji on one message."""

    emoji: str
    count: int
    has_reacted: bool


class UploadTarget(BaseModel):
    """Where and until when a client may upload an attachment."""

    handle: str
    upload_url: str
    expires_at: int
