"""Conversation and Membership entities."""

from sqlalchemy import BigInteger, Index, UniqueConstraint
from sqlmodel import Field, SQLModel

from pulsechat.domain.ids import new_id


def direct_key_for(user_id: str, other_user_id: str) -> str:
    """Return the pair key shared by both directions of a direct conversation."""
    first, second = sorted((user_id, other_user_id))
    return f"{first}:{second}"


class Conversation(SQLModel, table=True):
    """A direct (1:1) or group conversation.

    Attributes:
        id: Conversation id.
        is_group: Whether this is a group conversation.
        name: Display name; set for groups, None for direct conversations.
        direct_key: Sorted member pair for direct conversations, None for groups.
        last_message_id: Most recent message, denormalized for previews.
        last_message_time: Send time of the most recent message (epoch ms).
        created_at: Creation time (epoch ms).
    """

    __tablename__ = "conversations"
    __table_args__ = (
        Index("idx_conversations_last_message_time", "last_message_time"),
    )

    id: str = Field(default_factory=new_id, primary_key=True)
    is_group: bool = Field(default=False)
    name: str | None = Field(default=None)
    direct_key: str | None = Field(default=None, unique=True)
    last_message_id: str | None = Field(default=None)
    last_message_time: int | None = Field(default=None, sa_type=BigInteger)
    created_at: int = Field(sa_type=BigInteger)

    @property
    def activity_time(self) -> int:
        """Sort time: last message time, or creation time before any message."""
        if self.last_message_time is None:
            return self.created_at
        return self.last_message_time


class Membership(SQLModel, table=True):
    """A user's membership in a conversation, with their read cursor.

    Attributes:
        id: Membership id.
        user_id: Member user.
        conversation_id: Conversation joined.
        last_read_time: Time (epoch ms) up to which the member has read; 0
            means nothing has been read.
    """

    __tablename__ = "memberships"
    __table_args__ = (
        UniqueConstraint("user_id", "conversation_id", name="uq_membership"),
        Index("idx_membership_conversation", "conversation_id"),
    )

    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(foreign_key="users.id", index=True)
    conversation_id: str = Field(foreign_key="conversations.id")
    last_read_time: int = Field(default=0, sa_type=BigInteger)
