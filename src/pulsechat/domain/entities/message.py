"""Message entity."""

from sqlalchemy import BigInteger, Index
from sqlmodel import Field, SQLModel

from pulsechat.domain.ids import new_id


class Message(SQLModel, table=True):
    """A message posted to a conversation.

    Attributes:
        id: Message id.
        conversation_id: Conversation the message belongs to.
        sender_id: Sending user.
        content: Trimmed text; cleared on soft delete.
        is_deleted: Soft-delete flag. Never reset once set.
        sent_at: Send time (epoch ms).
        seq: Per-conversation creation sequence, orders equal sent_at values.
        attachment_handle: Storage handle of the attachment, if any. Kept on
            soft delete.
        attachment_mime_type: MIME type of the attachment.
        attachment_file_name: Original file name of the attachment.
    """

    __tablename__ = "messages"
    __table_args__ = (
        Index("idx_messages_conversation_time", "conversation_id", "sent_at", "seq"),
    )

    id: str = Field(default_factory=new_id, primary_key=True)
    conversation_id: str = Field(foreign_key="conversations.id")
    sender_id: str = Field(foreign_key="users.id", index=True)
    content: str = Field(default="")
    is_deleted: bool = Field(default=False)
    sent_at: int = Field(sa_type=BigInteger)
    seq: int = Field(default=0)
    attachment_handle: str | None = Field(default=None)
    attachment_mime_type: str | None = Field(default=None)
    attachment_file_name: str | None = Field(default=None)

    @property
    def has_attachment(self) -> bool:
        return self.attachment_handle is not None

    def soft_delete(self) -> bool:
        """Mark the message deleted and clear its text.

        Returns:
            True if the message changed, False if it was already deleted.
        """
        if self.is_deleted:
            return False
        self.is_deleted = True
        self.content = ""
        return True
