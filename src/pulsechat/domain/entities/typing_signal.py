"""TypingSignal entity."""

from sqlalchemy import BigInteger, Index, UniqueConstraint
from sqlmodel import Field, SQLModel

from pulsechat.domain.ids import new_id


class TypingSignal(SQLModel, table=True):
    """Ephemeral "user is typing" marker for a conversation.

    Rows are never expired by a background job; readers drop stale rows with
    is_active().
    """

    __tablename__ = "typing_signals"
    __table_args__ = (
        UniqueConstraint("user_id", "conversation_id", name="uq_typing_signal"),
        Index("idx_typing_conversation", "conversation_id"),
    )

    id: str = Field(default_factory=new_id, primary_key=True)
    conversation_id: str = Field(foreign_key="conversations.id")
    user_id: str = Field(foreign_key="users.id")
    updated_at: int = Field(sa_type=BigInteger)

    def is_active(self, now: int, timeout_ms: int) -> bool:
        return now - self.updated_at < timeout_ms
