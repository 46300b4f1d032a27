"""Reaction entity."""

from sqlalchemy import BigInteger, Index, UniqueConstraint
from sqlmodel import Field, SQLModel

from pulsechat.domain.ids import new_id


class Reaction(SQLModel, table=True):
    """An emoji reaction by one user on one message."""

    __tablename__ = "reactions"
    __table_args__ = (
        UniqueConstraint("message_id", "user_id", "emoji", name="uq_reaction"),
        Index("idx_reactions_message_user", "message_id", "user_id"),
    )

    id: str = Field(default_factory=new_id, primary_key=True)
    message_id: str = Field(foreign_key="messages.id", index=True)
    user_id: str = Field(foreign_key="users.id")
    emoji: str
    created_at: int = Field(sa_type=BigInteger)
