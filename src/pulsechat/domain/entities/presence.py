"""Presence entity."""

from sqlalchemy import BigInteger
from sqlmodel import Field, SQLModel

from pulsechat.domain.ids import new_id


class Presence(SQLModel, table=True):
    """Online intent and last heartbeat of a user.

    Attributes:
        id: Row id.
        user_id: Owning user; one row per user.
        is_online: Whether the client declared itself online.
        last_seen: Time of the last online/offline signal or heartbeat (epoch ms).
    """

    __tablename__ = "presence"

    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(foreign_key="users.id", unique=True, index=True)
    is_online: bool = Field(default=False)
    last_seen: int = Field(sa_type=BigInteger)

    def is_effectively_online(self, now: int, threshold_ms: int) -> bool:
        """Return True if flagged online and seen within the threshold."""
        return self.is_online and now - self.last_seen < threshold_ms
