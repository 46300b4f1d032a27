"""Change events published after successful writes."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from pulsechat.domain.ids import new_id

PRESENCE_KEY = "presence"
USERS_KEY = "users"


def conversations_key(user_id: str) -> str:
    """Read-key of a user's conversation list."""
    return f"conversations:{user_id}"


def messages_key(conversation_id: str) -> str:
    """Read-key of a conversation's message list."""
    return f"messages:{conversation_id}"


def reactions_key(conversation_id: str) -> str:
    """Read-key of the reactions on a conversation's messages."""
    return f"reactions:{conversation_id}"


def typing_key(conversation_id: str) -> str:
    """Read-key of a conversation's typing users."""
    return f"typing:{conversation_id}"


class ChangeType(str, Enum):
    """Change type enumeration."""

    CONVERSATION_CREATED = "conversation_created"
    CONVERSATION_READ = "conversation_read"
    MESSAGE_SENT = "message_sent"
    MESSAGE_DELETED = "message_deleted"
    REACTION_TOGGLED = "reaction_toggled"
    PRESENCE_CHANGED = "presence_changed"
    TYPING_CHANGED = "typing_changed"
    PROFILE_UPDATED = "profile_updated"


class ChangeEvent(BaseModel):
    """A committed write and the read-keys whose results it invalidates."""

    id: str = Field(default_factory=new_id)
    type: ChangeType
    keys: frozenset[str]
    payload: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
