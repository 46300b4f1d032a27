"""Domain entities."""

from pulsechat.domain.entities.conversation import (
    Conversation,
    Membership,
    direct_key_for,
)
from pulsechat.domain.entities.event import ChangeEvent, ChangeType
from pulsechat.domain.entities.message import Message
from pulsechat.domain.entities.presence import Presence
from pulsechat.domain.entities.reaction import Reaction
from pulsechat.domain.entities.typing_signal import TypingSignal
from pulsechat.domain.entities.user import User

__all__ = [
    "ChangeEvent",
    "ChangeType",
    "Conversation",
    "Membership",
    "Message",
    "Presence",
    "Reaction",
    "TypingSignal",
    "User",
    "direct_key_for",
]
