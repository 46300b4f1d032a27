"""Persistence infrastructure."""

from pulsechat.infrastructure.persistence.database import Database
from pulsechat.infrastructure.persistence.repositories import (
    ConversationRepository,
    MessageRepository,
    PresenceRepository,
    ReactionRepository,
    TypingRepository,
    UserRepository,
)

__all__ = [
    "ConversationRepository",
    "Database",
    "MessageRepository",
    "PresenceRepository",
    "ReactionRepository",
    "TypingRepository",
    "UserRepository",
]
