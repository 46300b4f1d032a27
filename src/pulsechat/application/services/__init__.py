"""Application services."""

from dataclasses import dataclass

from pulsechat.application.services.conversation_service import ConversationService
from pulsechat.application.services.identity_guard import IdentityGuard
from pulsechat.application.services.message_service import MessageService
from pulsechat.application.services.presence_service import PresenceService
from pulsechat.application.services.reaction_service import ReactionService
from pulsechat.application.services.typing_service import TypingService
from pulsechat.application.services.upload_service import UploadService
from pulsechat.config.models import AppConfig
from pulsechat.domain.clock import Clock
from pulsechat.domain.repositories.object_storage import ObjectStorage
from pulsechat.infrastructure.change_feed import ChangeFeed
from pulsechat.infrastructure.logging import get_logger
from pulsechat.infrastructure.persistence import Database


@dataclass(frozen=True)
class ChatServices:
    """All application services, wired over one database and change feed."""

    identity: IdentityGuard
    conversations: ConversationService
    messages: MessageService
    reactions: ReactionService
    presence: PresenceService
    typing: TypingService
    uploads: UploadService

    @classmethod
    def create(
        cls,
        config: AppConfig,
        database: Database,
        change_feed: ChangeFeed,
        storage: ObjectStorage,
        clock: Clock,
    ) -> "ChatServices":
        """Build every service from the application configuration."""
        return cls(
            identity=IdentityGuard(database, change_feed, get_logger("identity")),
            conversations=ConversationService(
                database, clock, change_feed, get_logger("conversations")
            ),
            messages=MessageService(
                database, clock, change_feed, storage, get_logger("messages")
            ),
            reactions=ReactionService(
                database, clock, change_feed, get_logger("reactions")
            ),
            presence=PresenceService(
                database,
                clock,
                change_feed,
                get_logger("presence"),
                online_threshold_ms=int(
                    config.presence.online_threshold_seconds * 1000
                ),
            ),
            typing=TypingService(
                database,
                clock,
                change_feed,
                get_logger("typing"),
                timeout_ms=int(config.typing.timeout_seconds * 1000),
            ),
            uploads=UploadService(
                storage,
                clock,
                get_logger("uploads"),
                public_base_url=config.server.public_base_url,
            ),
        )


__all__ = [
    "ChatServices",
    "ConversationService",
    "IdentityGuard",
    "MessageService",
    "PresenceService",
    "ReactionService",
    "TypingService",
    "UploadService",
]
