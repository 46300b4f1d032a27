"""Emoji reactions on messages."""

from collections import defaultdict

from structlog.stdlib import BoundLogger

from pulsechat.application.views import ReactionSummary
from pulsechat.domain.clock import Clock
from pulsechat.domain.entities import ChangeEvent, ChangeType, Reaction, User
from pulsechat.domain.entities.event import reactions_key
from pulsechat.domain.errors import NotFoundError, NotMemberError
from pulsechat.infrastructure.change_feed import ChangeFeed
from pulsechat.infrastructure.persistence import (
    ConversationRepository,
    Database,
    MessageRepository,
    ReactionRepository,
)


def summarize_reactions(
    reactions: list[Reaction], caller_id: str | None
) -> list[ReactionSummary]:
    """Group reactions by emoji, in order of each emoji's first reaction.

    Args:
        reactions: Reactions on one message, oldest first.
        caller_id: The caller, or None if unknown.

    Returns:
        One summary per distinct emoji.
    """
    grouped: dict[str, list[str]] = {}
    for reaction in reactions:
        grouped.setdefault(reaction.emoji, []).append(reaction.user_id)
    return [
        ReactionSummary(
            emoji=emoji,
            count=len(user_ids),
            has_reacted=caller_id is not None and caller_id in user_ids,
        )
        for emoji, user_ids in grouped.items()
    ]


class ReactionService:
    """Toggle-style reaction ledger.

    At most one row exists per (message, user, emoji); toggling an existing
    reaction removes it.
    """

    def __init__(
        self,
        database: Database,
        clock: Clock,
        change_feed: ChangeFeed,
        logger: BoundLogger,
    ) -> None:
        self._database = database
        self._clock = clock
        self._change_feed = change_feed
        self._logger = logger

    async def toggle(self, caller: User, message_id: str, emoji: str) -> bool:
        """Add the caller's reaction, or remove it if already present.

        Any emoji string is accepted.

        Args:
            caller: The resolved caller.
            message_id: The message reacted to.
            emoji: The emoji.

        Returns:
            True if the reaction is now present, False if it was removed.

        Raises:
            NotFoundError: If the message does not exist.
            NotMemberError: If the caller is not in the message's conversation.
        """
        async with self._database.transaction() as session:
            message = await MessageRepository(session).get(message_id)
            if message is None:
                raise NotFoundError("Message not found")

            membership = await ConversationRepository(session).get_membership(
                caller.id, message.conversation_id
            )
            if membership is None:
                raise NotMemberError("Not a member of this conversation")

            reactions = ReactionRepository(session)
            existing = await reactions.find(message_id, caller.id, emoji)
            if existing is not None:
                await reactions.delete(existing)
            else:
                reactions.add(
                    Reaction(
                        message_id=message_id,
                        user_id=caller.id,
                        emoji=emoji,
                        created_at=self._clock.now_ms(),
                    )
                )
            conversation_id = message.conversation_id

        added = existing is None
        self._change_feed.publish(
            ChangeEvent(
                type=ChangeType.REACTION_TOGGLED,
                keys=frozenset({reactions_key(conversation_id)}),
                payload={"message_id": message_id, "emoji": emoji, "added": added},
            )
        )
        self._logger.info(
            "Reaction toggled",
            message_id=message_id,
            user_id=caller.id,
            added=added,
        )
        return added

    async def get_reactions(
        self, message_id: str, caller: User | None
    ) -> list[ReactionSummary]:
        """Summarize the reactions on one message."""
        async with self._database.get_session() as session:
            reactions = await ReactionRepository(session).list_for_message(message_id)
        return summarize_reactions(reactions, caller.id if caller else None)

    async def get_reactions_for_conversation(
        self, conversation_id: str, caller: User | None
    ) -> dict[str, list[ReactionSummary]]:
        """Summarize the reactions on every message of a conversation.

        Fetches all reactions with one query and groups them by message in a
        single pass. Produces the same summaries as get_reactions() per message.

        Returns:
            Mapping of message id to its summaries. Messages without
            reactions are omitted.
        """
        async with self._database.get_session() as session:
            reactions = await ReactionRepository(session).list_for_conversation(
                conversation_id
            )

        by_message: dict[str, list[Reaction]] = defaultdict(list)
        for reaction in reactions:
            by_message[reaction.message_id].append(reaction)

        caller_id = caller.id if caller else None
        return {
            message_id: summarize_reactions(rows, caller_id)
            for message_id, rows in by_message.items()
        }
