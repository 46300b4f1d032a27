"""Typing indicators."""

from structlog.stdlib import BoundLogger

from pulsechat.application.views import UserView
from pulsechat.domain.clock import Clock
from pulsechat.domain.entities import ChangeEvent, ChangeType, TypingSignal, User
from pulsechat.domain.entities.event import typing_key
from pulsechat.domain.errors import NotMemberError
from pulsechat.infrastructure.change_feed import ChangeFeed
from pulsechat.infrastructure.persistence import (
    ConversationRepository,
    Database,
    TypingRepository,
    UserRepository,
)


class TypingService:
    """Records who is typing in a conversation.

    Signals go stale after the timeout and are filtered out at read time.
    """

    def __init__(
        self,
        database: Database,
        clock: Clock,
        change_feed: ChangeFeed,
        logger: BoundLogger,
        timeout_ms: int = 3_000,
    ) -> None:
        self._database = database
        self._clock = clock
        self._change_feed = change_feed
        self._logger = logger
        self._timeout_ms = timeout_ms

    async def set_typing(self, caller: User, conversation_id: str) -> None:
        """Create or refresh the caller's typing signal.

        Raises:
            NotMemberError: If the caller is not a member of the conversation.
        """
        now = self._clock.now_ms()
        async with self._database.transaction() as session:
            membership = await ConversationRepository(session).get_membership(
                caller.id, conversation_id
            )
            if membership is None:
                raise NotMemberError("Not a member of this conversation")

            signals = TypingRepository(session)
            signal = await signals.get(caller.id, conversation_id)
            if signal is None:
                signal = TypingSignal(
                    conversation_id=conversation_id, user_id=caller.id, updated_at=now
                )
            else:
                signal.updated_at = now
            signals.add(signal)

        self._publish(caller, conversation_id)

    async def clear_typing(self, caller: User, conversation_id: str) -> None:
        """Delete the caller's typing signal; a no-op if there is none."""
        async with self._database.transaction() as session:
            deleted = await TypingRepository(session).delete_for(
                caller.id, conversation_id
            )

        if deleted:
            self._publish(caller, conversation_id)

    async def get_typing_users(
        self, caller: User | None, conversation_id: str
    ) -> list[UserView]:
        """List the other members currently typing.

        Returns:
            Users with an active signal, excluding the caller. Empty if there
            is no caller or the caller is not a member.
        """
        if caller is None:
            return []

        now = self._clock.now_ms()
        async with self._database.get_session() as session:
            membership = await ConversationRepository(session).get_membership(
                caller.id, conversation_id
            )
            if membership is None:
                return []

            signals = await TypingRepository(session).list_for_conversation(
                conversation_id
            )
            active = [
                s
                for s in signals
                if s.user_id != caller.id and s.is_active(now, self._timeout_ms)
            ]
            users = await UserRepository(session).get_many(s.user_id for s in active)

        return [
            UserView.from_entity(users[s.user_id]) for s in active if s.user_id in users
        ]

    def _publish(self, caller: User, conversation_id: str) -> None:
        self._change_feed.publish(
            ChangeEvent(
                type=ChangeType.TYPING_CHANGED,
                keys=frozenset({typing_key(conversation_id)}),
                payload={"conversation_id": conversation_id, "user_id": caller.id},
            )
        )
