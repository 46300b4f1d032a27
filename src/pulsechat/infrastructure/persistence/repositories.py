"""Session-scoped repositories over the chat tables.

Each repository wraps one AsyncSession so that several of them can take part
in the same transaction.
"""

from collections import defaultdict
from collections.abc import Iterable

from sqlalchemy import and_, delete, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from pulsechat.domain.entities import (
    Conversation,
    Membership,
    Message,
    Presence,
    Reaction,
    TypingSignal,
    User,
)


class UserRepository:
    """Access to user profiles."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, user_id: str) -> User | None:
        return await self._session.get(User, user_id)

    async def get_by_external_id(self, external_id: str) -> User | None:
        statement = select(User).where(User.external_id == external_id)
        result = await self._session.execute(statement)
        return result.scalars().first()

    async def get_many(self, user_ids: Iterable[str]) -> dict[str, User]:
        """Get users by id.

        Args:
            user_ids: Ids to look up. Unknown ids are left out of the result.

        Returns:
            Mapping of user id to user.
        """
        ids = set(user_ids)
        if not ids:
            return {}
        statement = select(User).where(User.id.in_(ids))  # type: ignore[union-attr]
        result = await self._session.execute(statement)
        return {user.id: user for user in result.scalars().all()}

    async def list_all(self) -> list[User]:
        statement = select(User).order_by(User.name, User.id)
        result = await self._session.execute(statement)
        return list(result.scalars().all())

    def add(self, user: User) -> None:
        self._session.add(user)


class ConversationRepository:
    """Access to conversations and their memberships."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, conversation_id: str) -> Conversation | None:
        return await self._session.get(Conversation, conversation_id)

    async def get_many(
        self, conversation_ids: Iterable[str]
    ) -> dict[str, Conversation]:
        ids = set(conversation_ids)
        if not ids:
            return {}
        statement = select(Conversation).where(
            Conversation.id.in_(ids)  # type: ignore[union-attr]
        )
        result = await self._session.execute(statement)
        return {c.id: c for c in result.scalars().all()}

    async def get_by_direct_key(self, direct_key: str) -> Conversation | None:
        statement = select(Conversation).where(Conversation.direct_key == direct_key)
        result = await self._session.execute(statement)
        return result.scalars().first()

    async def add(self, conversation: Conversation) -> None:
        """Add a conversation and flush so memberships can reference it."""
        self._session.add(conversation)
        await self._session.flush()

    def add_membership(self, membership: Membership) -> None:
        self._session.add(membership)

    async def get_membership(
        self, user_id: str, conversation_id: str
    ) -> Membership | None:
        statement = select(Membership).where(
            Membership.user_id == user_id,
            Membership.conversation_id == conversation_id,
        )
        result = await self._session.execute(statement)
        return result.scalars().first()

    async def list_memberships_for_user(self, user_id: str) -> list[Membership]:
        statement = select(Membership).where(Membership.user_id == user_id)
        result = await self._session.execute(statement)
        return list(result.scalars().all())

    async def list_members(self, conversation_id: str) -> list[Membership]:
        """Get the memberships of one conversation."""
        statement = (
            select(Membership)
            .where(Membership.conversation_id == conversation_id)
            .order_by(Membership.id)
        )
        result = await self._session.execute(statement)
        return list(result.scalars().all())

    async def list_members_by_conversation(
        self, conversation_ids: Iterable[str]
    ) -> dict[str, list[Membership]]:
        """Get memberships of several conversations grouped by conversation id."""
        ids = set(conversation_ids)
        if not ids:
            return {}
        statement = (
            select(Membership)
            .where(Membership.conversation_id.in_(ids))  # type: ignore[attr-defined]
            .order_by(Membership.id)
        )
        result = await self._session.execute(statement)
        grouped: dict[str, list[Membership]] = defaultdict(list)
        for membership in result.scalars().all():
            grouped[membership.conversation_id].append(membership)
        return dict(grouped)


class MessageRepository:
    """Access to messages and unread accounting."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, message_id: str) -> Message | None:
        return await self._session.get(Message, message_id)

    async def get_many(self, message_ids: Iterable[str]) -> dict[str, Message]:
        ids = set(message_ids)
        if not ids:
            return {}
        statement = select(Message).where(
            Message.id.in_(ids)  # type: ignore[union-attr]
        )
        result = await self._session.execute(statement)
        return {m.id: m for m in result.scalars().all()}

    def add(self, message: Message) -> None:
        self._session.add(message)

    async def next_seq(self, conversation_id: str) -> int:
        """Get the next creation sequence number within a conversation.

        Only meaningful inside a write transaction.
        """
        statement = select(func.max(Message.seq)).where(
            Message.conversation_id == conversation_id
        )
        result = await self._session.execute(statement)
        current = result.scalar()
        return (current or 0) + 1

    async def list_for_conversation(self, conversation_id: str) -> list[Message]:
        """Get messages of a conversation in send order (oldest first)."""
        statement = (
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(
                Message.sent_at.asc(),  # type: ignore[attr-defined]
                Message.seq.asc(),  # type: ignore[attr-defined]
            )
        )
        result = await self._session.execute(statement)
        return list(result.scalars().all())

    async def count_unread_for_user(self, user_id: str) -> dict[str, int]:
        """Count unread messages for a user in every conversation they belong to.

        A message is unread for the user when it was sent after the user's
        read cursor by somebody else.

        Args:
            user_id: The member.

        Returns:
            Mapping of conversation id to unread count. Conversations with
            nothing unread are omitted.
        """
        statement = (
            select(Message.conversation_id, func.count())
            .join(
                Membership,
                and_(
                    Membership.conversation_id == Message.conversation_id,
                    Membership.user_id == user_id,
                ),
            )
            .where(Message.sent_at > Membership.last_read_time)
            .where(Message.sender_id != user_id)
            .group_by(Message.conversation_id)
        )
        result = await self._session.execute(statement)
        return {conversation_id: count for conversation_id, count in result.all()}


class ReactionRepository:
    """Access to message reactions."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def find(self, message_id: str, user_id: str, emoji: str) -> Reaction | None:
        statement = select(Reaction).where(
            Reaction.message_id == message_id,
            Reaction.user_id == user_id,
            Reaction.emoji == emoji,
        )
        result = await self._session.execute(statement)
        return result.scalars().first()

    def add(self, reaction: Reaction) -> None:
        self._session.add(reaction)

    async def delete(self, reaction: Reaction) -> None:
        await self._session.delete(reaction)

    async def list_for_message(self, message_id: str) -> list[Reaction]:
        statement = (
            select(Reaction)
            .where(Reaction.message_id == message_id)
            .order_by(Reaction.created_at, Reaction.id)
        )
        result = await self._session.execute(statement)
        return list(result.scalars().all())

    async def list_for_conversation(self, conversation_id: str) -> list[Reaction]:
        """Get every reaction on the messages of a conversation in one query."""
        statement = (
            select(Reaction)
            .join(Message, Message.id == Reaction.message_id)
            .where(Message.conversation_id == conversation_id)
            .order_by(Reaction.created_at, Reaction.id)
        )
        result = await self._session.execute(statement)
        return list(result.scalars().all())


class PresenceRepository:
    """Access to presence rows."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_for_user(self, user_id: str) -> Presence | None:
        statement = select(Presence).where(Presence.user_id == user_id)
        result = await self._session.execute(statement)
        return result.scalars().first()

    def add(self, presence: Presence) -> None:
        self._session.add(presence)

    async def list_all(self) -> list[Presence]:
        result = await self._session.execute(select(Presence))
        return list(result.scalars().all())


class TypingRepository:
    """Access to typing signals."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, user_id: str, conversation_id: str) -> TypingSignal | None:
        statement = select(TypingSignal).where(
            TypingSignal.user_id == user_id,
            TypingSignal.conversation_id == conversation_id,
        )
        result = await self._session.execute(statement)
        return result.scalars().first()

    def add(self, signal: TypingSignal) -> None:
        self._session.add(signal)

    async def delete_for(self, user_id: str, conversation_id: str) -> bool:
        """Delete the user's signal in a conversation.

        Returns:
            True if a row was deleted, False otherwise.
        """
        statement = delete(TypingSignal).where(
            TypingSignal.user_id == user_id,  # type: ignore[arg-type]
            TypingSignal.conversation_id == conversation_id,  # type: ignore[arg-type]
        )
        result = await self._session.execute(statement)
        return bool(result.rowcount)  # type: ignore[attr-defined]

    async def list_for_conversation(self, conversation_id: str) -> list[TypingSignal]:
        statement = (
            select(TypingSignal)
            .where(TypingSignal.conversation_id == conversation_id)
            .order_by(TypingSignal.updated_at)
        )
        result = await self._session.execute(statement)
        return list(result.scalars().all())
