"""Conversation and membership management."""

from structlog.stdlib import BoundLogger

from pulsechat.application.views import (
    ConversationDetail,
    ConversationSummary,
    MessagePreview,
    UserView,
)
from pulsechat.domain.clock import Clock
from pulsechat.domain.entities import (
    ChangeEvent,
    ChangeType,
    Conversation,
    Membership,
    User,
    direct_key_for,
)
from pulsechat.domain.entities.event import conversations_key
from pulsechat.domain.errors import NotFoundError, NotMemberError, ValidationError
from pulsechat.infrastructure.change_feed import ChangeFeed
from pulsechat.infrastructure.persistence import (
    ConversationRepository,
    Database,
    MessageRepository,
    UserRepository,
)


class ConversationService:
    """Creates conversations, lists them with unread counts, tracks read cursors.

    Authorization is membership: a user may see and act on a conversation only
    through a Membership row, which is created together with the conversation.
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

    async def get_or_create_direct(self, caller: User, other_user_id: str) -> str:
        """Return the direct conversation between the caller and another user.

        Creates it on first contact: the caller starts caught up, the other
        user starts with everything unread.

        Args:
            caller: The resolved caller.
            other_user_id: The other participant.

        Returns:
            The conversation id. Repeated calls for the same pair, in either
            direction, return the same id.

        Raises:
            ValidationError: If other_user_id is the caller.
            NotFoundError: If the other user has no profile.
        """
        if other_user_id == caller.id:
            raise ValidationError("Cannot start a direct conversation with yourself")

        direct_key = direct_key_for(caller.id, other_user_id)
        now = self._clock.now_ms()

        async with self._database.transaction() as session:
            if await UserRepository(session).get(other_user_id) is None:
                raise NotFoundError("User not found")

            conversations = ConversationRepository(session)
            existing = await conversations.get_by_direct_key(direct_key)
            if existing is not None:
                return existing.id

            conversation = Conversation(
                is_group=False, direct_key=direct_key, created_at=now
            )
            await conversations.add(conversation)
            conversations.add_membership(
                Membership(
                    user_id=caller.id,
                    conversation_id=conversation.id,
                    last_read_time=now,
                )
            )
            conversations.add_membership(
                Membership(
                    user_id=other_user_id,
                    conversation_id=conversation.id,
                    last_read_time=0,
                )
            )
            conversation_id = conversation.id

        self._publish_created(conversation_id, [caller.id, other_user_id])
        self._logger.info(
            "Direct conversation created",
            conversation_id=conversation_id,
            user_id=caller.id,
            other_user_id=other_user_id,
        )
        return conversation_id

    async def create_group(
        self, caller: User, name: str, member_ids: list[str]
    ) -> str:
        """Create a group conversation.

        Args:
            caller: The resolved caller; always added as a member.
            name: Group display name; trimmed.
            member_ids: Other members. Duplicates and the caller are dropped.

        Returns:
            The new conversation id.

        Raises:
            ValidationError: If the name is blank or no other member remains.
            NotFoundError: If a member id has no profile.
        """
        group_name = name.strip()
        if not group_name:
            raise ValidationError("Group name cannot be empty")

        others = [
            member_id
            for member_id in dict.fromkeys(member_ids)
            if member_id != caller.id
        ]
        if not others:
            raise ValidationError("A group needs at least one other member")

        now = self._clock.now_ms()
        async with self._database.transaction() as session:
            known = await UserRepository(session).get_many(others)
            missing = [member_id for member_id in others if member_id not in known]
            if missing:
                raise NotFoundError(f"Users not found: {', '.join(missing)}")

            conversations = ConversationRepository(session)
            conversation = Conversation(is_group=True, name=group_name, created_at=now)
            await conversations.add(conversation)
            conversations.add_membership(
                Membership(
                    user_id=caller.id,
                    conversation_id=conversation.id,
                    last_read_time=now,
                )
            )
            for member_id in others:
                conversations.add_membership(
                    Membership(
                        user_id=member_id,
                        conversation_id=conversation.id,
                        last_read_time=0,
                    )
                )
            conversation_id = conversation.id

        self._publish_created(conversation_id, [caller.id, *others])
        self._logger.info(
            "Group created",
            conversation_id=conversation_id,
            user_id=caller.id,
            member_count=len(others) + 1,
        )
        return conversation_id

    async def list_my_conversations(
        self, caller: User | None
    ) -> list[ConversationSummary]:
        """List the caller's conversations, most recently active first.

        Conversations without messages sort by creation time; equal times
        sort by conversation id, descending.

        Args:
            caller: The resolved caller, or None before onboarding.

        Returns:
            Conversation summaries with unread counts; empty without a caller.
        """
        if caller is None:
            return []

        async with self._database.get_session() as session:
            conversations = ConversationRepository(session)
            messages = MessageRepository(session)

            memberships = await conversations.list_memberships_for_user(caller.id)
            if not memberships:
                return []

            conversation_ids = [m.conversation_id for m in memberships]
            by_id = await conversations.get_many(conversation_ids)
            members = await conversations.list_members_by_conversation(
                conversation_ids
            )
            users = await UserRepository(session).get_many(
                m.user_id for group in members.values() for m in group
            )
            last_messages = await messages.get_many(
                c.last_message_id for c in by_id.values() if c.last_message_id
            )
            unread = await messages.count_unread_for_user(caller.id)

        summaries: list[tuple[Conversation, ConversationSummary]] = []
        for membership in memberships:
            conversation = by_id.get(membership.conversation_id)
            if conversation is None:
                continue
            group = members.get(conversation.id, [])
            last_message = (
                last_messages.get(conversation.last_message_id)
                if conversation.last_message_id
                else None
            )
            summary = ConversationSummary(
                id=conversation.id,
                is_group=conversation.is_group,
                name=conversation.name,
                created_at=conversation.created_at,
                last_message_time=conversation.last_message_time,
                last_message=(
                    MessagePreview.from_entity(last_message) if last_message else None
                ),
                other_users=[
                    UserView.from_entity(users[m.user_id])
                    for m in group
                    if m.user_id != caller.id and m.user_id in users
                ],
                member_count=len(group),
                unread_count=unread.get(conversation.id, 0),
                my_last_read_time=membership.last_read_time,
            )
            summaries.append((conversation, summary))

        summaries.sort(
            key=lambda item: (item[0].activity_time, item[0].id), reverse=True
        )
        return [summary for _, summary in summaries]

    async def get_conversation(
        self, caller: User | None, conversation_id: str
    ) -> ConversationDetail | None:
        """Get a conversation the caller belongs to.

        Returns:
            The conversation detail, or None if there is no caller, no such
            conversation, or the caller is not a member.
        """
        if caller is None:
            return None

        async with self._database.get_session() as session:
            conversations = ConversationRepository(session)
            conversation = await conversations.get(conversation_id)
            if conversation is None:
                return None

            members = await conversations.list_members(conversation_id)
            if not any(m.user_id == caller.id for m in members):
                return None

            users = await UserRepository(session).get_many(m.user_id for m in members)

        ordered = [users[m.user_id] for m in members if m.user_id in users]
        return ConversationDetail.build(conversation, ordered, caller.id)

    async def is_member(self, caller: User, conversation_id: str) -> bool:
        """Return True if the caller has a membership in the conversation."""
        async with self._database.get_session() as session:
            membership = await ConversationRepository(session).get_membership(
                caller.id, conversation_id
            )
        return membership is not None

    async def mark_as_read(self, caller: User, conversation_id: str) -> None:
        """Move the caller's read cursor to now.

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
            membership.last_read_time = now
            session.add(membership)

        self._change_feed.publish(
            ChangeEvent(
                type=ChangeType.CONVERSATION_READ,
                keys=frozenset({conversations_key(caller.id)}),
                payload={"conversation_id": conversation_id, "user_id": caller.id},
            )
        )
        self._logger.debug(
            "Conversation marked as read",
            conversation_id=conversation_id,
            user_id=caller.id,
        )

    def _publish_created(self, conversation_id: str, member_ids: list[str]) -> None:
        self._change_feed.publish(
            ChangeEvent(
                type=ChangeType.CONVERSATION_CREATED,
                keys=frozenset(conversations_key(user_id) for user_id in member_ids),
                payload={"conversation_id": conversation_id},
            )
        )
