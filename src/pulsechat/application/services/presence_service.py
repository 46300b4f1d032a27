"""Online presence tracking."""

from structlog.stdlib import BoundLogger

from pulsechat.domain.clock import Clock
from pulsechat.domain.entities import ChangeEvent, ChangeType, Presence, User
from pulsechat.domain.entities.event import PRESENCE_KEY
from pulsechat.infrastructure.change_feed import ChangeFeed
from pulsechat.infrastructure.persistence import Database, PresenceRepository


class PresenceService:
    """Tracks online intent and heartbeats.

    A user is reported online while flagged online and heard from within the
    threshold. A client that vanishes without going offline degrades to
    offline once its heartbeats stop; nothing expires rows actively.
    """

    def __init__(
        self,
        database: Database,
        clock: Clock,
        change_feed: ChangeFeed,
        logger: BoundLogger,
        online_threshold_ms: int = 60_000,
    ) -> None:
        self._database = database
        self._clock = clock
        self._change_feed = change_feed
        self._logger = logger
        self._online_threshold_ms = online_threshold_ms

    async def set_online(self, caller: User) -> None:
        await self._set_status(caller, is_online=True)

    async def set_offline(self, caller: User) -> None:
        await self._set_status(caller, is_online=False)

    async def heartbeat(self, caller: User) -> bool:
        """Refresh last_seen of an existing presence row.

        Never creates a row or changes the online flag.

        Returns:
            True if a row was refreshed.
        """
        now = self._clock.now_ms()
        async with self._database.transaction() as session:
            presence = await PresenceRepository(session).get_for_user(caller.id)
            if presence is None:
                return False
            presence.last_seen = now
            session.add(presence)

        self._publish(caller)
        return True

    async def get_presence_map(self) -> dict[str, bool]:
        """Return whether each user with a presence row is effectively online."""
        now = self._clock.now_ms()
        async with self._database.get_session() as session:
            rows = await PresenceRepository(session).list_all()
        return {
            row.user_id: row.is_effectively_online(now, self._online_threshold_ms)
            for row in rows
        }

    async def _set_status(self, caller: User, is_online: bool) -> None:
        now = self._clock.now_ms()
        async with self._database.transaction() as session:
            presence_rows = PresenceRepository(session)
            presence = await presence_rows.get_for_user(caller.id)
            if presence is None:
                presence = Presence(
                    user_id=caller.id, is_online=is_online, last_seen=now
                )
            else:
                presence.is_online = is_online
                presence.last_seen = now
            presence_rows.add(presence)

        self._publish(caller)
        self._logger.info("Presence changed", user_id=caller.id, is_online=is_online)

    def _publish(self, caller: User) -> None:
        self._change_feed.publish(
            ChangeEvent(
                type=ChangeType.PRESENCE_CHANGED,
                keys=frozenset({PRESENCE_KEY}),
                payload={"user_id": caller.id},
            )
        )
