"""Identity resolution and profile management."""

from structlog.stdlib import BoundLogger

from pulsechat.application.views import UserView
from pulsechat.domain.entities import ChangeEvent, ChangeType, User
from pulsechat.domain.entities.event import USERS_KEY
from pulsechat.domain.errors import (
    ForbiddenError,
    ProfileNotFoundError,
    UnauthenticatedError,
    ValidationError,
)
from pulsechat.domain.identity import Identity
from pulsechat.infrastructure.change_feed import ChangeFeed
from pulsechat.infrastructure.persistence import Database, UserRepository


class IdentityGuard:
    """Resolves verified identities to user profiles.

    Mutating operations resolve their caller with resolve_required(); read
    paths that may run before the profile upsert has landed use
    resolve_optional() and degrade to empty results.
    """

    def __init__(
        self, database: Database, change_feed: ChangeFeed, logger: BoundLogger
    ) -> None:
        self._database = database
        self._change_feed = change_feed
        self._logger = logger

    async def resolve_required(self, identity: Identity | None) -> User:
        """Resolve the caller's profile or fail.

        Args:
            identity: Verified identity of the caller, or None.

        Returns:
            The caller's profile.

        Raises:
            UnauthenticatedError: If there is no verified identity.
            ProfileNotFoundError: If no profile was upserted for the identity.
        """
        if identity is None:
            raise UnauthenticatedError("Unauthenticated")

        async with self._database.get_session() as session:
            user = await UserRepository(session).get_by_external_id(identity.subject)

        if user is None:
            raise ProfileNotFoundError(
                "User profile not found. Upsert the profile first."
            )
        return user

    async def resolve_optional(self, identity: Identity | None) -> User | None:
        """Resolve the caller's profile, or None if unauthenticated or not onboarded."""
        if identity is None:
            return None
        try:
            return await self.resolve_required(identity)
        except ProfileNotFoundError:
            return None

    async def upsert_profile(
        self,
        identity: Identity | None,
        external_id: str,
        name: str,
        email: str,
        avatar_url: str,
    ) -> str:
        """Insert or update the profile keyed on the external subject id.

        Args:
            identity: Verified identity of the caller.
            external_id: Subject id the profile belongs to; must be the caller's.
            name: Display name.
            email: Email address.
            avatar_url: Avatar image URL.

        Returns:
            The internal user id.

        Raises:
            UnauthenticatedError: If there is no verified identity.
            ForbiddenError: If external_id is not the caller's subject id.
            ValidationError: If the name is blank.
        """
        if identity is None:
            raise UnauthenticatedError("Unauthenticated")
        if external_id != identity.subject:
            raise ForbiddenError("Cannot update another user's profile")
        if not name.strip():
            raise ValidationError("Name cannot be empty")

        async with self._database.transaction() as session:
            users = UserRepository(session)
            user = await users.get_by_external_id(external_id)
            created = user is None
            if user is None:
                user = User(
                    external_id=external_id,
                    name=name.strip(),
                    email=email,
                    avatar_url=avatar_url,
                )
            else:
                user.name = name.strip()
                user.email = email
                user.avatar_url = avatar_url
            users.add(user)
            user_id = user.id

        self._change_feed.publish(
            ChangeEvent(
                type=ChangeType.PROFILE_UPDATED,
                keys=frozenset({USERS_KEY}),
                payload={"user_id": user_id},
            )
        )
        self._logger.info("Profile upserted", user_id=user_id, created=created)
        return user_id

    async def list_other_users(
        self, caller: User, search: str | None = None
    ) -> list[UserView]:
        """List every user except the caller.

        Args:
            caller: The resolved caller.
            search: Optional case-insensitive filter on name or email.

        Returns:
            Matching users ordered by name.
        """
        async with self._database.get_session() as session:
            users = await UserRepository(session).list_all()

        others = [user for user in users if user.id != caller.id]
        query = (search or "").strip().lower()
        if query:
            others = [
                user
                for user in others
                if query in user.name.lower() or query in user.email.lower()
            ]
        return [UserView.from_entity(user) for user in others]

    async def get_user(self, user_id: str) -> UserView | None:
        async with self._database.get_session() as session:
            user = await UserRepository(session).get(user_id)
        return UserView.from_entity(user) if user else None

    async def get_current_user(self, identity: Identity | None) -> UserView | None:
        user = await self.resolve_optional(identity)
        return UserView.from_entity(user) if user else None
