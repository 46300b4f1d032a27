"""Shared fixtures for unit tests."""

from collections.abc import AsyncIterator, Awaitable, Callable
from pathlib import Path

import pytest

from pulsechat.application.services import ChatServices
from pulsechat.config.models import AppConfig
from pulsechat.domain.entities import User
from pulsechat.domain.identity import Identity
from pulsechat.infrastructure.change_feed import ChangeFeed
from pulsechat.infrastructure.persistence.database import Database
from pulsechat.infrastructure.storage.local_storage import LocalFileStorage

START_TIME_MS = 1_700_000_000_000


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self, start: int = START_TIME_MS) -> None:
        self.now = start

    def now_ms(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
async def database(tmp_path: Path) -> AsyncIterator[Database]:
    """Create a test database."""
    db_path = tmp_path / "test.db"
    db = Database(f"sqlite+aiosqlite:///{db_path}")
    await db.initialize()
    yield db
    await db.close()


@pytest.fixture
def change_feed() -> ChangeFeed:
    return ChangeFeed()


@pytest.fixture
def storage(tmp_path: Path) -> LocalFileStorage:
    return LocalFileStorage(
        root=tmp_path / "uploads",
        public_base_url="http://chat.test",
        max_upload_bytes=1024,
        upload_ttl_ms=60_000,
    )


@pytest.fixture
def app_config(tmp_path: Path) -> AppConfig:
    return AppConfig.model_validate(
        {
            "server": {
                "host": "127.0.0.1",
                "port": 0,
                "public_base_url": "http://chat.test",
            },
            "database": {"url": f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"},
            "storage": {"root": str(tmp_path / "uploads"), "max_upload_bytes": 1024},
            "watch": {"max_wait_seconds": 1},
        }
    )


@pytest.fixture
def services(
    app_config: AppConfig,
    database: Database,
    change_feed: ChangeFeed,
    storage: LocalFileStorage,
    clock: FakeClock,
) -> ChatServices:
    return ChatServices.create(
        config=app_config,
        database=database,
        change_feed=change_feed,
        storage=storage,
        clock=clock,
    )


UserFactory = Callable[[str, str], Awaitable[User]]


@pytest.fixture
def make_user(services: ChatServices) -> UserFactory:
    """Return a factory that upserts a profile and returns the resolved user."""

    async def _make_user(subject: str, name: str) -> User:
        identity = Identity(subject=subject)
        await services.identity.upsert_profile(
            identity,
            external_id=subject,
            name=name,
            email=f"{subject}@example.com",
            avatar_url=f"https://img.example.com/{subject}.png",
        )
        return await services.identity.resolve_required(identity)

    return _make_user


@pytest.fixture
async def alice(make_user: UserFactory) -> User:
    return await make_user("sub-alice", "Alice")


@pytest.fixture
async def bob(make_user: UserFactory) -> User:
    return await make_user("sub-bob", "Bob")


@pytest.fixture
async def carol(make_user: UserFactory) -> User:
    return await make_user("sub-carol", "Carol")
