"""Infrastructure layer."""

from pulsechat.infrastructure.change_feed import ChangeFeed, Subscription
from pulsechat.infrastructure.persistence import Database
from pulsechat.infrastructure.storage import LocalFileStorage

__all__ = ["ChangeFeed", "Database", "LocalFileStorage", "Subscription"]
