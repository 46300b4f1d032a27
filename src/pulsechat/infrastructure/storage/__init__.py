"""Attachment storage infrastructure."""

from pulsechat.infrastructure.storage.local_storage import LocalFileStorage

__all__ = ["LocalFileStorage"]
