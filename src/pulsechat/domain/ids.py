"""Identifier generation."""

import ulid


def new_id() -> str:
    """Return a new ULID string."""
    return str(ulid.new())
