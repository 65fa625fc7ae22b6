"""Primary key generation."""

import uuid


def new_id() -> str:
    """Random 128-bit identifier rendered as a UUID string."""
    return str(uuid.uuid4())
