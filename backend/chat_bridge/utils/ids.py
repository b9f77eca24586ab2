"""ID helpers."""

from __future__ import annotations

import secrets


def new_message_id() -> str:
    """Short random hex id used for chat messages (14 characters)."""
    return secrets.token_hex(7)
