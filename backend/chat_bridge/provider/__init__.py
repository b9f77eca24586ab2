"""Retrieval completion provider integration."""

from .bridge import StreamBridge
from .client import ProviderClient
from .decoder import FrameDecoder
from .session import SessionManager, SessionState

__all__ = [
    "FrameDecoder",
    "ProviderClient",
    "SessionManager",
    "SessionState",
    "StreamBridge",
]
