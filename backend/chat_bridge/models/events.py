"""Normalized event model shared by every answer producer."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

from chat_bridge.models.provider import Reference, WebSource


@dataclass(frozen=True, slots=True)
class MessageEvent:
    """Answer text. ``replace`` marks ``text`` as the whole answer so far, not a delta."""

    text: str
    replace: bool = False


@dataclass(frozen=True, slots=True)
class SourcesEvent:
    sources: list[WebSource] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class ReferencesEvent:
    reference: Reference


@dataclass(frozen=True, slots=True)
class EndEvent:
    pass


@dataclass(frozen=True, slots=True)
class ErrorEvent:
    text: str


InternalEvent = Union[MessageEvent, SourcesEvent, ReferencesEvent, EndEvent, ErrorEvent]

TERMINAL_EVENTS = (EndEvent, ErrorEvent)


def is_terminal(event: InternalEvent) -> bool:
    """End and Error close a stream; nothing may follow them."""
    return isinstance(event, TERMINAL_EVENTS)


__all__ = [
    "MessageEvent",
    "SourcesEvent",
    "ReferencesEvent",
    "EndEvent",
    "ErrorEvent",
    "InternalEvent",
    "TERMINAL_EVENTS",
    "is_terminal",
]
