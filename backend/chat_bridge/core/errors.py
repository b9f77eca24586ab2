"""Exception types raised by the provider bridge."""

from __future__ import annotations

from typing import Any


class BridgeError(Exception):
    """Base exception for chat bridge errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ConfigurationError(BridgeError):
    """Raised when provider or agent settings are missing."""


class TransportError(BridgeError):
    """Connection-level failure talking to an upstream service."""


class ProtocolError(BridgeError):
    """Well-formed frame carrying a non-zero status, or an undecodable stream."""

    def __init__(self, message: str, code: int | None = None, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, details)
        self.code = code


class SessionAcquisitionError(BridgeError):
    """Provider session id could not be obtained."""


class SessionAcquisitionTimeout(SessionAcquisitionError):
    """Probe did not yield a session id within the allotted time."""


class SessionAcquisitionFailed(SessionAcquisitionError):
    """Probe stream ended or failed before a session id appeared."""


__all__ = [
    "BridgeError",
    "ConfigurationError",
    "TransportError",
    "ProtocolError",
    "SessionAcquisitionError",
    "SessionAcquisitionTimeout",
    "SessionAcquisitionFailed",
]
