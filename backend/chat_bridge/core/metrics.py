"""Prometheus metrics instrumentation."""

from __future__ import annotations

from fastapi import Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

REGISTRY = CollectorRegistry()

CHAT_REQUESTS = Counter(
    "chb_chat_requests_total",
    "Chat requests by search mode and outcome",
    labelnames=("mode", "outcome"),
    registry=REGISTRY,
)

STREAM_DURATION = Histogram(
    "chb_stream_duration_seconds",
    "Time from first pull to terminal event of an outbound stream",
    labelnames=("mode",),
    registry=REGISTRY,
)

SESSION_PROBES = Counter(
    "chb_session_probes_total",
    "Provider session probes by result",
    labelnames=("result",),
    registry=REGISTRY,
)

PROVIDER_ERRORS = Counter(
    "chb_provider_errors_total",
    "Errors surfaced from upstream producers",
    labelnames=("kind",),
    registry=REGISTRY,
)

PERSISTED_MESSAGES = Counter(
    "chb_persisted_messages_total",
    "Assistant messages written to the store",
    labelnames=("mode",),
    registry=REGISTRY,
)


def metrics_response() -> Response:
    """Return Prometheus metrics as an HTTP response."""
    payload = generate_latest(REGISTRY)
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)


__all__ = [
    "REGISTRY",
    "CHAT_REQUESTS",
    "STREAM_DURATION",
    "SESSION_PROBES",
    "PROVIDER_ERRORS",
    "PERSISTED_MESSAGES",
    "metrics_response",
]
