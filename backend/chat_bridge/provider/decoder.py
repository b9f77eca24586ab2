"""Incremental decoder for the provider's ``data:``-framed completion stream."""

from __future__ import annotations

from typing import Any

import orjson

from chat_bridge.core.errors import ProtocolError
from chat_bridge.core.logging import get_logger
from chat_bridge.models.entities import StreamFrame

logger = get_logger(__name__)

FRAME_MARKER = b"data:"
_LINE_MARKER = b"\n" + FRAME_MARKER
MALFORMED_FRAME_CODE = -1
DEFAULT_MAX_BUFFER = 8 * 1024 * 1024


class FrameDecoder:
    """Turn arbitrarily split network reads into complete :class:`StreamFrame` objects.

    Every frame begins with ``data:`` at the start of a line and runs until the
    next such marker or the end of what has been received so far. A frame body
    that does not parse yet is kept in the buffer until more bytes arrive, so
    feeding ``b"AB"`` then ``b"CD"`` yields the same frames as ``b"ABCD"``.
    """

    def __init__(self, max_buffer: int = DEFAULT_MAX_BUFFER) -> None:
        self._buffer = bytearray()
        self.max_buffer = max_buffer

    @property
    def pending(self) -> int:
        """Number of buffered bytes not yet turned into frames."""
        return len(self._buffer)

    def feed(self, data: bytes) -> list[StreamFrame]:
        if data:
            self._buffer.extend(data)
        frames = self._drain(final=False)
        if len(self._buffer) > self.max_buffer:
            size = len(self._buffer)
            self._buffer.clear()
            raise ProtocolError(f"Unterminated frame exceeds {self.max_buffer} bytes", details={"buffered": size})
        return frames

    def flush(self) -> list[StreamFrame]:
        """Decode what is left once the upstream stream has ended."""
        frames = self._drain(final=True)
        leftover = bytes(self._buffer).strip()
        if leftover:
            logger.warning("Discarding %d undecodable bytes at end of stream", len(leftover))
        self._buffer.clear()
        return frames

    def _drain(self, final: bool) -> list[StreamFrame]:
        frames: list[StreamFrame] = []
        while True:
            start = self._frame_start()
            if start == -1:
                # drop noise, keeping a tail that may be the start of a marker
                keep = len(_LINE_MARKER) - 1
                if len(self._buffer) > keep:
                    del self._buffer[: len(self._buffer) - keep]
                break
            if start:
                del self._buffer[:start]
            body_start = len(FRAME_MARKER)
            next_marker = self._buffer.find(_LINE_MARKER, body_start)
            end = next_marker if next_marker != -1 else len(self._buffer)
            body = bytes(self._buffer[body_start:end]).strip()

            if not body:
                if next_marker == -1 and not final:
                    break
                del self._buffer[:end]
                continue

            try:
                payload = orjson.loads(body)
            except orjson.JSONDecodeError:
                if next_marker == -1 and not final:
                    # incomplete; wait for more bytes
                    break
                # a later marker means this body is complete, so it is garbage
                logger.warning("Skipping malformed frame of %d bytes", len(body))
                del self._buffer[:end]
                continue

            del self._buffer[:end]
            frames.append(_to_frame(payload))
        return frames

    def _frame_start(self) -> int:
        if self._buffer.startswith(FRAME_MARKER):
            return 0
        index = self._buffer.find(_LINE_MARKER)
        return index + 1 if index != -1 else -1


def _to_frame(payload: Any) -> StreamFrame:
    if isinstance(payload, dict):
        code = payload.get("code")
        if isinstance(code, int) and not isinstance(code, bool):
            return StreamFrame(code=code, message=str(payload.get("message") or ""), data=payload.get("data"))
    return StreamFrame(code=MALFORMED_FRAME_CODE, message="Malformed provider frame", data=payload)


__all__ = ["FrameDecoder", "StreamFrame", "FRAME_MARKER", "MALFORMED_FRAME_CODE"]
