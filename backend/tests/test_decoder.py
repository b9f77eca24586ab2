"""Tests for the provider frame decoder."""

from __future__ import annotations

import random

import orjson
import pytest

from chat_bridge.core.errors import ProtocolError
from chat_bridge.provider.decoder import MALFORMED_FRAME_CODE, FrameDecoder


def _stream(*payloads: object) -> bytes:
    return b"".join(b"data:" + orjson.dumps(payload) + b"\n\n" for payload in payloads)


PAYLOADS = [
    {"code": 0, "message": "", "data": {"answer": "Hel", "session_id": "s1"}},
    {"code": 0, "message": "", "data": {"answer": "Hello wörld", "session_id": "s1", "reference": {}}},
    {"code": 0, "message": "", "data": {"answer": "Hello wörld ##0$$", "session_id": "s1"}},
    {"code": 0, "message": "", "data": True},
]


def _decode_in_pieces(data: bytes, cuts: list[int]) -> list:
    decoder = FrameDecoder()
    frames = []
    previous = 0
    for cut in cuts + [len(data)]:
        frames.extend(decoder.feed(data[previous:cut]))
        previous = cut
    return frames + decoder.flush()


def test_partial_frame_completes_on_second_feed() -> None:
    decoder = FrameDecoder()
    first = decoder.feed(b'data: {"code":0,"data":{"answer":"Hel')
    assert first == []
    assert decoder.pending > 0
    second = decoder.feed(b'lo","session_id":"s1"}}\n')
    assert len(second) == 1
    payload = second[0].completion()
    assert payload is not None
    assert payload.answer == "Hello"
    assert payload.session_id == "s1"


def test_split_points_do_not_change_frames() -> None:
    data = _stream(*PAYLOADS)
    whole = _decode_in_pieces(data, [])
    assert [frame.data for frame in whole] == [payload["data"] for payload in PAYLOADS]

    rng = random.Random(7)
    for _ in range(50):
        cuts = sorted(rng.sample(range(1, len(data)), k=rng.randint(1, 12)))
        assert _decode_in_pieces(data, cuts) == whole


def test_byte_at_a_time_handles_multibyte_text() -> None:
    data = _stream(*PAYLOADS)
    frames = _decode_in_pieces(data, list(range(1, len(data))))
    assert frames[1].data["answer"] == "Hello wörld"


def test_empty_frames_and_noise_are_skipped() -> None:
    decoder = FrameDecoder()
    frames = decoder.feed(b": keep-alive\n\ndata:\n\ndata:   \n" + _stream(PAYLOADS[0]))
    assert len(frames) == 1
    assert frames[0].data["answer"] == "Hel"


def test_end_signal_frame_is_marked() -> None:
    frames = FrameDecoder().feed(_stream(PAYLOADS[3]))
    assert frames[0].is_end_signal
    assert frames[0].completion() is None


def test_error_code_does_not_stop_decoding() -> None:
    data = _stream({"code": 102, "message": "assistant not found", "data": None}, PAYLOADS[0])
    frames = FrameDecoder().feed(data)
    assert [frame.code for frame in frames] == [102, 0]
    assert frames[0].is_error
    assert frames[0].message == "assistant not found"


def test_malformed_frame_followed_by_valid_one_is_dropped() -> None:
    data = b"data: {not json}\n" + _stream(PAYLOADS[0])
    frames = FrameDecoder().feed(data)
    assert len(frames) == 1
    assert frames[0].code == 0


def test_non_object_payload_becomes_protocol_frame() -> None:
    frames = FrameDecoder().feed(b"data: [1, 2]\ndata: {}\n")
    assert [frame.code for frame in frames] == [MALFORMED_FRAME_CODE, MALFORMED_FRAME_CODE]


def test_oversized_incomplete_frame_raises() -> None:
    decoder = FrameDecoder(max_buffer=64)
    with pytest.raises(ProtocolError):
        decoder.feed(b'data: {"code":0,"data":{"answer":"' + b"x" * 128)


def test_flush_discards_unfinished_tail() -> None:
    decoder = FrameDecoder()
    assert decoder.feed(b'data: {"code":0,"data":{"ans') == []
    assert decoder.flush() == []
    assert decoder.pending == 0
