"""Tests for the chb command-line client."""

from __future__ import annotations

import json

import pytest
from typer.testing import CliRunner

from chat_bridge.cli import main as cli

runner = CliRunner()


class FakeResponse:
    def __init__(self, lines: list[dict], status_code: int = 200) -> None:
        self._lines = [json.dumps(line).encode("utf-8") for line in lines]
        self.status_code = status_code
        self.ok = status_code < 400

    def iter_lines(self):
        return iter(self._lines)

    def json(self):
        return {"detail": "boom"}


@pytest.fixture
def captured(monkeypatch: pytest.MonkeyPatch) -> list[dict]:
    calls: list[dict] = []

    def fake_request(method: str, url: str, **kwargs) -> FakeResponse:
        calls.append({"method": method, "url": url, **kwargs})
        return FakeResponse(
            [
                {"type": "message", "data": "Green ##0$$", "messageId": "m"},
                {"type": "references", "data": {"chunks": [{"document_name": "biology.pdf"}]}, "messageId": "m"},
                {"type": "messageEnd", "messageId": "m"},
            ]
        )

    monkeypatch.setattr(cli.requests, "request", fake_request)
    return calls


def test_ask_plain_strips_markers(captured: list[dict]) -> None:
    result = runner.invoke(cli.app, ["ask", "Why green?", "--chat-id", "c1", "--plain", "--host", "http://bridge.test/"])

    assert result.exit_code == 0
    assert "Green \n" in result.stdout
    assert "##0$$ biology.pdf" in result.stdout
    assert captured[0]["url"] == "http://bridge.test/api/chat"
    assert captured[0]["json"]["message"] == {"chatId": "c1", "content": "Why green?"}
    assert "stream" not in captured[0]["json"]


def test_ask_plain_strips_marker_split_across_deltas(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        cli.requests,
        "request",
        lambda method, url, **kwargs: FakeResponse(
            [
                {"type": "message", "data": "Green ##0", "messageId": "m"},
                {"type": "message", "data": "$$ light", "messageId": "m"},
                {"type": "messageEnd", "messageId": "m"},
            ]
        ),
    )

    result = runner.invoke(cli.app, ["ask", "Why green?", "--plain"])

    assert result.exit_code == 0
    assert "Green  light\n" in result.stdout
    assert "##0" not in result.stdout
    assert "$$" not in result.stdout


def test_ask_replaced_answer_is_printed_whole(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        cli.requests,
        "request",
        lambda method, url, **kwargs: FakeResponse(
            [
                {"type": "message", "data": "Plants use light.", "messageId": "m"},
                {"type": "message", "data": "Plants use light ##0$$.", "replace": True, "messageId": "m"},
                {"type": "messageEnd", "messageId": "m"},
            ]
        ),
    )

    result = runner.invoke(cli.app, ["ask", "hi", "--plain"])

    assert result.exit_code == 0
    assert "Plants use light .\n" in result.stdout
    assert "Plants use light.Plants" not in result.stdout


def test_ask_reports_stream_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        cli.requests,
        "request",
        lambda method, url, **kwargs: FakeResponse([{"type": "error", "data": "upstream down", "messageId": "m"}]),
    )

    result = runner.invoke(cli.app, ["ask", "hi", "--no-stream"])

    assert result.exit_code == 1


def test_host_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CHB_HOST", "http://env-host:9000/")
    assert cli._resolve_host(None) == "http://env-host:9000"
    assert cli._resolve_host("http://flag") == "http://flag"
