"""CLI entrypoint for Chat Bridge."""

from __future__ import annotations

import json
import os
import uuid
from typing import Optional

import requests
import typer

from chat_bridge.chat.citations import strip_markers

app = typer.Typer(name="chb", help="Chat Bridge command-line interface")
chats_app = typer.Typer(name="chats")
app.add_typer(chats_app, name="chats")

DEFAULT_HOST = "http://127.0.0.1:8000"


def _resolve_host(override: Optional[str]) -> str:
    if override:
        return override.rstrip("/")
    env_host = os.environ.get("CHB_HOST")
    if env_host:
        return env_host.rstrip("/")
    return DEFAULT_HOST


def _request(method: str, path: str, host: Optional[str] = None, **kwargs) -> requests.Response:
    base = _resolve_host(host)
    url = f"{base}{path}"
    kwargs.setdefault("timeout", 60)
    resp = requests.request(method, url, **kwargs)
    if not resp.ok:
        try:
            detail = resp.json()
        except ValueError:
            detail = resp.text
        typer.echo(f"Request failed ({resp.status_code}): {detail}", err=True)
        raise typer.Exit(code=1)
    return resp


@app.command()
def ask(
    query: str = typer.Argument(..., help="Question to ask"),
    chat_id: Optional[str] = typer.Option(None, "--chat-id", help="Continue an existing chat"),
    mode: str = typer.Option("docs", "--mode", help="docs (document provider) or web (search agent)"),
    focus: str = typer.Option("webSearch", "--focus", help="Focus mode for web search"),
    stream: Optional[bool] = typer.Option(None, "--stream/--no-stream", help="Force provider streaming on/off"),
    plain: bool = typer.Option(False, "--plain", help="Strip citation markers from the printed answer"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Ask a question and print the answer as it streams in."""
    body: dict[str, object] = {
        "message": {"chatId": chat_id or uuid.uuid4().hex, "content": query},
        "searchMode": mode,
        "focusMode": focus,
    }
    if stream is not None:
        body["stream"] = stream
    resp = _request("POST", "/api/chat", host=host, json=body, stream=True, timeout=(10, 600))
    answer = ""
    sources: list[dict] = []
    references: dict = {}
    for raw in resp.iter_lines():
        if not raw:
            continue
        event = json.loads(raw)
        kind = event.get("type")
        if kind == "message":
            text = event.get("data", "")
            answer = text if event.get("replace") else answer + text
            # markers can be split across deltas, so plain output waits for the full answer
            if plain:
                continue
            if event.get("replace"):
                typer.echo("")
                typer.echo(answer, nl=False)
            else:
                typer.echo(text, nl=False)
        elif kind == "sources":
            sources = event.get("data") or []
        elif kind == "references":
            references = event.get("data") or {}
        elif kind == "error":
            typer.echo(f"\nError: {event.get('data')}", err=True)
            raise typer.Exit(code=1)
        elif kind == "messageEnd":
            break
    if plain:
        typer.echo(strip_markers(answer), nl=False)
    typer.echo("")
    for number, source in enumerate(sources, start=1):
        typer.echo(f"[{number}] {source.get('title')} {source.get('url')}")
    for number, chunk in enumerate(references.get("chunks", []), start=1):
        typer.echo(f"##{number - 1}$$ {chunk.get('document_name') or chunk.get('url')}")
    typer.echo(f"chat: {body['message']['chatId']}", err=True)


@chats_app.command("list")
def list_chats(
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """List stored chats."""
    resp = _request("GET", "/api/chats", host=host)
    typer.echo(json.dumps(resp.json(), indent=2, ensure_ascii=False))


@chats_app.command("show")
def show_chat(
    chat_id: str = typer.Argument(..., help="Chat identifier"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Print a chat with its messages and resolved citations."""
    resp = _request("GET", f"/api/chats/{chat_id}", host=host)
    typer.echo(json.dumps(resp.json(), indent=2, ensure_ascii=False))


@chats_app.command("delete")
def delete_chat(
    chat_id: str = typer.Argument(..., help="Chat identifier"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Delete a chat and its messages."""
    _request("DELETE", f"/api/chats/{chat_id}", host=host)
    typer.echo(json.dumps({"status": "ok"}))


if __name__ == "__main__":
    app()
