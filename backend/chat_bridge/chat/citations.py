"""Resolve inline citation markers against reference chunks and web sources.

Two marker syntaxes can appear in one answer:

* ``[N]``   web marker, 1-based index into the web sources;
* ``##N$$`` doc marker, 0-based index into the provider's reference chunks.

Both are matched by a single pattern so neither pass can rewrite the other's
text. Markers that do not resolve are kept as literal text.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Sequence, Union

from chat_bridge.models.provider import Reference, ReferenceChunk, WebSource

MARKER_RE = re.compile(r"##(?P<doc>\d+)\$\$|\[(?P<web>\d+)\]")
DEFAULT_WEB_TITLE = "Web Source"


@dataclass(frozen=True, slots=True)
class DocMarker:
    index: int
    raw: str
    start: int
    end: int


@dataclass(frozen=True, slots=True)
class WebMarker:
    index: int
    raw: str
    start: int
    end: int


CitationMarker = Union[DocMarker, WebMarker]


@dataclass(frozen=True, slots=True)
class TextSegment:
    text: str


@dataclass(frozen=True, slots=True)
class DocCitation:
    marker: DocMarker
    chunk: ReferenceChunk

    @property
    def number(self) -> int:
        return self.marker.index + 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": "doc",
            "marker": self.marker.raw,
            "number": self.number,
            "documentName": self.chunk.document_name,
            "documentId": self.chunk.document_id,
            "content": self.chunk.content,
            "similarity": self.chunk.similarity,
        }


@dataclass(frozen=True, slots=True)
class WebCitation:
    marker: CitationMarker
    title: str
    url: str
    snippet: str | None = None

    @property
    def number(self) -> int:
        if isinstance(self.marker, DocMarker):
            return self.marker.index + 1
        return self.marker.index

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": "web",
            "marker": self.marker.raw,
            "number": self.number,
            "title": self.title,
            "url": self.url,
            "snippet": self.snippet,
        }


@dataclass(frozen=True, slots=True)
class Unresolved:
    marker: CitationMarker

    @property
    def text(self) -> str:
        return self.marker.raw


Segment = Union[TextSegment, DocCitation, WebCitation, Unresolved]


@dataclass(frozen=True, slots=True)
class ResolvedAnswer:
    segments: tuple[Segment, ...]

    @property
    def text(self) -> str:
        """The original text, markers included."""
        parts: list[str] = []
        for segment in self.segments:
            if isinstance(segment, (TextSegment, Unresolved)):
                parts.append(segment.text)
            else:
                parts.append(segment.marker.raw)
        return "".join(parts)

    @property
    def citations(self) -> list[DocCitation | WebCitation]:
        return [segment for segment in self.segments if isinstance(segment, (DocCitation, WebCitation))]


def parse_markers(text: str) -> list[CitationMarker]:
    markers: list[CitationMarker] = []
    for match in MARKER_RE.finditer(text):
        if match.group("doc") is not None:
            markers.append(DocMarker(int(match.group("doc")), match.group(0), match.start(), match.end()))
        else:
            markers.append(WebMarker(int(match.group("web")), match.group(0), match.start(), match.end()))
    return markers


def resolve(
    text: str,
    reference: Reference | None = None,
    sources: Sequence[WebSource] | None = None,
) -> ResolvedAnswer:
    """Split ``text`` into plain segments and citations. Pure; never raises on bad indexes."""
    segments: list[Segment] = []
    cursor = 0
    for marker in parse_markers(text):
        if marker.start > cursor:
            segments.append(TextSegment(text[cursor : marker.start]))
        segments.append(_resolve_marker(marker, reference, sources or ()))
        cursor = marker.end
    if cursor < len(text):
        segments.append(TextSegment(text[cursor:]))
    return ResolvedAnswer(tuple(segments))


def _resolve_marker(
    marker: CitationMarker,
    reference: Reference | None,
    sources: Sequence[WebSource],
) -> Segment:
    if isinstance(marker, DocMarker):
        chunk = reference.chunk_at(marker.index) if reference is not None else None
        if chunk is None:
            return Unresolved(marker)
        if chunk.is_web:
            # provider sometimes tags web hits as document chunks
            return WebCitation(
                marker=marker,
                title=chunk.document_name or DEFAULT_WEB_TITLE,
                url=chunk.url or "",
                snippet=chunk.content or None,
            )
        return DocCitation(marker=marker, chunk=chunk)

    position = marker.index - 1
    if position < 0 or position >= len(sources):
        return Unresolved(marker)
    source = sources[position]
    if not source.url or not source.title:
        return Unresolved(marker)
    return WebCitation(marker=marker, title=source.title, url=source.url, snippet=source.snippet)


def render_placeholders(resolved: ResolvedAnswer) -> str:
    """Replace resolved markers with the placeholder tags the web client renders as popovers."""
    parts: list[str] = []
    for segment in resolved.segments:
        if isinstance(segment, (TextSegment, Unresolved)):
            parts.append(segment.text)
        elif isinstance(segment.marker, DocMarker):
            parts.append(f'<citation-placeholder marker="{segment.marker.raw}"></citation-placeholder>')
        else:
            parts.append(f'<web-citation-placeholder number="{segment.marker.index}"></web-citation-placeholder>')
    return "".join(parts).strip()


def strip_markers(text: str) -> str:
    """Drop every citation marker, e.g. for speech or plain-text export."""
    return MARKER_RE.sub("", text)


__all__ = [
    "MARKER_RE",
    "DocMarker",
    "WebMarker",
    "CitationMarker",
    "TextSegment",
    "DocCitation",
    "WebCitation",
    "Unresolved",
    "ResolvedAnswer",
    "parse_markers",
    "resolve",
    "render_placeholders",
    "strip_markers",
]
