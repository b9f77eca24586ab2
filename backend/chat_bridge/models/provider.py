"""Pydantic models for upstream payloads (completion provider and search agent)."""

from __future__ import annotations

from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ReferenceChunk(BaseModel):
    """One retrieved passage the provider cites with a ``##N$$`` marker."""

    model_config = ConfigDict(extra="allow")

    id: str = ""
    content: str = ""
    document_id: str = ""
    document_name: str = ""
    dataset_id: str = ""
    image_id: str | None = None
    similarity: float | None = None
    vector_similarity: float | None = None
    term_similarity: float | None = None
    positions: list[Any] | None = None
    url: str | None = None

    @property
    def is_web(self) -> bool:
        """Chunks carrying a URL are displayed as web citations."""
        return bool(self.url)


class DocAgg(BaseModel):
    model_config = ConfigDict(extra="allow")

    doc_name: str = ""
    doc_id: str = ""
    count: int = 0


class Reference(BaseModel):
    """Reference snapshot attached to a completion."""

    model_config = ConfigDict(extra="allow")

    total: int = 0
    chunks: list[ReferenceChunk] = Field(default_factory=list)
    doc_aggs: list[DocAgg] = Field(default_factory=list)
    prompt: str | None = None

    @property
    def is_empty(self) -> bool:
        return not self.chunks and not self.doc_aggs

    def chunk_at(self, index: int) -> ReferenceChunk | None:
        if 0 <= index < len(self.chunks):
            return self.chunks[index]
        return None


class CompletionPayload(BaseModel):
    """The ``data`` object of a completion frame or response."""

    model_config = ConfigDict(extra="ignore")

    answer: str = ""
    session_id: str | None = None
    reference: Reference | None = None

    @field_validator("reference", mode="before")
    @classmethod
    def _drop_empty_reference(cls, value: Any) -> Any:
        # intermediate frames carry ``{}`` or ``[]``
        if not value or not isinstance(value, Mapping):
            return None
        return value

    @field_validator("answer", mode="before")
    @classmethod
    def _coerce_answer(cls, value: Any) -> Any:
        return "" if value is None else value

    @property
    def usable_reference(self) -> Reference | None:
        if self.reference is None or self.reference.is_empty:
            return None
        return self.reference


class CompletionResponse(BaseModel):
    """Body of a non-streaming completion call."""

    model_config = ConfigDict(extra="ignore")

    code: int
    message: str = ""
    data: CompletionPayload | None = None

    @field_validator("data", mode="before")
    @classmethod
    def _non_object_data(cls, value: Any) -> Any:
        return value if isinstance(value, Mapping) else None


class WebSource(BaseModel):
    """A web search result cited with a ``[N]`` marker."""

    model_config = ConfigDict(extra="allow")

    title: str = ""
    url: str = ""
    snippet: str | None = None

    @classmethod
    def from_agent(cls, raw: Mapping[str, Any]) -> "WebSource":
        """Accept either a flat source or a ``{pageContent, metadata}`` document."""
        metadata = raw.get("metadata")
        if isinstance(metadata, Mapping):
            fields, snippet = metadata, raw.get("pageContent") or metadata.get("snippet")
        else:
            fields, snippet = raw, raw.get("snippet")
        # agent payloads are loosely typed: nulls and numbers show up in any field
        return cls(
            title=_text(fields.get("title")),
            url=_text(fields.get("url")),
            snippet=_text(snippet) or None,
        )


def _text(value: Any) -> str:
    return "" if value is None else str(value)


__all__ = [
    "ReferenceChunk",
    "DocAgg",
    "Reference",
    "CompletionPayload",
    "CompletionResponse",
    "WebSource",
]
