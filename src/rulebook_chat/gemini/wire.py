"""Gemini REST payloads.

Requests are built from these dataclasses and serialised with ``to_dict``.
Responses are parsed with ``from_dict``; every provider field is optional and
malformed nesting collapses to empty values instead of raising.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

_FRACTION_PATTERN = re.compile(r"\.(\d+)")


def _as_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


def _as_str(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an RFC 3339 timestamp as returned by Gemini (nanosecond precision, ``Z`` suffix)."""
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    # datetime only understands microseconds.
    text = _FRACTION_PATTERN.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


@dataclass(frozen=True)
class FileData:
    mime_type: str
    file_uri: str

    def to_dict(self) -> dict:
        return {"mimeType": self.mime_type, "fileUri": self.file_uri}


@dataclass(frozen=True)
class Part:
    text: str | None = None
    file_data: FileData | None = None

    def to_dict(self) -> dict:
        out: dict = {}
        if self.text is not None:
            out["text"] = self.text
        if self.file_data is not None:
            out["fileData"] = self.file_data.to_dict()
        return out

    @classmethod
    def from_dict(cls, data: Any) -> Part:
        raw = _as_dict(data)
        file_data = _as_dict(raw.get("fileData"))
        return cls(
            text=_as_str(raw.get("text")),
            file_data=(
                FileData(
                    mime_type=_as_str(file_data.get("mimeType")) or "",
                    file_uri=_as_str(file_data.get("fileUri")) or "",
                )
                if file_data
                else None
            ),
        )


@dataclass(frozen=True)
class Content:
    parts: list[Part] = field(default_factory=list)
    role: str | None = None

    def to_dict(self) -> dict:
        out: dict = {}
        if self.role is not None:
            out["role"] = self.role
        out["parts"] = [p.to_dict() for p in self.parts]
        return out

    @classmethod
    def from_dict(cls, data: Any) -> Content:
        raw = _as_dict(data)
        return cls(
            parts=[Part.from_dict(p) for p in _as_list(raw.get("parts"))],
            role=_as_str(raw.get("role")),
        )

    @property
    def has_file_data(self) -> bool:
        return any(p.file_data is not None for p in self.parts)


def system_instruction_content(instruction: str | None) -> Content | None:
    if instruction is None or not instruction.strip():
        return None
    return Content(parts=[Part(text=instruction)])


@dataclass(frozen=True)
class GenerateContentRequest:
    contents: list[Content]
    system_instruction: Content | None = None
    cached_content: str | None = None

    def to_dict(self) -> dict:
        out: dict = {"contents": [c.to_dict() for c in self.contents]}
        if self.system_instruction is not None:
            out["systemInstruction"] = self.system_instruction.to_dict()
        if self.cached_content:
            out["cachedContent"] = self.cached_content
        return out


@dataclass(frozen=True)
class Candidate:
    content: Content | None = None

    def texts(self) -> list[str]:
        if self.content is None:
            return []
        return [p.text for p in self.content.parts if p.text]


@dataclass(frozen=True)
class GenerateContentResponse:
    candidates: list[Candidate] = field(default_factory=list)
    cached_content: str | None = None

    @classmethod
    def from_dict(cls, data: Any) -> GenerateContentResponse:
        raw = _as_dict(data)
        return cls(
            candidates=[_parse_candidate(c) for c in _as_list(raw.get("candidates"))],
            cached_content=_as_str(raw.get("cachedContent")),
        )

    def text_chunks(self) -> list[str]:
        return [text for candidate in self.candidates for text in candidate.texts()]

    def text(self) -> str:
        return "".join(self.text_chunks())


def _parse_candidate(data: Any) -> Candidate:
    raw = _as_dict(data)
    content = raw.get("content")
    return Candidate(content=Content.from_dict(content) if isinstance(content, dict) else None)


@dataclass(frozen=True)
class ErrorInfo:
    message: str
    code: int | None = None
    status: str | None = None


@dataclass(frozen=True)
class StreamEvent:
    """One decoded line of a streamGenerateContent response."""

    candidates: list[Candidate] | None = None
    error: ErrorInfo | None = None

    @classmethod
    def from_dict(cls, data: Any) -> StreamEvent:
        raw = _as_dict(data)
        if isinstance(raw.get("candidates"), list):
            return cls(candidates=[_parse_candidate(c) for c in raw["candidates"]])
        error = raw.get("error")
        if isinstance(error, dict) and "message" in error:
            code = error.get("code")
            return cls(
                error=ErrorInfo(
                    message=str(error.get("message") or "Gemini streaming error"),
                    code=code if isinstance(code, int) else None,
                    status=_as_str(error.get("status")),
                )
            )
        return cls()

    def text_chunks(self) -> list[str]:
        if not self.candidates:
            return []
        return [text for candidate in self.candidates for text in candidate.texts()]


@dataclass(frozen=True)
class UploadedFile:
    name: str | None = None
    uri: str | None = None
    display_name: str | None = None
    mime_type: str | None = None
    state: str | None = None
    expiration_time: datetime | None = None

    @classmethod
    def from_dict(cls, data: Any) -> UploadedFile:
        raw = _as_dict(data)
        return cls(
            name=_as_str(raw.get("name")),
            uri=_as_str(raw.get("uri")),
            display_name=_as_str(raw.get("displayName")),
            mime_type=_as_str(raw.get("mimeType")),
            state=_as_str(raw.get("state")),
            expiration_time=parse_timestamp(raw.get("expirationTime")),
        )

    @property
    def file_id(self) -> str:
        """The bare id used in ``files/{id}`` URLs."""
        return (self.name or "").rsplit("/", 1)[-1]


@dataclass(frozen=True)
class CachedContent:
    name: str | None = None
    ttl: str | None = None
    expire_time: datetime | None = None

    @classmethod
    def from_dict(cls, data: Any) -> CachedContent:
        raw = _as_dict(data)
        return cls(
            name=_as_str(raw.get("name")),
            ttl=_as_str(raw.get("ttl")),
            expire_time=parse_timestamp(raw.get("expireTime")),
        )
