from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import uuid4

DEFAULT_TITLE = "New chat"
DEFAULT_MIME_TYPE = "application/pdf"


def utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class Message:
    role: str
    text: str
    timestamp: datetime = field(default_factory=utc_now)


@dataclass
class Turn:
    user: Message | None = None
    assistant: Message | None = None
    timestamp: datetime = field(default_factory=utc_now)

    @property
    def is_empty(self) -> bool:
        return self.user is None and self.assistant is None


@dataclass
class Session:
    id: str = field(default_factory=lambda: str(uuid4()))
    title: str = DEFAULT_TITLE
    turns: list[Turn] = field(default_factory=list)
    provider_cache_id: str | None = None
    provider_file_id: str | None = None
    file_uri: str | None = None
    file_name: str | None = None
    mime_type: str | None = None
    system_instruction: str | None = None
    cache_expires_at: datetime | None = None
    file_expires_at: datetime | None = None
    document_source: str | None = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)


@dataclass(frozen=True)
class UploadResult:
    provider_id: str
    display_name: str
    uploaded_at: datetime
    cache_id: str | None = None
    file_uri: str | None = None
    mime_type: str | None = None
    system_instruction: str | None = None
    expiration_time: datetime | None = None
    cache_expires_at: datetime | None = None


@dataclass(frozen=True)
class CacheView:
    cache_id: str
    expires_at: datetime


@dataclass(frozen=True)
class ChatResponse:
    text: str
    cache_id: str | None = None
