"""Resumable upload of a document to the Gemini Files API.

The upload is an explicit state machine::

    NOT_STARTED -> SESSION_STARTED -> UPLOADED -> ACTIVE | FAILED | TIMED_OUT

:func:`transition` is pure and holds every rule about how provider responses
move an upload between states. :class:`FileUploadCoordinator` does the I/O for
each phase, feeds the outcome through :func:`transition` and raises once a
failure state is reached.
"""

from __future__ import annotations

import asyncio
import math
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, replace
from enum import Enum
from typing import BinaryIO

import httpx
from loguru import logger

from rulebook_chat.errors import CacheCreationFailed, ProcessingTimeout, UploadProtocolError
from rulebook_chat.gemini.cache import CacheManager
from rulebook_chat.gemini.request_builder import resolve_instruction
from rulebook_chat.gemini.transport import GeminiTransport, json_body
from rulebook_chat.gemini.wire import UploadedFile
from rulebook_chat.session.models import DEFAULT_MIME_TYPE, CacheView, UploadResult, utc_now

_START_PATH = "/upload/v1beta/files"
_UPLOAD_URL_HEADER = "X-Goog-Upload-URL"
_PROCESSING = "PROCESSING"
_FAILED = "FAILED"
_CHUNK_SIZE = 1024 * 1024

Document = bytes | bytearray | BinaryIO


class UploadState(str, Enum):
    NOT_STARTED = "not_started"
    SESSION_STARTED = "session_started"
    UPLOADED = "uploaded"
    ACTIVE = "active"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


TERMINAL_STATES = frozenset({UploadState.ACTIVE, UploadState.FAILED, UploadState.TIMED_OUT})


@dataclass(frozen=True)
class PhaseRejected:
    status_code: int
    body: str = ""


@dataclass(frozen=True)
class UploadUrlReceived:
    upload_url: str | None


@dataclass(frozen=True)
class UploadFinalized:
    file: UploadedFile | None


@dataclass(frozen=True)
class StatusPolled:
    # None when the status call itself was rejected; it still uses up an attempt.
    file: UploadedFile | None


UploadEvent = PhaseRejected | UploadUrlReceived | UploadFinalized | StatusPolled


@dataclass(frozen=True)
class UploadProgress:
    state: UploadState = UploadState.NOT_STARTED
    max_poll_attempts: int = 1
    upload_url: str | None = None
    file: UploadedFile | None = None
    poll_attempts: int = 0
    error: str | None = None
    status_code: int | None = None
    body: str = ""


def max_poll_attempts(timeout_seconds: float, poll_seconds: float) -> int:
    if poll_seconds <= 0:
        return 1
    return max(1, math.ceil(timeout_seconds / poll_seconds))


def _merge_file(uploaded: UploadedFile | None, polled: UploadedFile) -> UploadedFile:
    if uploaded is None:
        return polled
    return UploadedFile(
        name=polled.name or uploaded.name,
        uri=polled.uri or uploaded.uri,
        display_name=polled.display_name or uploaded.display_name,
        mime_type=polled.mime_type or uploaded.mime_type,
        state=polled.state,
        expiration_time=polled.expiration_time or uploaded.expiration_time,
    )


def _fail(progress: UploadProgress, error: str, *, status_code: int | None = None, body: str = "") -> UploadProgress:
    return replace(progress, state=UploadState.FAILED, error=error, status_code=status_code, body=body)


def transition(progress: UploadProgress, event: UploadEvent) -> UploadProgress:
    state = progress.state

    if isinstance(event, PhaseRejected) and state in (UploadState.NOT_STARTED, UploadState.SESSION_STARTED):
        phase = "start" if state is UploadState.NOT_STARTED else "upload"
        return _fail(
            progress,
            f"Gemini resumable {phase} failed: {event.status_code} {event.body}".rstrip(),
            status_code=event.status_code,
            body=event.body,
        )

    if isinstance(event, UploadUrlReceived) and state is UploadState.NOT_STARTED:
        if not event.upload_url:
            return _fail(progress, "Gemini resumable start did not return an upload URL")
        return replace(progress, state=UploadState.SESSION_STARTED, upload_url=event.upload_url)

    if isinstance(event, UploadFinalized) and state is UploadState.SESSION_STARTED:
        if event.file is None or not event.file.name:
            return _fail(progress, "Gemini resumable upload response did not describe the uploaded file")
        return replace(progress, state=UploadState.UPLOADED, file=event.file)

    if isinstance(event, StatusPolled) and state is UploadState.UPLOADED:
        attempts = progress.poll_attempts + 1
        polled = event.file
        if polled is not None and (polled.state or "").upper() != _PROCESSING:
            merged = _merge_file(progress.file, polled)
            if (polled.state or "").upper() == _FAILED:
                return replace(
                    _fail(progress, f"Gemini file processing failed: {merged.name}"),
                    file=merged,
                    poll_attempts=attempts,
                )
            return replace(progress, state=UploadState.ACTIVE, file=merged, poll_attempts=attempts)
        if attempts >= progress.max_poll_attempts:
            return replace(progress, state=UploadState.TIMED_OUT, poll_attempts=attempts)
        return replace(progress, poll_attempts=attempts)

    raise ValueError(f"Cannot apply {type(event).__name__} to an upload in state {state.value}")


def raise_for_state(progress: UploadProgress) -> None:
    if progress.state is UploadState.FAILED:
        raise UploadProtocolError(
            progress.error or "Gemini upload failed",
            status_code=progress.status_code,
            body=progress.body,
        )
    if progress.state is UploadState.TIMED_OUT:
        name = progress.file.name if progress.file and progress.file.name else "uploaded file"
        raise ProcessingTimeout(name, progress.poll_attempts)


def document_length(document: Document) -> int:
    if isinstance(document, (bytes, bytearray)):
        return len(document)
    seekable = getattr(document, "seekable", None)
    if callable(seekable) and seekable():
        end = document.seek(0, 2)
        document.seek(0)
        return end
    raise UploadProtocolError("Document stream must support length for resumable upload")


def _body_factory(document: Document) -> bytes | Callable[[], AsyncIterator[bytes]]:
    if isinstance(document, (bytes, bytearray)):
        return bytes(document)

    async def read_chunks() -> AsyncIterator[bytes]:
        document.seek(0)
        while True:
            chunk = document.read(_CHUNK_SIZE)
            if not chunk:
                break
            yield chunk

    return read_chunks


class FileUploadCoordinator:
    def __init__(
        self,
        transport: GeminiTransport,
        *,
        model: str,
        poll_seconds: float = 2.0,
        timeout_seconds: float = 60.0,
        cache_manager: CacheManager | None = None,
        default_system_instruction: str | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._transport = transport
        self._model = model
        self._poll_seconds = poll_seconds
        self._max_poll_attempts = max_poll_attempts(timeout_seconds, poll_seconds)
        self._cache_manager = cache_manager
        self._default_system_instruction = default_system_instruction
        self._sleep = sleep

    async def upload(
        self,
        owner_id: str,
        document: Document,
        file_name: str,
        system_instruction: str | None = None,
        *,
        mime_type: str = DEFAULT_MIME_TYPE,
    ) -> UploadResult:
        length = document_length(document)
        logger.info(f"Uploading {file_name} ({length:,} bytes) for {owner_id}")

        progress = UploadProgress(max_poll_attempts=self._max_poll_attempts)
        progress = await self._start_session(progress, file_name, length, mime_type)
        raise_for_state(progress)
        progress = await self._upload_body(progress, document, length, mime_type)
        raise_for_state(progress)
        progress = await self._wait_until_active(progress)
        raise_for_state(progress)

        uploaded = progress.file
        assert uploaded is not None and uploaded.name is not None
        file_mime_type = uploaded.mime_type or mime_type
        effective_instruction = resolve_instruction(system_instruction, self._default_system_instruction)

        cache: CacheView | None = None
        if self._cache_manager is not None and uploaded.uri:
            cache = await self._try_create_cache(file_name, uploaded.uri, file_mime_type, effective_instruction)

        return UploadResult(
            provider_id=uploaded.name,
            display_name=uploaded.display_name or file_name,
            uploaded_at=utc_now(),
            cache_id=cache.cache_id if cache else None,
            file_uri=uploaded.uri,
            mime_type=file_mime_type,
            system_instruction=effective_instruction,
            expiration_time=uploaded.expiration_time,
            cache_expires_at=cache.expires_at if cache else None,
        )

    async def _start_session(
        self, progress: UploadProgress, file_name: str, length: int, mime_type: str
    ) -> UploadProgress:
        response = await self._transport.send(
            "POST",
            _START_PATH,
            headers={
                "X-Goog-Upload-Protocol": "resumable",
                "X-Goog-Upload-Command": "start",
                "X-Goog-Upload-Header-Content-Length": str(length),
                "X-Goog-Upload-Header-Content-Type": mime_type,
            },
            json={"file": {"display_name": file_name}},
        )
        if not response.is_success:
            logger.error(f"Gemini resumable start failed: {response.status_code}")
            return transition(progress, PhaseRejected(response.status_code, response.text))

        upload_url = response.headers.get(_UPLOAD_URL_HEADER, "").strip()
        if not upload_url:
            logger.error("Gemini resumable start missing X-Goog-Upload-URL header")
        return transition(progress, UploadUrlReceived(upload_url or None))

    async def _upload_body(
        self, progress: UploadProgress, document: Document, length: int, mime_type: str
    ) -> UploadProgress:
        assert progress.upload_url is not None
        response = await self._transport.send(
            "POST",
            progress.upload_url,
            headers={
                "Content-Type": mime_type,
                "Content-Length": str(length),
                "X-Goog-Upload-Offset": "0",
                "X-Goog-Upload-Command": "upload, finalize",
            },
            content=_body_factory(document),
        )
        if not response.is_success:
            logger.error(f"Gemini resumable upload failed: {response.status_code}")
            return transition(progress, PhaseRejected(response.status_code, response.text))

        payload = json_body(response)
        file_payload = payload.get("file") if isinstance(payload, dict) else None
        uploaded = UploadedFile.from_dict(file_payload) if isinstance(file_payload, dict) else None
        if uploaded is not None:
            logger.info(f"Uploaded {uploaded.name} (state={uploaded.state})")
        return transition(progress, UploadFinalized(uploaded))

    async def _wait_until_active(self, progress: UploadProgress) -> UploadProgress:
        assert progress.file is not None
        file_id = progress.file.file_id
        while progress.state not in TERMINAL_STATES:
            if progress.poll_attempts > 0:
                await self._sleep(self._poll_seconds)
            response = await self._transport.send("GET", f"/v1beta/files/{file_id}")
            body = json_body(response) if response.is_success else None
            polled = UploadedFile.from_dict(body) if isinstance(body, dict) else None
            if polled is None:
                logger.debug(f"Gemini file status poll for {file_id} returned {response.status_code}")
            progress = transition(progress, StatusPolled(polled))

        logger.info(f"File {file_id} reached {progress.state.value} after {progress.poll_attempts} polls")
        return progress

    async def _try_create_cache(
        self, display_name: str, file_uri: str, mime_type: str, system_instruction: str | None
    ) -> CacheView | None:
        assert self._cache_manager is not None
        try:
            return await self._cache_manager.create(
                self._model, display_name, file_uri, mime_type, system_instruction
            )
        except CacheCreationFailed as ex:
            logger.warning(f"Continuing without cache: {ex}")
        except (httpx.HTTPError, ValueError) as ex:
            logger.warning(f"Continuing without cache: Gemini cache creation failed: {ex}")
        return None
