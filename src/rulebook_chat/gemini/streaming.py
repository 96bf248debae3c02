from __future__ import annotations

import json
from collections.abc import AsyncIterable, AsyncIterator

from loguru import logger

from rulebook_chat.errors import StreamError
from rulebook_chat.gemini.transport import GeminiTransport
from rulebook_chat.gemini.wire import GenerateContentRequest, StreamEvent

_DATA_PREFIX = "data:"
_DONE_MARKER = "[DONE]"


def stream_content_path(model: str) -> str:
    return f"/v1beta/models/{model}:streamGenerateContent"


def _strip_data_prefix(line: str) -> str:
    if line[: len(_DATA_PREFIX)].lower() == _DATA_PREFIX:
        return line[len(_DATA_PREFIX):].strip()
    return line


async def decode_event_stream(lines: AsyncIterable[str]) -> AsyncIterator[str]:
    """Decode a line-oriented event stream into text fragments, one line at a time.

    Stops at the ``[DONE]`` marker. An in-band ``error`` event raises
    :class:`StreamError` and nothing after it is read. Lines that are not JSON
    are passed through as text.
    """
    async for raw_line in lines:
        line = raw_line.strip()
        if not line:
            continue

        line = _strip_data_prefix(line)
        if line.upper() == _DONE_MARKER:
            return
        if not line:
            continue

        try:
            payload = json.loads(line)
        except json.JSONDecodeError:
            yield line
            continue

        event = StreamEvent.from_dict(payload)
        if event.error is not None:
            logger.error(f"Gemini stream reported an error: {event.error.message}")
            raise StreamError(event.error.message)

        for chunk in event.text_chunks():
            yield chunk


class StreamingClient:
    def __init__(self, transport: GeminiTransport, *, model: str):
        self._transport = transport
        self._model = model

    async def stream(self, request: GenerateContentRequest) -> AsyncIterator[str]:
        """Yield text fragments as the provider produces them.

        A rejected request (non-2xx before any data) ends the sequence without
        raising; only in-band provider errors raise.
        """
        logger.debug(f"Gemini stream request: model={self._model}, contents={len(request.contents)}")
        response = await self._transport.send(
            "POST",
            stream_content_path(self._model),
            params={"alt": "sse"},
            json=request.to_dict(),
            stream=True,
        )
        try:
            if not response.is_success:
                logger.error(f"Gemini streaming content failed: {response.status_code}")
                return

            fragments = 0
            async for fragment in decode_event_stream(response.aiter_lines()):
                fragments += 1
                yield fragment
            logger.debug(f"Gemini stream finished: fragments={fragments}")
        finally:
            await response.aclose()
