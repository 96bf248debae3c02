from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable

from rulebook_chat.app_config import AppConfig, RuntimeEnv
from rulebook_chat.gemini.cache import CacheManager
from rulebook_chat.gemini.completion import CompletionClient
from rulebook_chat.gemini.request_builder import build_request
from rulebook_chat.gemini.streaming import StreamingClient
from rulebook_chat.gemini.transport import GeminiTransport
from rulebook_chat.gemini.upload import Document, FileUploadCoordinator
from rulebook_chat.gemini.wire import GenerateContentRequest
from rulebook_chat.session.models import DEFAULT_MIME_TYPE, CacheView, ChatResponse, Session, UploadResult


class GeminiService:
    """Chat, upload and cache operations against the Gemini REST API.

    Sessions are read, never written: callers merge the returned references
    back into their own session store.
    """

    def __init__(
        self,
        transport: GeminiTransport,
        config: AppConfig,
        *,
        default_system_instruction: str | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._transport = transport
        self._config = config
        self._default_system_instruction = default_system_instruction or config.system_instruction
        self._completion = CompletionClient(transport, model=config.model, title_model=config.title_model)
        self._streaming = StreamingClient(transport, model=config.model)
        self._cache = CacheManager(transport, ttl_seconds=config.cache_ttl_seconds)
        self._uploads = FileUploadCoordinator(
            transport,
            model=config.model,
            poll_seconds=config.file_processing_poll_seconds,
            timeout_seconds=config.file_processing_timeout_seconds,
            cache_manager=self._cache if config.use_caching else None,
            default_system_instruction=self._default_system_instruction,
            sleep=sleep,
        )

    @property
    def default_system_instruction(self) -> str | None:
        return self._default_system_instruction

    def build_request(self, session: Session, message: str) -> GenerateContentRequest:
        return build_request(
            session,
            message,
            history_turn_limit=self._config.history_turn_limit,
            default_system_instruction=self._default_system_instruction,
        )

    async def generate(self, session: Session, message: str) -> ChatResponse:
        return await self._completion.generate(self.build_request(session, message))

    async def generate_streaming(self, session: Session, message: str) -> AsyncIterator[str]:
        async for fragment in self._streaming.stream(self.build_request(session, message)):
            yield fragment

    async def generate_title(self, session: Session, prompt: str) -> str | None:
        return await self._completion.generate_title(prompt)

    async def upload_document(
        self,
        owner_id: str,
        document: Document,
        file_name: str,
        system_instruction: str | None = None,
        *,
        mime_type: str = DEFAULT_MIME_TYPE,
    ) -> UploadResult:
        return await self._uploads.upload(owner_id, document, file_name, system_instruction, mime_type=mime_type)

    async def get_cache(self, cache_id: str) -> CacheView | None:
        return await self._cache.get(cache_id)

    async def aclose(self) -> None:
        await self._transport.aclose()


def create_transport(config: AppConfig, env: RuntimeEnv) -> GeminiTransport:
    return GeminiTransport(
        base_url=config.base_uri,
        api_key=env.api_key,
        timeout=config.request_timeout_seconds,
        retry_count=config.retry_count,
        backoff_seconds=config.retry_backoff_seconds,
    )
