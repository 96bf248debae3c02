from collections.abc import AsyncIterator
from typing import Protocol, runtime_checkable

from rulebook_chat.app_config import AppConfig, RuntimeEnv
from rulebook_chat.gemini.upload import Document
from rulebook_chat.session.models import DEFAULT_MIME_TYPE, CacheView, ChatResponse, Session, UploadResult


@runtime_checkable
class GenerativeAiService(Protocol):
    async def generate(self, session: Session, message: str) -> ChatResponse:
        """Single-shot generation. Raises ProviderRejected on a non-2xx response."""
        ...

    def generate_streaming(self, session: Session, message: str) -> AsyncIterator[str]:
        """Lazily yield text fragments. Raises StreamError on an in-band provider error."""
        ...

    async def generate_title(self, session: Session, prompt: str) -> str | None:
        """Best-effort short title; None on any failure."""
        ...

    async def upload_document(
        self,
        owner_id: str,
        document: Document,
        file_name: str,
        system_instruction: str | None = None,
        *,
        mime_type: str = DEFAULT_MIME_TYPE,
    ) -> UploadResult:
        """Upload, wait for processing and optionally cache a document."""
        ...

    async def get_cache(self, cache_id: str) -> CacheView | None: ...

    async def aclose(self) -> None: ...


def create_service(
    provider_name: str,
    config: AppConfig,
    env: RuntimeEnv,
    *,
    default_system_instruction: str | None = None,
) -> GenerativeAiService:
    """Factory: create a GenerativeAiService by provider name."""
    name = provider_name.strip().lower()
    if name == "gemini":
        from rulebook_chat.gemini.service import GeminiService, create_transport
        return GeminiService(
            create_transport(config, env),
            config,
            default_system_instruction=default_system_instruction,
        )
    raise ValueError(f"Unknown provider: {provider_name!r}. Supported: 'gemini'")
