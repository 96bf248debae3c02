from __future__ import annotations

import httpx
from loguru import logger

from rulebook_chat.errors import ProviderRejected
from rulebook_chat.gemini.request_builder import build_title_request
from rulebook_chat.gemini.transport import GeminiTransport
from rulebook_chat.gemini.wire import GenerateContentRequest, GenerateContentResponse
from rulebook_chat.session.models import ChatResponse


def generate_content_path(model: str) -> str:
    return f"/v1beta/models/{model}:generateContent"


class CompletionClient:
    def __init__(self, transport: GeminiTransport, *, model: str, title_model: str | None = None):
        self._transport = transport
        self._model = model
        self._title_model = title_model or model

    async def generate(self, request: GenerateContentRequest) -> ChatResponse:
        payload = await self._generate(self._model, request)
        text = payload.text()
        logger.debug(f"Gemini generate response: candidates={len(payload.candidates)}, text_len={len(text)}")
        return ChatResponse(text=text, cache_id=payload.cached_content)

    async def generate_title(self, prompt: str) -> str | None:
        """Best-effort title generation. Never raises for provider or transport failures."""
        try:
            payload = await self._generate(self._title_model, build_title_request(prompt))
        except ProviderRejected as ex:
            logger.warning(f"Gemini title generation failed: {ex.status_code}")
            return None
        except (httpx.HTTPError, ValueError) as ex:
            logger.warning(f"Gemini title generation failed: {ex}")
            return None

        title = payload.text().strip()
        return title or None

    async def _generate(self, model: str, request: GenerateContentRequest) -> GenerateContentResponse:
        body = request.to_dict()
        logger.debug(
            f"Gemini generate request: model={model}, contents={len(request.contents)}, "
            f"cached={bool(request.cached_content)}"
        )
        response = await self._transport.send("POST", generate_content_path(model), json=body)
        if not response.is_success:
            logger.error(f"Gemini generate content failed: {response.status_code}")
            raise ProviderRejected(response.status_code, response.text)
        return GenerateContentResponse.from_dict(response.json())
