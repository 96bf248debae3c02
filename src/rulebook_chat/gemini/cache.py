from __future__ import annotations

from datetime import datetime, timedelta

import httpx
from loguru import logger

from rulebook_chat.errors import CacheCreationFailed
from rulebook_chat.gemini.transport import GeminiTransport, json_body
from rulebook_chat.gemini.wire import CachedContent, Content, FileData, Part, system_instruction_content
from rulebook_chat.session.models import CacheView, utc_now

_CACHES_PATH = "/v1beta/cachedContents"


def _model_resource(model: str) -> str:
    return model if model.startswith("models/") else f"models/{model}"


class CacheManager:
    """Creates and inspects Gemini cached-content resources."""

    def __init__(self, transport: GeminiTransport, *, ttl_seconds: int):
        self._transport = transport
        self._ttl_seconds = ttl_seconds

    def _fallback_expiry(self) -> datetime:
        return utc_now() + timedelta(seconds=self._ttl_seconds)

    async def create(
        self,
        model: str,
        display_name: str,
        file_uri: str,
        mime_type: str,
        system_instruction: str | None = None,
    ) -> CacheView:
        """Create a cache holding the uploaded file, then set its TTL in a second call.

        The TTL update is not atomic with creation: if it fails the cache keeps
        the provider's default TTL and the returned expiry is only an estimate.
        """
        body: dict = {
            "model": _model_resource(model),
            "displayName": display_name,
            "contents": [
                Content(
                    role="user",
                    parts=[Part(file_data=FileData(mime_type=mime_type, file_uri=file_uri))],
                ).to_dict()
            ],
        }
        instruction = system_instruction_content(system_instruction)
        if instruction is not None:
            body["systemInstruction"] = instruction.to_dict()

        response = await self._transport.send("POST", _CACHES_PATH, json=body, retry=False)
        if not response.is_success:
            logger.warning(f"Gemini cache creation failed: {response.status_code}")
            raise CacheCreationFailed(response.status_code, response.text)

        created = CachedContent.from_dict(json_body(response))
        if not created.name:
            raise CacheCreationFailed(response.status_code, "cache response did not include a name")
        logger.info(f"Created Gemini cache {created.name} for {display_name}")

        updated = await self._update_ttl(created.name)
        expires_at = (
            (updated.expire_time if updated else None)
            or created.expire_time
            or self._fallback_expiry()
        )
        return CacheView(cache_id=created.name, expires_at=expires_at)

    async def _update_ttl(self, cache_id: str) -> CachedContent | None:
        try:
            response = await self._transport.send(
                "PATCH",
                f"/v1beta/{cache_id}",
                params={"updateMask": "ttl"},
                json={"ttl": f"{self._ttl_seconds}s"},
            )
        except httpx.HTTPError as ex:
            logger.warning(f"Gemini cache TTL update failed for {cache_id}: {ex}; cache keeps the provider default TTL")
            return None
        if not response.is_success:
            logger.warning(
                f"Gemini cache TTL update failed for {cache_id}: {response.status_code}; "
                "cache keeps the provider default TTL"
            )
            return None
        return CachedContent.from_dict(json_body(response))

    async def get(self, cache_id: str) -> CacheView | None:
        response = await self._transport.send("GET", f"/v1beta/{cache_id}")
        if not response.is_success:
            logger.debug(f"Gemini cache lookup for {cache_id} returned {response.status_code}")
            return None

        payload = json_body(response)
        if not isinstance(payload, dict):
            return None
        content = CachedContent.from_dict(payload)
        return CacheView(
            cache_id=content.name or cache_id,
            expires_at=content.expire_time or self._fallback_expiry(),
        )
