from datetime import UTC, datetime, timedelta

from rulebook_chat.session import ChatResponse, UploadResult


class FakeService:
    """In-memory stand-in for a generative AI service."""

    def __init__(self, *, replies: list[str] | None = None, title: str | None = "Ghost Run"):
        self.replies = list(replies or ["answer"])
        self.title = title
        self.uploads: list[tuple] = []
        self.generate_calls: list[str] = []
        self.title_prompts: list[str] = []
        self.echo_cache_id: str | None = None
        self.upload_result = UploadResult(
            provider_id="files/fresh",
            display_name="rules.pdf",
            uploaded_at=datetime(2026, 3, 1, tzinfo=UTC),
            cache_id="cachedContents/fresh",
            file_uri="https://files.test/fresh",
            mime_type="application/pdf",
            system_instruction="Rules",
            expiration_time=datetime(2026, 3, 1, tzinfo=UTC) + timedelta(hours=48),
            cache_expires_at=datetime(2026, 3, 1, tzinfo=UTC) + timedelta(hours=1),
        )

    async def generate(self, session, message):
        self.generate_calls.append(message)
        return ChatResponse(text=self.replies.pop(0), cache_id=self.echo_cache_id)

    async def generate_streaming(self, session, message):
        self.generate_calls.append(message)
        for word in self.replies.pop(0).split(" "):
            yield word + " "

    async def generate_title(self, session, prompt):
        self.title_prompts.append(prompt)
        return self.title

    async def upload_document(self, owner_id, document, file_name, system_instruction=None, *, mime_type="application/pdf"):
        content = document if isinstance(document, bytes) else document.read()
        self.uploads.append((owner_id, content, file_name, system_instruction, mime_type))
        return self.upload_result

    async def get_cache(self, cache_id):
        return None

    async def aclose(self):
        return None
