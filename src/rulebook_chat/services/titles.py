from __future__ import annotations

from rulebook_chat.provider import GenerativeAiService
from rulebook_chat.session.models import DEFAULT_TITLE, Session

_MAX_TITLE_CHARS = 60
_QUOTE_CHARS = "\"'“”"


def needs_title(session: Session) -> bool:
    title = session.title.strip()
    return not title or title.lower() == DEFAULT_TITLE.lower()


def build_title_prompt(seed_text: str) -> str:
    return (
        "Based on this runner's opening ask, ghost together a short mission codename. "
        f"Keep it punchy, three words or less. Seed: {seed_text}"
    )


def clean_title(raw: str | None) -> str | None:
    if raw is None:
        return None
    title = raw.strip().strip(_QUOTE_CHARS).strip()
    if not title:
        return None
    if len(title) > _MAX_TITLE_CHARS:
        return title[:_MAX_TITLE_CHARS].strip() + "…"
    return title


async def suggest_title(service: GenerativeAiService, session: Session, seed_text: str) -> str | None:
    if not seed_text or not seed_text.strip():
        return None
    return clean_title(await service.generate_title(session, build_title_prompt(seed_text)))
