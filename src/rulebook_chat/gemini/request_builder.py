from __future__ import annotations

from datetime import datetime

from loguru import logger

from rulebook_chat.gemini.wire import (
    Content,
    FileData,
    GenerateContentRequest,
    Part,
    system_instruction_content,
)
from rulebook_chat.session.expiry import cache_is_active
from rulebook_chat.session.models import DEFAULT_MIME_TYPE, Session, Turn, utc_now
from rulebook_chat.system_prompt import TITLE_INSTRUCTION


def _history_contents(turns: list[Turn], history_turn_limit: int) -> list[Content]:
    """Flatten the most recent turns into alternating user/model entries."""
    window = turns[-history_turn_limit:] if history_turn_limit > 0 else []
    contents: list[Content] = []
    for turn in window:
        for message in (turn.user, turn.assistant):
            if message is None:
                continue
            contents.append(Content(role=message.role, parts=[Part(text=message.text)]))
    return contents


def _user_parts(session: Session, new_message: str, *, cache_active: bool) -> list[Part]:
    parts = [Part(text=new_message)]

    # A live cache already embeds the document; otherwise every request must carry it.
    if not cache_active and session.file_uri:
        parts.append(
            Part(
                file_data=FileData(
                    mime_type=session.mime_type or DEFAULT_MIME_TYPE,
                    file_uri=session.file_uri,
                )
            )
        )
    return parts


def resolve_instruction(session_instruction: str | None, default_instruction: str | None) -> str | None:
    for candidate in (session_instruction, default_instruction):
        if candidate and candidate.strip():
            return candidate
    return None


def build_request(
    session: Session,
    new_message: str,
    *,
    history_turn_limit: int,
    default_system_instruction: str | None = None,
    now: datetime | None = None,
) -> GenerateContentRequest:
    cache_active = cache_is_active(session, now or utc_now())

    contents = _history_contents(session.turns, history_turn_limit)
    contents.append(Content(role="user", parts=_user_parts(session, new_message, cache_active=cache_active)))

    if cache_active:
        logger.info(f"Using cached content: {session.provider_cache_id} for session {session.id}")
    elif session.file_uri:
        logger.info(f"Using file URI: {session.file_uri} for session {session.id}")
    else:
        logger.warning(f"No cached content or file URI found for session {session.id}")

    return GenerateContentRequest(
        contents=contents,
        system_instruction=system_instruction_content(
            resolve_instruction(session.system_instruction, default_system_instruction)
        ),
        cached_content=session.provider_cache_id if cache_active else None,
    )


def build_title_request(prompt: str) -> GenerateContentRequest:
    return GenerateContentRequest(
        contents=[Content(role="user", parts=[Part(text=prompt)])],
        system_instruction=system_instruction_content(TITLE_INSTRUCTION),
    )
