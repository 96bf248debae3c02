from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import datetime
from pathlib import PurePath

from loguru import logger

from rulebook_chat.gemini.upload import Document
from rulebook_chat.provider import GenerativeAiService
from rulebook_chat.session.expiry import apply_upload, drop_cache, file_needs_refresh, is_stale
from rulebook_chat.session.models import DEFAULT_MIME_TYPE, Session, utc_now

DocumentOpener = Callable[[str], Awaitable[Document | None]]


async def refresh_if_expired(
    service: GenerativeAiService,
    session: Session,
    open_document: DocumentOpener,
    *,
    now: datetime | None = None,
) -> bool:
    """Replace expired provider references on the session. Returns True if the session changed.

    An expired file is re-uploaded from ``session.document_source``; an expired
    cache is dropped so requests fall back to attaching the file. The session is
    only modified after the upload has finished.
    """
    now = now or utc_now()
    stale_cache = bool(session.provider_cache_id) and is_stale(now, session.cache_expires_at)
    upload = None

    if session.document_source and file_needs_refresh(session, now):
        document = await open_document(session.document_source)
        if document is None:
            logger.warning(f"Cannot rehydrate session {session.id}: {session.document_source} not found")
        else:
            file_name = PurePath(session.file_name or session.document_source).name
            logger.info(f"File reference for session {session.id} expired, re-uploading {file_name}")
            try:
                upload = await service.upload_document(
                    session.id,
                    document,
                    file_name,
                    session.system_instruction,
                    mime_type=session.mime_type or DEFAULT_MIME_TYPE,
                )
            finally:
                close = getattr(document, "close", None)
                if callable(close):
                    close()

    if stale_cache:
        logger.info(f"Cache {session.provider_cache_id} for session {session.id} expired")
        drop_cache(session)
    if upload is not None:
        apply_upload(session, upload, now=now)
    return stale_cache or upload is not None
