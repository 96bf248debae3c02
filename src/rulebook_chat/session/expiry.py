from __future__ import annotations

from datetime import datetime

from rulebook_chat.session.models import Session, UploadResult, utc_now


def is_stale(now: datetime, expires_at: datetime | None) -> bool:
    """A reference is stale once its provider-reported expiry has passed.

    References without a recorded expiry are treated as valid.
    """
    if expires_at is None:
        return False
    return expires_at <= now


def cache_is_active(session: Session, now: datetime) -> bool:
    return bool(session.provider_cache_id) and not is_stale(now, session.cache_expires_at)


def file_needs_refresh(session: Session, now: datetime) -> bool:
    return bool(session.provider_file_id) and is_stale(now, session.file_expires_at)


def apply_upload(
    session: Session,
    upload: UploadResult,
    *,
    replace_cache: bool = False,
    now: datetime | None = None,
) -> None:
    """Merge a fresh set of provider references into the session.

    With ``replace_cache`` the cache fields always take the upload's values, so a
    new document without a cache clears the old one. Otherwise an existing cache
    is only replaced when the upload produced one.
    """
    session.provider_file_id = upload.provider_id
    session.file_uri = upload.file_uri
    session.mime_type = upload.mime_type or session.mime_type
    session.file_expires_at = upload.expiration_time
    if replace_cache or upload.cache_id:
        session.provider_cache_id = upload.cache_id
        session.cache_expires_at = upload.cache_expires_at
    if upload.system_instruction:
        session.system_instruction = upload.system_instruction
    session.updated_at = now or utc_now()


def drop_cache(session: Session) -> None:
    session.provider_cache_id = None
    session.cache_expires_at = None
