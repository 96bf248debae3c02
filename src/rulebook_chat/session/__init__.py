from rulebook_chat.session.expiry import apply_upload, cache_is_active, drop_cache, file_needs_refresh, is_stale
from rulebook_chat.session.models import CacheView, ChatResponse, Message, Session, Turn, UploadResult
from rulebook_chat.session.turns import apply_rerun, delete_message, record_exchange, resolve_rerun_message

__all__ = [
    "CacheView",
    "ChatResponse",
    "Message",
    "Session",
    "Turn",
    "UploadResult",
    "apply_rerun",
    "apply_upload",
    "cache_is_active",
    "delete_message",
    "drop_cache",
    "file_needs_refresh",
    "is_stale",
    "record_exchange",
    "resolve_rerun_message",
]
