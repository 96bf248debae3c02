from __future__ import annotations

from datetime import datetime

from rulebook_chat.session.expiry import cache_is_active
from rulebook_chat.session.models import Session


def _fmt_time(value: datetime | None) -> str:
    if value is None:
        return "-"
    return value.isoformat(timespec="seconds")


class SessionController:
    def __init__(self, *, line_prefix: str, preview_chars: int = 80):
        self._line_prefix = line_prefix
        self._preview_chars = preview_chars

    def preview(self, text: str | None) -> str:
        if not text:
            return "-"
        flat = " ".join(text.split())
        if len(flat) <= self._preview_chars:
            return flat
        return flat[: self._preview_chars - 3] + "..."

    def format_info_lines(self, session: Session, *, now: datetime) -> list[str]:
        lines = [f"{self._line_prefix}Session {session.id}: {session.title}"]
        lines.append(
            f"{self._line_prefix}- File: {session.file_name or '-'} "
            f"(id={session.provider_file_id or '-'}, expires={_fmt_time(session.file_expires_at)})"
        )
        cache_state = "active" if cache_is_active(session, now) else "inactive"
        lines.append(
            f"{self._line_prefix}- Cache: {session.provider_cache_id or '-'} "
            f"({cache_state}, expires={_fmt_time(session.cache_expires_at)})"
        )
        lines.append(f"{self._line_prefix}- Turns: {len(session.turns)}")
        return lines

    def format_history_lines(self, session: Session) -> list[str]:
        if not session.turns:
            return [f"{self._line_prefix}(no turns yet)"]
        lines: list[str] = []
        for index, turn in enumerate(session.turns):
            user = self.preview(turn.user.text if turn.user else None)
            reply = self.preview(turn.assistant.text if turn.assistant else None)
            lines.append(f"{self._line_prefix}[{index}] you: {user}")
            lines.append(f"{self._line_prefix}    ai:  {reply}")
        return lines
