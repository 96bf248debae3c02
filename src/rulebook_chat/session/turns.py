from __future__ import annotations

from datetime import datetime

from rulebook_chat.session.models import Message, Session, Turn, utc_now

USER_ROLE = "user"
MODEL_ROLE = "model"

_SIDES = {"user": "user", "assistant": "assistant", "ai": "assistant", "model": "assistant"}


def record_exchange(session: Session, user_text: str, reply_text: str, *, now: datetime | None = None) -> Turn:
    timestamp = now or utc_now()
    turn = Turn(
        user=Message(role=USER_ROLE, text=user_text, timestamp=timestamp),
        assistant=Message(role=MODEL_ROLE, text=reply_text, timestamp=timestamp),
        timestamp=timestamp,
    )
    session.turns.append(turn)
    session.updated_at = timestamp
    return turn


def delete_message(session: Session, turn_index: int, side: str, *, now: datetime | None = None) -> None:
    """Clear one side of a turn and drop the turn once both sides are gone.

    ``side`` is ``"user"`` or ``"assistant"`` (``"ai"`` and ``"model"`` are accepted as aliases).
    Later turns shift down by one when a turn is removed.
    """
    attr = _SIDES.get(side.strip().lower())
    if attr is None:
        raise ValueError(f"Unknown message side: {side!r}")
    if turn_index < 0 or turn_index >= len(session.turns):
        raise IndexError(f"Invalid turn index: {turn_index}")

    turn = session.turns[turn_index]
    setattr(turn, attr, None)
    if turn.is_empty:
        del session.turns[turn_index]
    session.updated_at = now or utc_now()


def resolve_rerun_message(session: Session, turn_index: int, fallback: str | None = None) -> str | None:
    """Pick the user text to regenerate: the stored turn's text, else the supplied fallback."""
    text: str | None = None
    if 0 <= turn_index < len(session.turns):
        user = session.turns[turn_index].user
        text = user.text if user is not None else None
    if not text or not text.strip():
        text = fallback
    if not text or not text.strip():
        return None
    return text


def apply_rerun(
    session: Session,
    turn_index: int,
    user_text: str,
    reply_text: str,
    *,
    now: datetime | None = None,
) -> Turn:
    """Replace the reply of an existing turn, or append a new turn for an out-of-range index."""
    timestamp = now or utc_now()
    if not 0 <= turn_index < len(session.turns):
        return record_exchange(session, user_text, reply_text, now=timestamp)

    turn = session.turns[turn_index]
    if turn.user is None:
        turn.user = Message(role=USER_ROLE, text=user_text, timestamp=timestamp)
    turn.assistant = Message(role=MODEL_ROLE, text=reply_text, timestamp=timestamp)
    session.updated_at = timestamp
    return turn
