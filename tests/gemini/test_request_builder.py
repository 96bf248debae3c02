import unittest
from datetime import UTC, datetime, timedelta

from rulebook_chat.gemini.request_builder import build_request, build_title_request, resolve_instruction
from rulebook_chat.session import Session, record_exchange
from rulebook_chat.system_prompt import TITLE_INSTRUCTION

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def _session_with_turns(count: int) -> Session:
    session = Session()
    for i in range(count):
        record_exchange(session, f"question {i}", f"answer {i}", now=NOW)
    return session


class HistoryWindowTests(unittest.TestCase):
    def test_short_history_is_sent_in_full(self) -> None:
        session = _session_with_turns(2)

        request = build_request(session, "next", history_turn_limit=10, now=NOW)

        self.assertEqual(5, len(request.contents))
        self.assertEqual(["user", "model", "user", "model", "user"], [c.role for c in request.contents])
        self.assertEqual("question 0", request.contents[0].parts[0].text)
        self.assertEqual("next", request.contents[-1].parts[0].text)

    def test_only_most_recent_turns_are_kept(self) -> None:
        session = _session_with_turns(5)

        request = build_request(session, "next", history_turn_limit=2, now=NOW)

        self.assertEqual(5, len(request.contents))
        self.assertEqual("question 3", request.contents[0].parts[0].text)
        self.assertEqual("answer 4", request.contents[3].parts[0].text)

    def test_zero_limit_sends_only_new_message(self) -> None:
        session = _session_with_turns(3)

        request = build_request(session, "next", history_turn_limit=0, now=NOW)

        self.assertEqual(1, len(request.contents))

    def test_deleted_sides_are_skipped(self) -> None:
        session = _session_with_turns(1)
        session.turns[0].user = None

        request = build_request(session, "next", history_turn_limit=10, now=NOW)

        self.assertEqual(["model", "user"], [c.role for c in request.contents])


class DocumentReferenceTests(unittest.TestCase):
    def test_active_cache_replaces_file_part(self) -> None:
        session = Session(
            provider_cache_id="cachedContents/c1",
            cache_expires_at=NOW + timedelta(minutes=5),
            file_uri="https://files.test/f1",
        )

        request = build_request(session, "hi", history_turn_limit=10, now=NOW)

        body = request.to_dict()
        self.assertEqual("cachedContents/c1", body["cachedContent"])
        self.assertFalse(any(c.has_file_data for c in request.contents))

    def test_file_part_attached_without_cache(self) -> None:
        session = Session(file_uri="https://files.test/f1", mime_type="application/pdf")

        request = build_request(session, "hi", history_turn_limit=10, now=NOW)

        body = request.to_dict()
        self.assertNotIn("cachedContent", body)
        self.assertEqual(
            {"mimeType": "application/pdf", "fileUri": "https://files.test/f1"},
            body["contents"][-1]["parts"][1]["fileData"],
        )

    def test_expired_cache_falls_back_to_file_part(self) -> None:
        session = Session(
            provider_cache_id="cachedContents/c1",
            cache_expires_at=NOW - timedelta(seconds=1),
            file_uri="https://files.test/f1",
        )

        request = build_request(session, "hi", history_turn_limit=10, now=NOW)

        self.assertIsNone(request.cached_content)
        self.assertTrue(request.contents[-1].has_file_data)

    def test_cache_without_expiry_is_used(self) -> None:
        session = Session(provider_cache_id="cachedContents/c1", file_uri="https://files.test/f1")

        request = build_request(session, "hi", history_turn_limit=10, now=NOW)

        self.assertEqual("cachedContents/c1", request.cached_content)
        self.assertFalse(request.contents[-1].has_file_data)

    def test_no_document_sends_plain_text(self) -> None:
        request = build_request(Session(), "hi", history_turn_limit=10, now=NOW)

        self.assertEqual([{"text": "hi"}], request.to_dict()["contents"][0]["parts"])


class SystemInstructionTests(unittest.TestCase):
    def test_session_instruction_wins(self) -> None:
        session = Session(system_instruction="Session rules")

        request = build_request(
            session, "hi", history_turn_limit=10, default_system_instruction="Default", now=NOW
        )

        self.assertEqual({"parts": [{"text": "Session rules"}]}, request.to_dict()["systemInstruction"])

    def test_blank_session_instruction_uses_default(self) -> None:
        session = Session(system_instruction="   ")

        request = build_request(
            session, "hi", history_turn_limit=10, default_system_instruction="Default", now=NOW
        )

        self.assertEqual("Default", request.system_instruction.parts[0].text)

    def test_no_instruction_omits_field(self) -> None:
        request = build_request(Session(), "hi", history_turn_limit=10, now=NOW)

        self.assertNotIn("systemInstruction", request.to_dict())

    def test_resolve_instruction_returns_none_when_all_blank(self) -> None:
        self.assertIsNone(resolve_instruction("", " "))

    def test_title_request_uses_title_instruction(self) -> None:
        request = build_title_request("Seed: hello")

        body = request.to_dict()
        self.assertEqual(TITLE_INSTRUCTION, body["systemInstruction"]["parts"][0]["text"])
        self.assertEqual([{"role": "user", "parts": [{"text": "Seed: hello"}]}], body["contents"])


if __name__ == "__main__":
    unittest.main()
