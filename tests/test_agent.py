import asyncio
import io
import shutil
import unittest
from contextlib import redirect_stdout
from pathlib import Path
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from uuid import uuid4

from rulebook_chat.agent import Agent
from rulebook_chat.gemini.request_builder import build_request
from rulebook_chat.commands.router import CommandRouter
from rulebook_chat.session import Session, record_exchange
from tests.services.fakes import FakeService

PROJECT_ROOT = Path(__file__).resolve().parents[1]


class CommandRouterTests(unittest.TestCase):
    def setUp(self) -> None:
        self.calls: list[tuple] = []

        async def record(name, *args):
            self.calls.append((name, *args))

        self.router = CommandRouter(
            on_help=lambda: record("help"),
            on_upload=lambda arg: record("upload", arg),
            on_info=lambda: record("info"),
            on_history=lambda: record("history"),
            on_delete=lambda arg: record("delete", arg),
            on_rerun=lambda arg: record("rerun", arg),
            on_unknown=lambda cmd: self.calls.append(("unknown", cmd)),
        )

    def test_plain_text_is_not_a_command(self) -> None:
        self.assertFalse(asyncio.run(self.router.try_handle("what is edge?")))
        self.assertEqual([], self.calls)

    def test_routes_commands_with_arguments(self) -> None:
        asyncio.run(self.router.try_handle("/upload  books/core.pdf "))
        asyncio.run(self.router.try_handle("/delete 2 ai"))
        asyncio.run(self.router.try_handle("/history"))

        self.assertEqual(
            [("upload", "books/core.pdf"), ("delete", "2 ai"), ("history",)],
            self.calls,
        )

    def test_unknown_command(self) -> None:
        self.assertTrue(asyncio.run(self.router.try_handle("/teleport now")))
        self.assertEqual([("unknown", "/teleport now")], self.calls)


class AgentTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp_dir = PROJECT_ROOT / ".test-artifacts" / f"agent-{uuid4().hex}"
        self._tmp_dir.mkdir(parents=True, exist_ok=True)

    def tearDown(self) -> None:
        shutil.rmtree(self._tmp_dir, ignore_errors=True)

    def _run(self, agent: Agent, *messages: str) -> str:
        out = io.StringIO()
        with redirect_stdout(out):
            for message in messages:
                asyncio.run(agent.run(message))
        return out.getvalue()

    def test_streamed_reply_is_recorded_and_titled(self) -> None:
        service = FakeService(replies=["roll the dice"])
        agent = Agent(service, Session())

        output = self._run(agent, "how does initiative work?")

        self.assertIn("roll the dice", output)
        self.assertEqual(1, len(agent.session.turns))
        self.assertEqual("how does initiative work?", agent.session.turns[0].user.text)
        self.assertEqual("roll the dice ", agent.session.turns[0].assistant.text)
        self.assertEqual("Ghost Run", agent.session.title)

    def test_non_streaming_reply(self) -> None:
        service = FakeService(replies=["plain answer"], title=None)
        agent = Agent(service, Session(), stream_responses=False)

        output = self._run(agent, "question")

        self.assertIn("ai> plain answer", output)
        self.assertEqual("plain answer", agent.session.turns[0].assistant.text)
        self.assertEqual("New chat", agent.session.title)

    def test_echoed_cache_id_resets_expiry_when_it_changes(self) -> None:
        expires = datetime.now(UTC) + timedelta(hours=1)
        session = Session(title="Run", provider_cache_id="cachedContents/A", cache_expires_at=expires)
        service = FakeService(replies=["one", "two"])
        agent = Agent(service, session, stream_responses=False)

        service.echo_cache_id = "cachedContents/A"
        self._run(agent, "first")
        self.assertEqual(expires, session.cache_expires_at)

        service.echo_cache_id = "cachedContents/B"
        self._run(agent, "second")
        self.assertEqual("cachedContents/B", session.provider_cache_id)
        self.assertIsNone(session.cache_expires_at)

    def test_titled_session_is_not_renamed(self) -> None:
        service = FakeService(replies=["a"])
        agent = Agent(service, Session(title="Existing"))

        self._run(agent, "question")

        self.assertEqual("Existing", agent.session.title)
        self.assertEqual([], service.title_prompts)

    def test_upload_command_applies_references(self) -> None:
        document = self._tmp_dir / "core.pdf"
        document.write_bytes(b"%PDF core")
        service = FakeService()
        agent = Agent(service, Session())

        output = self._run(agent, f"/upload {document}")

        self.assertIn("files/fresh", output)
        session = agent.session
        self.assertEqual("files/fresh", session.provider_file_id)
        self.assertEqual("cachedContents/fresh", session.provider_cache_id)
        self.assertEqual("core.pdf", session.file_name)
        self.assertEqual(str(document.resolve()), session.document_source)
        self.assertEqual(b"%PDF core", service.uploads[0][1])
        self.assertEqual("Ghost Run", session.title)

    def test_upload_without_cache_replaces_previous_cache(self) -> None:
        document = self._tmp_dir / "new.pdf"
        document.write_bytes(b"%PDF new")
        service = FakeService()
        service.upload_result = replace(
            service.upload_result,
            file_uri="https://files.test/NEW",
            cache_id=None,
            cache_expires_at=None,
        )
        session = Session(
            title="Run",
            provider_cache_id="cachedContents/OLD",
            cache_expires_at=datetime.now(UTC) + timedelta(hours=1),
            file_uri="https://files.test/OLD",
        )
        agent = Agent(service, session)

        self._run(agent, f"/upload {document}")

        self.assertIsNone(session.provider_cache_id)
        self.assertIsNone(session.cache_expires_at)
        body = build_request(session, "next", history_turn_limit=10).to_dict()
        self.assertNotIn("cachedContent", body)
        self.assertEqual("https://files.test/NEW", body["contents"][-1]["parts"][1]["fileData"]["fileUri"])

    def test_upload_command_reports_missing_file(self) -> None:
        agent = Agent(FakeService(), Session())

        output = self._run(agent, f"/upload {self._tmp_dir / 'nope.pdf'}")

        self.assertIn("File not found", output)
        self.assertIsNone(agent.session.provider_file_id)

    def test_delete_and_rerun(self) -> None:
        session = Session(title="Run")
        record_exchange(session, "Q0", "A0")
        service = FakeService(replies=["fresh answer"])
        agent = Agent(service, session, stream_responses=False)

        self._run(agent, "/delete 0 ai", "/rerun 0")

        self.assertEqual(["Q0"], service.generate_calls)
        self.assertEqual("fresh answer", session.turns[0].assistant.text)

    def test_delete_reports_bad_index(self) -> None:
        agent = Agent(FakeService(), Session())

        output = self._run(agent, "/delete 3 user", "/delete x")

        self.assertIn("Invalid turn index: 3", output)
        self.assertIn("Usage: /delete", output)

    def test_rerun_without_user_text(self) -> None:
        session = Session()
        record_exchange(session, "Q0", "A0")
        session.turns[0].user = None
        service = FakeService()
        agent = Agent(service, session)

        output = self._run(agent, "/rerun 0")

        self.assertIn("User message required", output)
        self.assertEqual([], service.generate_calls)

    def test_info_and_history(self) -> None:
        session = Session(title="Run", provider_file_id="files/a", file_name="core.pdf")
        record_exchange(session, "Q0", "A0")
        agent = Agent(FakeService(), session)

        output = self._run(agent, "/info", "/history", "/bogus")

        self.assertIn("core.pdf", output)
        self.assertIn("[0] you: Q0", output)
        self.assertIn("Unknown command: /bogus", output)


if __name__ == "__main__":
    unittest.main()
