import asyncio
import unittest

from rulebook_chat.services.titles import build_title_prompt, clean_title, needs_title, suggest_title
from rulebook_chat.session import Session
from tests.services.fakes import FakeService


class TitleTests(unittest.TestCase):
    def test_needs_title_for_default_or_blank(self) -> None:
        self.assertTrue(needs_title(Session()))
        self.assertTrue(needs_title(Session(title="  ")))
        self.assertFalse(needs_title(Session(title="Ghost Run")))

    def test_prompt_includes_seed(self) -> None:
        self.assertIn("Seed: how do I hack", build_title_prompt("how do I hack"))

    def test_clean_title_strips_quotes(self) -> None:
        self.assertEqual("Neon Ghost", clean_title(' "Neon Ghost" '))
        self.assertIsNone(clean_title('""'))
        self.assertIsNone(clean_title(None))

    def test_clean_title_truncates(self) -> None:
        title = clean_title("x" * 100)

        self.assertEqual(61, len(title))
        self.assertTrue(title.endswith("…"))

    def test_suggest_title_uses_service(self) -> None:
        service = FakeService(title="'Chrome Serpent'")

        title = asyncio.run(suggest_title(service, Session(), "matrix rules"))

        self.assertEqual("Chrome Serpent", title)
        self.assertIn("matrix rules", service.title_prompts[0])

    def test_suggest_title_skips_blank_seed(self) -> None:
        service = FakeService()

        self.assertIsNone(asyncio.run(suggest_title(service, Session(), " ")))
        self.assertEqual([], service.title_prompts)

    def test_suggest_title_none_when_service_fails(self) -> None:
        self.assertIsNone(asyncio.run(suggest_title(FakeService(title=None), Session(), "seed")))


if __name__ == "__main__":
    unittest.main()
