from __future__ import annotations

import asyncio
import mimetypes
from pathlib import Path
from typing import BinaryIO

from loguru import logger

from rulebook_chat.commands.router import CommandRouter
from rulebook_chat.errors import GeminiError
from rulebook_chat.provider import GenerativeAiService
from rulebook_chat.services.rehydration import DocumentOpener, refresh_if_expired
from rulebook_chat.services.session_controller import SessionController
from rulebook_chat.services.titles import needs_title, suggest_title
from rulebook_chat.session import (
    Session,
    apply_rerun,
    apply_upload,
    delete_message,
    record_exchange,
    resolve_rerun_message,
)
from rulebook_chat.session.models import DEFAULT_MIME_TYPE, utc_now


async def open_local_document(source: str) -> BinaryIO | None:
    path = Path(source)
    if not path.is_file():
        return None
    return open(path, "rb")


class Agent:
    _LINE_PREFIX = "ai> "

    def __init__(
        self,
        service: GenerativeAiService,
        session: Session,
        *,
        stream_responses: bool = True,
        open_document: DocumentOpener = open_local_document,
    ):
        self._service = service
        self._session = session
        self._stream_responses = stream_responses
        self._open_document = open_document
        self._run_lock = asyncio.Lock()

        self._session_controller = SessionController(line_prefix=self._LINE_PREFIX)
        self._command_router = CommandRouter(
            on_help=self._on_help,
            on_upload=self._handle_upload_command,
            on_info=self._handle_info_command,
            on_history=self._handle_history_command,
            on_delete=self._handle_delete_command,
            on_rerun=self._handle_rerun_command,
            on_unknown=self._on_unknown_command,
        )

    @property
    def session(self) -> Session:
        return self._session

    async def run(self, user_message: str) -> None:
        async with self._run_lock:
            if await self._command_router.try_handle(user_message):
                return
            await self._ask(user_message)

    async def _ask(self, user_message: str) -> None:
        await refresh_if_expired(self._service, self._session, self._open_document)
        reply = await self._generate(user_message)
        record_exchange(self._session, user_message, reply)

        if needs_title(self._session) and len(self._session.turns) == 1:
            await self._maybe_set_title(user_message)

    async def _generate(self, user_message: str) -> str:
        if not self._stream_responses:
            result = await self._service.generate(self._session, user_message)
            print(f"{self._LINE_PREFIX}{result.text}")
            if result.cache_id and result.cache_id != self._session.provider_cache_id:
                self._session.provider_cache_id = result.cache_id
                self._session.cache_expires_at = None
            return result.text

        fragments: list[str] = []
        print(self._LINE_PREFIX, end="", flush=True)
        async for fragment in self._service.generate_streaming(self._session, user_message):
            fragments.append(fragment)
            print(fragment, end="", flush=True)
        print()
        if not fragments:
            logger.warning(f"Empty response for session {self._session.id}")
        return "".join(fragments)

    async def _maybe_set_title(self, seed_text: str) -> None:
        title = await suggest_title(self._service, self._session, seed_text)
        if title:
            self._session.title = title
            print(f"{self._LINE_PREFIX}[Session titled: {title}]")

    async def _on_help(self) -> None:
        print(f"{self._LINE_PREFIX}Commands:")
        print(f"{self._LINE_PREFIX}  /upload <path>            upload a rulebook PDF for this session")
        print(f"{self._LINE_PREFIX}  /info                     show file and cache references")
        print(f"{self._LINE_PREFIX}  /history                  list turns with their indices")
        print(f"{self._LINE_PREFIX}  /delete <index> <user|ai> delete one side of a turn")
        print(f"{self._LINE_PREFIX}  /rerun <index>            regenerate the reply for a turn")
        print(f"{self._LINE_PREFIX}  /help                     show this help")

    async def _handle_upload_command(self, argument: str) -> None:
        if not argument:
            print(f"{self._LINE_PREFIX}Usage: /upload <path>")
            return
        path = Path(argument).expanduser()
        if not path.is_file():
            print(f"{self._LINE_PREFIX}File not found: {path}")
            return

        mime_type = mimetypes.guess_type(path.name)[0] or DEFAULT_MIME_TYPE
        try:
            with open(path, "rb") as document:
                upload = await self._service.upload_document(
                    self._session.id,
                    document,
                    path.name,
                    self._session.system_instruction,
                    mime_type=mime_type,
                )
        except GeminiError as ex:
            print(f"{self._LINE_PREFIX}Upload failed: {ex}")
            return

        self._session.file_name = path.name
        self._session.mime_type = mime_type
        self._session.document_source = str(path.resolve())
        apply_upload(self._session, upload, replace_cache=True)
        cache_note = f", cache {upload.cache_id}" if upload.cache_id else ", no cache"
        print(f"{self._LINE_PREFIX}Uploaded {upload.display_name} as {upload.provider_id}{cache_note}")

        if needs_title(self._session):
            await self._maybe_set_title(path.name)

    async def _handle_info_command(self) -> None:
        for line in self._session_controller.format_info_lines(self._session, now=utc_now()):
            print(line)

    async def _handle_history_command(self) -> None:
        for line in self._session_controller.format_history_lines(self._session):
            print(line)

    async def _handle_delete_command(self, argument: str) -> None:
        parts = argument.split()
        if len(parts) != 2 or not parts[0].lstrip("-").isdigit():
            print(f"{self._LINE_PREFIX}Usage: /delete <index> <user|ai>")
            return
        try:
            delete_message(self._session, int(parts[0]), parts[1])
        except (IndexError, ValueError) as ex:
            print(f"{self._LINE_PREFIX}{ex}")
            return
        await self._handle_history_command()

    async def _handle_rerun_command(self, argument: str) -> None:
        if not argument.lstrip("-").isdigit():
            print(f"{self._LINE_PREFIX}Usage: /rerun <index>")
            return
        turn_index = int(argument)
        user_message = resolve_rerun_message(self._session, turn_index)
        if user_message is None:
            print(f"{self._LINE_PREFIX}User message required to re-run")
            return

        await refresh_if_expired(self._service, self._session, self._open_document)
        reply = await self._generate(user_message)
        apply_rerun(self._session, turn_index, user_message, reply)

    def _on_unknown_command(self, command: str) -> None:
        print(f"{self._LINE_PREFIX}Unknown command: {command}. Type /help for commands.")
