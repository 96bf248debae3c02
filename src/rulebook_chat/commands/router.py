from __future__ import annotations

from collections.abc import Awaitable, Callable


class CommandRouter:
    def __init__(
        self,
        *,
        on_help: Callable[[], Awaitable[None]],
        on_upload: Callable[[str], Awaitable[None]],
        on_info: Callable[[], Awaitable[None]],
        on_history: Callable[[], Awaitable[None]],
        on_delete: Callable[[str], Awaitable[None]],
        on_rerun: Callable[[str], Awaitable[None]],
        on_unknown: Callable[[str], None],
    ) -> None:
        self._on_help = on_help
        self._on_upload = on_upload
        self._on_info = on_info
        self._on_history = on_history
        self._on_delete = on_delete
        self._on_rerun = on_rerun
        self._on_unknown = on_unknown

    async def try_handle(self, user_message: str) -> bool:
        trimmed = user_message.strip()
        if not trimmed.startswith("/"):
            return False

        command, _, argument = trimmed.partition(" ")
        argument = argument.strip()

        if command == "/help":
            await self._on_help()
            return True
        if command == "/upload":
            await self._on_upload(argument)
            return True
        if command == "/info":
            await self._on_info()
            return True
        if command == "/history":
            await self._on_history()
            return True
        if command == "/delete":
            await self._on_delete(argument)
            return True
        if command == "/rerun":
            await self._on_rerun(argument)
            return True

        self._on_unknown(trimmed)
        return True
