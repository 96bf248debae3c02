import re
import sys
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from loguru import logger

_API_KEY_PATTERN = re.compile(r"([?&]key=)[^&\s]+")

_CONSOLE_FORMAT = "<level>{level:<8}</level> | <level>{message}</level>"
_FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | {name}:{function}:{line} - {message}"


def redact_api_keys(message: str) -> str:
    return _API_KEY_PATTERN.sub(r"\1***", message)


def _redacting_patcher(record: dict) -> None:
    record["message"] = redact_api_keys(record["message"])


@runtime_checkable
class LogConsumer(Protocol):
    def register(self, level: str) -> None: ...
    def describe(self, level: str) -> str: ...


class ConsoleLogConsumer:
    """Level and message only, unless ``verbose``."""

    def __init__(self, verbose: bool = False):
        self._verbose = verbose

    def register(self, level: str) -> None:
        logger.add(
            sys.stderr,
            level=level,
            format=_FILE_FORMAT if self._verbose else _CONSOLE_FORMAT,
        )

    def describe(self, level: str) -> str:
        return f"console (stderr, {level})"


class FileLogConsumer:
    def __init__(
        self,
        path: str = "rulebook_chat.log",
        rotation: str = "10 MB",
        retention: int = 3,
        serialize: bool = False,
    ):
        self._path = Path(path)
        self._rotation = rotation
        self._retention = retention
        self._serialize = serialize

    def register(self, level: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(self._path),
            level=level,
            format=_FILE_FORMAT,
            rotation=self._rotation,
            retention=self._retention,
            serialize=self._serialize,
            diagnose=False,
        )

    def describe(self, level: str) -> str:
        kind = "jsonl" if self._serialize else "text"
        return f"file ({self._path}, {kind}, {level})"


_CONSUMER_TYPES: dict[str, type] = {
    "console": ConsoleLogConsumer,
    "file": FileLogConsumer,
}

# Console shows warnings only by default.
_DEFAULT_CONSUMERS: list[dict[str, Any]] = [
    {"type": "console", "level": "WARNING"},
    {"type": "file"},
]


def _build_consumer(entry: dict[str, Any]) -> LogConsumer | None:
    consumer_type = str(entry.get("type", "")).strip().lower()
    cls = _CONSUMER_TYPES.get(consumer_type)
    if cls is None:
        logger.warning(f"Ignoring log consumer with unknown type {consumer_type!r}")
        return None
    options = {key: value for key, value in entry.items() if key not in ("type", "level")}
    try:
        return cls(**options)
    except TypeError as ex:
        logger.warning(f"Ignoring {consumer_type} log consumer with bad options: {ex}")
        return None


def setup_logging(
    level: str = "INFO",
    consumers: list[dict[str, Any]] | None = None,
) -> list[str]:
    """Replace loguru's sinks with the configured consumers.

    Every record passes through API key redaction first. Each consumer may
    override ``level``; the rest of its keys are constructor options.
    Returns one human-readable description per registered consumer.
    """
    logger.remove()
    logger.configure(patcher=_redacting_patcher)

    registered: list[str] = []
    for entry in _DEFAULT_CONSUMERS if consumers is None else consumers:
        consumer = _build_consumer(entry)
        if consumer is None:
            continue
        consumer_level = str(entry.get("level", level)).upper()
        consumer.register(consumer_level)
        registered.append(consumer.describe(consumer_level))
    return registered
