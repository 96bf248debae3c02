from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_MODEL = "gemini-2.5-flash-lite"
DEFAULT_BASE_URI = "https://generativelanguage.googleapis.com"


@dataclass
class RuntimeEnv:
    api_key: str
    api_key_env_var: str


@dataclass
class AppConfig:
    provider_name: str = "gemini"
    model: str = DEFAULT_MODEL
    title_model: str | None = None
    base_uri: str = DEFAULT_BASE_URI
    use_caching: bool = True
    retry_count: int = 3
    retry_backoff_seconds: float = 2.0
    request_timeout_seconds: float = 120.0
    cache_ttl_seconds: int = 3600
    system_instruction: str | None = None
    default_system_instruction_path: str | None = "systemInstruction.txt"
    history_turn_limit: int = 10
    stream_responses: bool = True
    file_processing_timeout_seconds: float = 60.0
    file_processing_poll_seconds: float = 2.0
    log_level: str = "INFO"
    log_consumers: list | None = None

    @property
    def effective_title_model(self) -> str:
        return self.title_model or self.model


def load_json_config() -> dict:
    config_path = Path.cwd() / "config.json"
    if config_path.exists():
        with open(config_path) as f:
            return json.load(f)
    return {}


def _to_bool(value: object, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
    return bool(value)


def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_app_config(config: dict) -> AppConfig:
    return AppConfig(
        provider_name=str(config.get("Provider", "gemini")).strip().lower(),
        model=str(config.get("Model", DEFAULT_MODEL)).strip(),
        title_model=_optional_str(config.get("TitleModel")),
        base_uri=str(config.get("BaseUri", DEFAULT_BASE_URI)).rstrip("/"),
        use_caching=_to_bool(config.get("UseCaching", True), default=True),
        retry_count=max(0, int(config.get("RetryCount", 3))),
        retry_backoff_seconds=float(config.get("RetryBackoffSeconds", 2.0)),
        request_timeout_seconds=float(config.get("RequestTimeoutSeconds", 120.0)),
        cache_ttl_seconds=int(config.get("CacheTtlSeconds", 3600)),
        system_instruction=_optional_str(config.get("SystemInstruction")),
        default_system_instruction_path=_optional_str(
            config.get("DefaultSystemInstructionPath", "systemInstruction.txt")
        ),
        history_turn_limit=max(0, int(config.get("HistoryTurnLimit", 10))),
        stream_responses=_to_bool(config.get("StreamResponses", True), default=True),
        file_processing_timeout_seconds=float(config.get("FileProcessingTimeoutSeconds", 60)),
        file_processing_poll_seconds=float(config.get("FileProcessingPollSeconds", 2)),
        log_level=config.get("LogLevel", "INFO"),
        log_consumers=config.get("LogConsumers"),
    )


def resolve_runtime_env() -> RuntimeEnv:
    return RuntimeEnv(
        api_key=os.environ.get("GEMINI_API_KEY", ""),
        api_key_env_var="GEMINI_API_KEY",
    )
