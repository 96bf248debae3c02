from __future__ import annotations

from dataclasses import dataclass

from rulebook_chat.agent import Agent
from rulebook_chat.app_config import AppConfig, RuntimeEnv
from rulebook_chat.logging_config import setup_logging
from rulebook_chat.provider import GenerativeAiService, create_service
from rulebook_chat.session import Session
from rulebook_chat.system_prompt import resolve_system_instruction


@dataclass
class AppRuntime:
    agent: Agent
    service: GenerativeAiService
    session: Session
    log_descriptions: list[str]


def bootstrap_runtime(app: AppConfig, env: RuntimeEnv) -> AppRuntime:
    log_descriptions = setup_logging(level=app.log_level, consumers=app.log_consumers)

    default_instruction = resolve_system_instruction(
        app.system_instruction,
        app.default_system_instruction_path,
    )
    service = create_service(
        app.provider_name,
        app,
        env,
        default_system_instruction=default_instruction,
    )

    session = Session()
    agent = Agent(service, session, stream_responses=app.stream_responses)

    return AppRuntime(
        agent=agent,
        service=service,
        session=session,
        log_descriptions=log_descriptions,
    )
