import asyncio
import sys

from dotenv import load_dotenv
from loguru import logger

from rulebook_chat.app_config import load_json_config, parse_app_config, resolve_runtime_env
from rulebook_chat.bootstrap import bootstrap_runtime


async def main() -> None:
    load_dotenv()

    app = parse_app_config(load_json_config())
    env = resolve_runtime_env()
    if not env.api_key:
        logger.error(f"{env.api_key_env_var} environment variable is required.")
        sys.exit(1)

    runtime = bootstrap_runtime(app, env)

    print("rulebook-chat (type 'exit' to quit, '/help' for commands)")
    print(f"Model: {app.model}")
    print(f"Caching: {'enabled' if app.use_caching else 'disabled'} (ttl: {app.cache_ttl_seconds}s)")
    print(f"Session: {runtime.session.id}")
    if runtime.log_descriptions:
        print(f"Logging: {', '.join(runtime.log_descriptions)}")
    print()

    try:
        while True:
            try:
                user_input = input("you> ")
            except (EOFError, KeyboardInterrupt):
                break

            trimmed = user_input.strip()

            if trimmed in ("exit", "quit"):
                break

            if not trimmed:
                continue

            try:
                await runtime.agent.run(trimmed)
                print()
            except Exception as ex:
                logger.error(f"Unhandled error: {ex}")
    finally:
        await runtime.service.aclose()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
