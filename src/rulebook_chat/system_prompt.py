from pathlib import Path

from loguru import logger

TITLE_INSTRUCTION = (
    "You name runs like a veteran Shadowrun fixer. "
    "Return only the codename, three words or fewer."
)

_FALLBACK_INSTRUCTION = """\
You are a rules assistant for the tabletop rulebook attached to this conversation. \
Answer questions using the rulebook as your primary source.

When a rule is ambiguous, say so and describe the most common reading. \
Cite the section or page when the rulebook makes it possible.

Be concise. Prefer short paragraphs and lists over long prose."""


def resolve_system_instruction(inline: str | None, path: str | None) -> str:
    """Pick the global default instruction: inline config, then the instruction file, then the built-in text."""
    if inline and inline.strip():
        return inline.strip()

    if path:
        instruction_path = Path(path)
        if not instruction_path.is_absolute():
            instruction_path = Path.cwd() / instruction_path
        if instruction_path.is_file():
            text = instruction_path.read_text(encoding="utf-8").strip()
            if text:
                logger.debug(f"Loaded system instruction from {instruction_path}")
                return text
        else:
            logger.debug(f"System instruction file not found: {instruction_path}")

    return _FALLBACK_INSTRUCTION
