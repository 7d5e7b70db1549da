# src/ai_canvas/cli/console.py

from __future__ import annotations

import logging
from datetime import datetime

from ..core.state import AppState
from .commands import registry as command_registry

logger = logging.getLogger(__name__)

EXIT_COMMANDS = frozenset({"/exit", "/quit", "/q"})
PROMPT = "canvas> "


def _stamp() -> str:
    return datetime.now().strftime("%H:%M:%S")


def say(text: str) -> None:
    """Print one console reply, prefixed with the local time."""
    print(f"[{_stamp()}] {text}")


def handle_line(state: AppState, line: str) -> str | None:
    """
    Route one console line.

    Slash commands go to the registry; plain text is a Gemini generation request.
    Returns None for lines that need no reply.
    """
    text = line.strip()
    if not text:
        return None
    if not text.startswith("/"):
        text = f"/gen {text}"
    return command_registry.handle(state, text, emit=say)


def _read_line() -> str | None:
    """Next input line, or None when the user closed stdin or pressed Ctrl+C at the prompt."""
    try:
        return input(PROMPT)
    except (EOFError, KeyboardInterrupt):
        print()
        return None


def run_console_loop(state: AppState) -> None:
    app_name = getattr(state.settings, "app_name", "ai-canvas")
    say(
        f"{app_name}: {state.images.count_images()} image(s) in history. "
        "Type a prompt to generate with Gemini, /help for commands, /exit to quit."
    )

    while (line := _read_line()) is not None:
        line = line.strip()
        if line.lower() in EXIT_COMMANDS:
            break
        try:
            reply = handle_line(state, line)
        except Exception:
            # Unexpected handler errors are logged; the REPL keeps running.
            logger.exception("Command failed: %s", line.split(maxsplit=1)[0])
            reply = "Internal error while handling that command (details in the log file)."
        if reply:
            say(reply + "\n")

    logger.info("Console closed.")
