# src/ai_canvas/logging_setup.py

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

APP_LOGGER_PREFIX = "ai_canvas"
LOG_FILE_NAME = "ai-canvas.log"

# Long batch runs log one line per prompt; keep the file bounded.
LOG_FILE_MAX_BYTES = 5 * 1024 * 1024
LOG_FILE_BACKUPS = 3

# SDK/HTTP loggers that would otherwise print every request.
THIRD_PARTY_LOGGERS = ("httpx", "httpcore", "openai", "google_genai", "google.auth", "PIL", "urllib3")


class _AppOnlyConsoleFilter(logging.Filter):
    """
    The REPL shares the terminal with the log stream, so the console only shows
    our own records; anything else (SDKs, py.warnings) must be ERROR+ to appear.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if record.name == APP_LOGGER_PREFIX or record.name.startswith(APP_LOGGER_PREFIX + "."):
            return True
        return record.levelno >= logging.ERROR


def _formatter() -> logging.Formatter:
    return logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)-7s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def setup_logging(
    *,
    log_dir: str | Path = ".local/ai-canvas",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
) -> Path:
    """
    Route all logging to stderr (filtered) and to a rotating file in `log_dir`.

    Safe to call again: existing root handlers are replaced. Returns the log file path.
    """
    log_file = Path(log_dir) / LOG_FILE_NAME
    log_file.parent.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.setLevel(min(console_level, file_level))

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(_formatter())
    console.addFilter(_AppOnlyConsoleFilter())
    root.addHandler(console)

    to_file = RotatingFileHandler(
        log_file,
        maxBytes=LOG_FILE_MAX_BYTES,
        backupCount=LOG_FILE_BACKUPS,
        encoding="utf-8",
    )
    to_file.setLevel(file_level)
    to_file.setFormatter(_formatter())
    root.addHandler(to_file)

    logging.captureWarnings(True)
    for name in THIRD_PARTY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return log_file
