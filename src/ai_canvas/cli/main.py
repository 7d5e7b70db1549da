# src/ai_canvas/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, then runs the console REPL in the main thread.
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..logging_setup import setup_logging
from .bootstrap import create_initial_state
from .console import run_console_loop

logger = logging.getLogger(__name__)


def _shutdown(state) -> None:
    # Stores use short-lived sqlite connections per call; close() is a hook only.
    for store in (state.images, state.batches):
        store.close()

    run = state.batches.latest_unfinished_run()
    if run is not None:
        logger.info("Batch #%s is unfinished (%s); resume it with /batch resume.", run.id, run.status.value)


def main() -> None:
    settings = get_settings()

    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)
    log_file = setup_logging(log_dir=settings.data_dir, console_level=console_level)

    logger.info("Starting %s (log file: %s)", settings.app_name, log_file)

    state = create_initial_state(settings=settings)

    run = state.batches.latest_unfinished_run()
    if run is not None:
        logger.info("Found unfinished batch #%s (%s).", run.id, state.batches.progress(run.id))

    try:
        run_console_loop(state)
    finally:
        _shutdown(state)
        logger.info("Bye.")


if __name__ == "__main__":
    main()
