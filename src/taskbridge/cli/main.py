# src/taskbridge/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, then starts front-ends:
- console REPL in the main thread (optional),
- Telegram poller and deadline reminders in a background thread (optional).
"""

from __future__ import annotations

import logging
import signal
import threading

from ..cli.bootstrap import create_initial_state
from ..config import get_settings
from ..connectors.background import start_in_background
from ..connectors.console_connector import run_console_loop
from ..core.state import AppState
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


def _shutdown(state: AppState) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    # Stores use short-lived sqlite connections per call; no explicit close required.
    try:
        if not state.replicator.flush(timeout=10.0):
            logger.warning("Mirror replication did not drain before shutdown.")
        state.replicator.close(timeout=5.0)
    except Exception:
        logger.exception("Failed to close mirror replicator.")


def main() -> None:
    settings = get_settings()

    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)

    log_dir = getattr(settings, "data_dir", ".local/taskbridge")
    setup_logging(log_dir=log_dir, console_level=console_level)

    logger.info("Starting %s...", getattr(settings, "app_name", "taskbridge"))

    # IMPORTANT: reuse same settings object
    state = create_initial_state(settings=settings)

    runner = start_in_background(state)

    stop_main = threading.Event()

    def _handle_signal(signum, _frame) -> None:
        logger.info("Signal %s received, shutting down...", signum)
        stop_main.set()

    try:
        signal.signal(signal.SIGINT, _handle_signal)
        signal.signal(signal.SIGTERM, _handle_signal)
    except (ValueError, OSError, AttributeError):
        # not in the main thread, or SIGTERM unsupported on this platform
        logger.debug("Signal handlers not installed.", exc_info=True)

    try:
        if settings.console_enabled:
            run_console_loop(state)
            stop_main.set()
        else:
            logger.info("Console disabled. Running background services only. Press Ctrl+C to stop.")
            stop_main.wait()

    finally:
        if runner is not None:
            runner.stop()
            runner.join(timeout=10.0)

        _shutdown(state)
        logger.info("Bye.")


if __name__ == "__main__":
    main()
