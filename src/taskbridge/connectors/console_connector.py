# src/taskbridge/connectors/console_connector.py

from __future__ import annotations

import asyncio
import logging
import sys
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..core.state import AppState
from ..team.user_models import Platform

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _rewrite_prev_line(line: str) -> None:
    """
    Replace the last terminal line with `line`.
    Best-effort: if not a TTY, just print a new line.
    """
    try:
        if sys.stdout.isatty():
            sys.stdout.write("\033[1A\033[2K\r")
            sys.stdout.write(line + "\n")
            sys.stdout.flush()
        else:
            print(line)
    except Exception:
        print(line)


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}")


def run_console_loop(state: AppState) -> None:
    """
    Local REPL front-end.

    The console acts as one configured platform account (console_platform /
    console_account_id / console_username), so it goes through the same
    identity resolution as a real chat user.
    """
    settings = state.settings
    platform = Platform(getattr(settings, "console_platform", "telegram"))
    account_id = str(getattr(settings, "console_account_id", "console"))
    username = str(getattr(settings, "console_username", "console"))

    logger.info("Console connector started (as %s account %s).", platform.value, account_id)
    _print_ts(f"[CONSOLE] Acting as {username} ({platform.value}). Use /help for commands, /exit to quit.\n")

    loop = asyncio.new_event_loop()
    try:
        while True:
            try:
                user_input = input(">>> You: ").strip()
                _rewrite_prev_line(f"[{_ts_local()}] >>> You: {user_input}")
            except EOFError:
                logger.info("Console EOF received, exiting.")
                break
            except KeyboardInterrupt:
                logger.info("Console KeyboardInterrupt, exiting.")
                print()
                break

            if not user_input:
                continue

            if user_input.lower() in ("/exit", "/quit"):
                logger.info("Console exit command received.")
                break

            try:
                reply = loop.run_until_complete(
                    command_registry.handle(
                        state,
                        user_input,
                        platform=platform,
                        account_id=account_id,
                        display_name=username,
                    )
                )
            except Exception:
                logger.exception("Command handler crashed.")
                reply = "Internal error while handling a command."

            if reply is None:
                reply = "Only commands are understood here. Use /help to list them."
            print(f"[{_ts_local()}] {reply}\n")
    finally:
        loop.close()

    logger.info("Console connector finished.")
