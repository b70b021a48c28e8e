# src/taskbridge/connectors/background.py

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
from dataclasses import dataclass

from ..core.state import AppState
from ..tasks.reminder_scheduler import run_deadline_reminders
from .telegram_client import TelegramBotAPI
from .telegram_connector import run_telegram_bot

logger = logging.getLogger(__name__)


async def _run_services(state: AppState, stop_event: asyncio.Event) -> None:
    """
    Async services sharing one event loop:

    - Telegram long-polling front-end (optional)
    - deadline reminder loop (optional)

    Shutdown model:
    - main thread sets stop_event via loop.call_soon_threadsafe(stop_event.set)
    """
    settings = state.settings
    services: list[asyncio.Task[None]] = []

    if getattr(settings, "telegram_enabled", False) and getattr(settings, "telegram_token", None):
        api = TelegramBotAPI(settings.telegram_token, api_base=settings.telegram_api_base)
        services.append(asyncio.create_task(run_telegram_bot(state, api, stop_event)))
    else:
        logger.info("Telegram connector disabled.")

    if getattr(settings, "deadline_reminders", False):
        services.append(
            asyncio.create_task(
                run_deadline_reminders(
                    state.task_store,
                    state.dispatcher,
                    state.notifications,
                    reminder_hours=settings.reminder_hours,
                    interval_seconds=settings.reminder_interval_seconds,
                )
            )
        )
    else:
        logger.info("Deadline reminders disabled.")

    try:
        await stop_event.wait()
    finally:
        for task in services:
            task.cancel()
        for task in services:
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await task
        logger.info("Background services stopped.")


@dataclass
class BackgroundRunner:
    thread: threading.Thread
    loop: asyncio.AbstractEventLoop
    stop_event: asyncio.Event

    def stop(self) -> None:
        try:
            self.loop.call_soon_threadsafe(self.stop_event.set)
        except Exception:
            logger.debug("Failed to signal background stop.", exc_info=True)

    def join(self, timeout: float | None = None) -> None:
        self.thread.join(timeout=timeout)


def start_in_background(state: AppState) -> BackgroundRunner | None:
    """
    Start async services in a background thread (so the console REPL can run in parallel).

    The console REPL is blocking (input()); the services want their own event loop.
    """
    ready = threading.Event()
    holder: dict[str, object] = {}

    def runner() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        stop_event = asyncio.Event()

        holder["loop"] = loop
        holder["stop_event"] = stop_event
        ready.set()

        try:
            loop.run_until_complete(_run_services(state, stop_event))
        except Exception:
            logger.exception("Background services crashed.")
        finally:
            with contextlib.suppress(Exception):
                loop.close()

    t = threading.Thread(target=runner, name="taskbridge-services", daemon=True)
    t.start()

    ready.wait(timeout=5.0)
    loop = holder.get("loop")
    stop_event = holder.get("stop_event")

    if not isinstance(loop, asyncio.AbstractEventLoop) or not isinstance(stop_event, asyncio.Event):
        logger.error("Background thread did not initialize properly.")
        return None

    logger.info("Background services thread started.")
    return BackgroundRunner(thread=t, loop=loop, stop_event=stop_event)
