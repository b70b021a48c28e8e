# src/taskbridge/connectors/telegram_connector.py

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any

from ..cli.commands import registry as command_registry
from ..core.state import AppState
from ..team.user_models import Platform
from .telegram_client import TelegramBotAPI

logger = logging.getLogger(__name__)

CHECKIN_QUESTION = (
    "How are you doing? Tell me about your progress on your tasks, "
    "or anything that is bothering you."
)
CHECKIN_THANKS = "Thanks for the answer! Your feedback has been saved. 👍"
CHECKIN_TIMEOUT = "No answer received, check-in cancelled. Use /checkin to try again."


class ReplyWaiter:
    """
    Short-lived "next message from this chat" subscriptions.

    A flow calls wait_for(chat_id, timeout); the polling loop offers every
    non-command message through offer(). A subscription ends on the first
    reply, on timeout or on cancellation, and never outlives its flow.
    """

    def __init__(self) -> None:
        self._pending: dict[str, asyncio.Future[str]] = {}

    def is_waiting(self, chat_id: str) -> bool:
        fut = self._pending.get(str(chat_id))
        return fut is not None and not fut.done()

    def offer(self, chat_id: str, text: str) -> bool:
        """Hand a message to a waiting flow. Returns True if it was consumed."""
        fut = self._pending.get(str(chat_id))
        if fut is None or fut.done():
            return False
        fut.set_result(text)
        return True

    async def wait_for(self, chat_id: str, timeout: float) -> str | None:
        key = str(chat_id)
        old = self._pending.get(key)
        if old is not None and not old.done():
            old.cancel()

        fut: asyncio.Future[str] = asyncio.get_running_loop().create_future()
        self._pending[key] = fut
        try:
            return await asyncio.wait_for(fut, timeout=timeout)
        except asyncio.TimeoutError:
            return None
        finally:
            if self._pending.get(key) is fut:
                del self._pending[key]


def _display_name(sender: dict[str, Any]) -> str:
    return str(sender.get("username") or f"user_{sender.get('id')}")


class TelegramConnector:
    def __init__(self, state: AppState, api: TelegramBotAPI) -> None:
        self._state = state
        self._api = api
        self._waiter = ReplyWaiter()
        self._flows: set[asyncio.Task[None]] = set()
        self._offset: int | None = None

    @property
    def waiter(self) -> ReplyWaiter:
        return self._waiter

    async def run(self, stop_event: asyncio.Event) -> None:
        poll_timeout = int(getattr(self._state.settings, "telegram_poll_timeout_seconds", 30))
        logger.info("Telegram polling started.")
        try:
            while not stop_event.is_set():
                try:
                    updates = await self._api.get_updates(offset=self._offset, timeout=poll_timeout)
                except asyncio.CancelledError:
                    raise
                except Exception:
                    logger.exception("Telegram polling error")
                    await asyncio.sleep(5.0)
                    continue

                for update in updates:
                    self._offset = int(update.get("update_id", 0)) + 1
                    try:
                        await self.handle_update(update)
                    except Exception:
                        logger.exception("Failed to handle Telegram update %s", update.get("update_id"))
        finally:
            for flow in list(self._flows):
                flow.cancel()
            logger.info("Telegram polling stopped.")

    async def handle_update(self, update: dict[str, Any]) -> None:
        message = update.get("message") or {}
        text = (message.get("text") or "").strip()
        sender = message.get("from") or {}
        chat = message.get("chat") or {}
        if not text or not sender.get("id") or sender.get("is_bot"):
            return

        chat_id = str(chat.get("id") or sender["id"])
        account_id = str(sender["id"])
        display_name = _display_name(sender)

        if not text.startswith("/"):
            if not self._waiter.offer(chat_id, text):
                logger.debug("Ignoring non-command message from %s", account_id)
            return

        parsed = command_registry.parse(text)
        if parsed is not None and parsed[0] == "checkin":
            self._start_flow(self.checkin_flow(chat_id, account_id, display_name))
            return

        reply = await command_registry.handle(
            self._state,
            text,
            platform=Platform.TELEGRAM,
            account_id=account_id,
            display_name=display_name,
        )
        if reply:
            await self._api.send_message(chat_id, reply)

    def _start_flow(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._flows.add(task)
        task.add_done_callback(self._flows.discard)

    async def checkin_flow(self, chat_id: str, account_id: str, display_name: str) -> None:
        """Ask how the user is doing and record the next message as the answer."""
        user = self._state.identity.get_user_by_account(Platform.TELEGRAM, account_id)
        if user is None:
            await self._api.send_message(chat_id, "Please use /start first to register.")
            return

        await self._api.send_message(chat_id, CHECKIN_QUESTION)
        timeout = float(getattr(self._state.settings, "checkin_timeout_seconds", 600.0))
        answer = await self._waiter.wait_for(chat_id, timeout)
        if answer is None:
            await self._api.send_message(chat_id, CHECKIN_TIMEOUT)
            return

        self._state.replicator.submit_checkin(user=user, question=CHECKIN_QUESTION, answer=answer)
        logger.info("Check-in answer recorded for user=%s", user.id)
        await self._api.send_message(chat_id, CHECKIN_THANKS)


async def run_telegram_bot(state: AppState, api: TelegramBotAPI, stop_event: asyncio.Event) -> None:
    connector = TelegramConnector(state, api)
    poller = asyncio.create_task(connector.run(stop_event))
    waiter = asyncio.create_task(stop_event.wait())
    try:
        await asyncio.wait({poller, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for t in (poller, waiter):
            t.cancel()
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await t
