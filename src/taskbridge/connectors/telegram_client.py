# src/taskbridge/connectors/telegram_client.py

from __future__ import annotations

import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)


class TelegramAPIError(RuntimeError):
    pass


class TelegramBotAPI:
    """
    Minimal Telegram Bot API client (sendMessage + getUpdates long polling).

    A fresh AsyncClient is opened per call unless one is injected: the console
    thread and the connector thread run separate event loops, and a pooled
    client must not be shared across loops.
    """

    def __init__(
        self,
        token: str,
        *,
        api_base: str = "https://api.telegram.org",
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not token:
            raise ValueError("Telegram bot token is required")
        self._base_url = f"{api_base.rstrip('/')}/bot{token}"
        self._timeout = timeout
        self._transport = transport

    def _client(self, timeout: float | None = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout if timeout is None else timeout,
            transport=self._transport,
        )

    async def call(self, method: str, payload: dict[str, Any], *, timeout: float | None = None) -> Any:
        async with self._client(timeout) as client:
            resp = await client.post(f"/{method}", json=payload)
        try:
            data = resp.json()
        except ValueError:
            resp.raise_for_status()
            raise TelegramAPIError(f"{method}: non-JSON response (HTTP {resp.status_code})")

        if not isinstance(data, dict) or not data.get("ok"):
            desc = data.get("description") if isinstance(data, dict) else None
            raise TelegramAPIError(f"{method} failed: {desc or resp.status_code}")
        return data.get("result")

    async def send_message(self, chat_id: str | int, text: str) -> None:
        await self.call("sendMessage", {"chat_id": chat_id, "text": text})

    async def get_updates(self, *, offset: int | None, timeout: int = 30) -> list[dict[str, Any]]:
        payload: dict[str, Any] = {"timeout": int(timeout), "allowed_updates": ["message"]}
        if offset is not None:
            payload["offset"] = int(offset)
        # HTTP timeout must outlive the server-side long poll.
        result = await self.call("getUpdates", payload, timeout=float(timeout) + 10.0)
        return list(result or [])


class TelegramChannel:
    """ChannelSender: direct message by Telegram chat id."""

    def __init__(self, api: TelegramBotAPI) -> None:
        self._api = api

    async def send_direct_message(self, account_id: str, text: str) -> None:
        await self._api.send_message(account_id, text)
        logger.debug("Telegram message sent to %s", account_id)
