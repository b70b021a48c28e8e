# src/taskbridge/connectors/discord_client.py

from __future__ import annotations

import logging

import httpx

logger = logging.getLogger(__name__)


class DiscordChannel:
    """
    ChannelSender over the Discord REST API.

    A direct message takes two calls: open (or reuse) the DM channel with the
    user, then post into it. Only delivery is supported: Discord users
    issue commands through Telegram or the console.
    """

    def __init__(
        self,
        token: str,
        *,
        api_base: str = "https://discord.com/api/v10",
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not token:
            raise ValueError("Discord bot token is required")
        self._api_base = api_base.rstrip("/")
        self._headers = {"Authorization": f"Bot {token}"}
        self._timeout = timeout
        self._transport = transport

    async def send_direct_message(self, account_id: str, text: str) -> None:
        async with httpx.AsyncClient(
            base_url=self._api_base,
            headers=self._headers,
            timeout=self._timeout,
            transport=self._transport,
        ) as client:
            resp = await client.post("/users/@me/channels", json={"recipient_id": str(account_id)})
            resp.raise_for_status()
            channel_id = resp.json()["id"]

            resp = await client.post(f"/channels/{channel_id}/messages", json={"content": text})
            resp.raise_for_status()

        logger.debug("Discord DM sent to %s (channel %s)", account_id, channel_id)
