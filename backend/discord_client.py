"""Thin Discord REST client for posting messages to a channel."""
import logging

import httpx

logger = logging.getLogger(__name__)

API_BASE = "https://discord.com/api/v10"


class DiscordClient:
    """
    Posts message payloads to Discord channels.

    Pass `transport` to route requests somewhere other than the network
    (tests use httpx.MockTransport).
    """

    def __init__(
        self,
        token: str,
        api_base: str = API_BASE,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=api_base,
            timeout=timeout,
            transport=transport,
            headers={
                "Authorization": f"Bot {token}",
                "Content-Type": "application/json",
            },
        )

    async def post_message(self, channel_id: str, payload: dict) -> httpx.Response:
        """Post a message payload; the raw response is returned for the caller to check."""
        logger.info(f"Posting message to channel {channel_id}")
        return await self._client.post(f"/channels/{channel_id}/messages", json=payload)

    async def aclose(self):
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()
