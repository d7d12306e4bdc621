"""Discord webhook alert channel."""

from __future__ import annotations

import logging

import httpx

from token_scanner.alerter.models import FormattedAlert

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0


class DiscordChannel:
    """Posts alerts as embeds to a Discord webhook."""

    name = "discord"

    def __init__(
        self,
        webhook_url: str,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._webhook_url = webhook_url
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def send(self, alert: FormattedAlert) -> bool:
        payload = {"embeds": [alert.discord_embed]}
        try:
            response = await self._client.post(self._webhook_url, json=payload)
        except httpx.HTTPError as e:
            logger.error("Discord webhook request failed: %s", e)
            return False
        # Webhooks answer 204 No Content on success.
        if response.status_code not in (200, 204):
            logger.error("Discord webhook error: %d - %s", response.status_code, response.text[:200])
            return False
        return True

    async def close(self) -> None:
        await self._client.aclose()
