"""Telegram bot alert channel."""

from __future__ import annotations

import logging

import httpx

from token_scanner.alerter.models import FormattedAlert

logger = logging.getLogger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org"
DEFAULT_TIMEOUT_SECONDS = 10.0


class TelegramChannel:
    """Sends alerts as MarkdownV2 messages through the Telegram Bot API."""

    name = "telegram"

    def __init__(
        self,
        bot_token: str,
        chat_id: str,
        *,
        api_url: str = TELEGRAM_API_URL,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._chat_id = chat_id
        self._client = httpx.AsyncClient(
            base_url=f"{api_url.rstrip('/')}/bot{bot_token}",
            timeout=timeout,
            transport=transport,
        )

    async def send(self, alert: FormattedAlert) -> bool:
        payload = {
            "chat_id": self._chat_id,
            "text": alert.telegram_markdown,
            "parse_mode": "MarkdownV2",
            "disable_web_page_preview": True,
        }
        try:
            response = await self._client.post("/sendMessage", json=payload)
        except httpx.HTTPError as e:
            logger.error("Telegram request failed: %s", e)
            return False
        if response.status_code != 200:
            logger.error("Telegram API error: %d - %s", response.status_code, response.text[:200])
            return False
        return True

    async def close(self) -> None:
        await self._client.aclose()
