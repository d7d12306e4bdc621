"""Alert message formatter for multi-channel delivery.

This module transforms NotificationEvents into human-readable messages
for Discord, Telegram, and plain text.
"""

from __future__ import annotations

from typing import Literal

from token_scanner.alerter.models import FormattedAlert, NotificationEvent, NotificationKind, Severity

# Explorer URLs
PUMP_TOKEN_URL = "https://pump.fun/coin/{address}"
DEXSCREENER_TOKEN_URL = "https://dexscreener.com/solana/{address}"
SOLSCAN_ACCOUNT_URL = "https://solscan.io/account/{address}"

# Discord embed colors (decimal values)
COLOR_HIGH = 15158332  # Red (#E74C3C)
COLOR_MEDIUM = 15105570  # Orange (#E67E22)
COLOR_LOW = 3447003  # Blue (#3498DB)

FOOTER_TEXT = "Token Scanner"

KIND_EMOJI = {
    NotificationKind.LAUNCH: "🚀",
    NotificationKind.PRICE_ALERT: "🔔",
    NotificationKind.WHALE_TRADE: "🐋",
    NotificationKind.COMMUNITY_TAKEOVER: "👥",
}

_TELEGRAM_SPECIAL_CHARS = "_*[]()~`>#+-=|{}.!"


def truncate_address(address: str, chars: int = 4) -> str:
    """Truncate an address to ``Abcd...wxyz`` form."""
    if len(address) < chars * 2 + 4:
        return address
    return f"{address[:chars]}...{address[-chars:]}"


def format_sol(amount: float) -> str:
    """Format a SOL amount with up to 4 decimal places."""
    return f"{amount:,.4f} SOL"


def format_price(price: float) -> str:
    """Format a token price; small prices keep significant digits."""
    if price >= 1:
        return f"${price:,.4f}"
    return f"${price:.4g}"


def get_severity_color(severity: Severity) -> int:
    """Get Discord embed color for a severity."""
    if severity is Severity.HIGH:
        return COLOR_HIGH
    if severity is Severity.MEDIUM:
        return COLOR_MEDIUM
    return COLOR_LOW


def escape_telegram_markdown(text: str) -> str:
    """Escape special Telegram MarkdownV2 characters."""
    for char in _TELEGRAM_SPECIAL_CHARS:
        text = text.replace(char, f"\\{char}")
    return text


class AlertFormatter:
    """Formats NotificationEvents into multi-channel messages.

    Supports two verbosity levels:
    - compact: title and message only
    - detailed: adds every event field and explorer links
    """

    def __init__(
        self,
        verbosity: Literal["compact", "detailed"] = "detailed",
    ) -> None:
        self.verbosity = verbosity

    def format(self, event: NotificationEvent) -> FormattedAlert:
        """Format a notification event for every channel.

        Args:
            event: The event to format.

        Returns:
            FormattedAlert with all channel formats.
        """
        title = f"{KIND_EMOJI.get(event.kind, '📣')} {event.title}"
        links = self._build_links(event)
        fields = list(event.fields) if self.verbosity == "detailed" else []

        return FormattedAlert(
            title=title,
            body=self._build_body(event, fields),
            discord_embed=self._build_discord_embed(event, title, fields, links),
            telegram_markdown=self._build_telegram_markdown(event, title, fields, links),
            plain_text=self._build_plain_text(event, fields, links),
            links=links,
        )

    def _build_links(self, event: NotificationEvent) -> dict[str, str]:
        links: dict[str, str] = {}
        if event.token_address:
            links["pump"] = PUMP_TOKEN_URL.format(address=event.token_address)
            links["chart"] = DEXSCREENER_TOKEN_URL.format(address=event.token_address)
        if event.wallet_address:
            links["wallet"] = SOLSCAN_ACCOUNT_URL.format(address=event.wallet_address)
        return links

    def _build_body(self, event: NotificationEvent, fields: list[tuple[str, str]]) -> str:
        lines = [event.message]
        lines.extend(f"{name}: {value}" for name, value in fields)
        return "\n".join(lines)

    def _build_discord_embed(
        self,
        event: NotificationEvent,
        title: str,
        fields: list[tuple[str, str]],
        links: dict[str, str],
    ) -> dict[str, object]:
        embed_fields: list[dict[str, object]] = [
            {"name": name, "value": value, "inline": len(value) <= 24} for name, value in fields
        ]
        if event.token_address:
            embed_fields.append(
                {"name": "Token", "value": f"`{truncate_address(event.token_address)}`", "inline": True}
            )
        if self.verbosity == "detailed" and links:
            embed_fields.append(
                {
                    "name": "Links",
                    "value": " | ".join(f"[{name.title()}]({url})" for name, url in links.items()),
                    "inline": False,
                }
            )

        embed: dict[str, object] = {
            "title": title,
            "description": event.message,
            "color": get_severity_color(event.severity),
            "timestamp": event.timestamp.isoformat(),
            "fields": embed_fields,
            "footer": {"text": FOOTER_TEXT},
        }
        if "pump" in links:
            embed["url"] = links["pump"]
        return embed

    def _build_telegram_markdown(
        self,
        event: NotificationEvent,
        title: str,
        fields: list[tuple[str, str]],
        links: dict[str, str],
    ) -> str:
        lines = [f"*{escape_telegram_markdown(title)}*", "", escape_telegram_markdown(event.message)]
        for name, value in fields:
            lines.append(f"*{escape_telegram_markdown(name)}:* {escape_telegram_markdown(value)}")
        if event.token_address:
            lines.append(f"*Token:* `{event.token_address}`")
        if self.verbosity == "detailed" and links:
            lines.append("")
            lines.append(" \\| ".join(f"[{escape_telegram_markdown(name.title())}]({url})" for name, url in links.items()))
        return "\n".join(lines)

    def _build_plain_text(
        self,
        event: NotificationEvent,
        fields: list[tuple[str, str]],
        links: dict[str, str],
    ) -> str:
        header = event.title.upper()
        lines = [header, "=" * len(header), "", event.message]
        lines.extend(f"{name}: {value}" for name, value in fields)
        if event.token_address:
            lines.append(f"Token: {event.token_address}")
        if self.verbosity == "detailed" and links:
            lines.append("")
            lines.extend(f"{name.title()}: {url}" for name, url in links.items())
        return "\n".join(lines)
