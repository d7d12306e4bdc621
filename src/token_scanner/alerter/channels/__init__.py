"""Alert delivery channels."""

from token_scanner.alerter.channels.discord import DiscordChannel
from token_scanner.alerter.channels.telegram import TelegramChannel

__all__ = ["DiscordChannel", "TelegramChannel"]
