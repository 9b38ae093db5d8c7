from .base import Notifier
from .console import ConsoleNotifier
from .discord import DiscordNotifier
from .formatter import build_discord_payload, format_console_line
from .multi import DeliveryReport, MultiNotifier

__all__ = [
    "ConsoleNotifier",
    "DeliveryReport",
    "DiscordNotifier",
    "MultiNotifier",
    "Notifier",
    "build_discord_payload",
    "format_console_line",
]
