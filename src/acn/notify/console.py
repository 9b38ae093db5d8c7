from __future__ import annotations

import sys
from dataclasses import dataclass, field
from datetime import tzinfo
from typing import TextIO

from ..models import NotificationEvent
from .base import Notifier
from .formatter import format_console_line


@dataclass(slots=True)
class ConsoleNotifier(Notifier):
    tz: tzinfo | None = None
    stream: TextIO = field(default_factory=lambda: sys.stdout)

    def channel(self) -> str:
        return "console"

    def notify(self, event: NotificationEvent) -> None:
        print(format_console_line(event, self.tz), file=self.stream, flush=True)
