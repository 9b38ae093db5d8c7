from __future__ import annotations

import json
import ssl
import urllib.error
import urllib.request
from dataclasses import dataclass

from ..errors import NotificationError
from ..models import NotificationEvent
from .base import Notifier
from .formatter import build_discord_payload


@dataclass(slots=True)
class DiscordNotifier(Notifier):
    """
    Discord Incoming Webhook 通知。

    说明：
    - webhook_url 只从环境变量读取（见 AppConfig.resolve_env），不落盘
    - 正常响应为 204 No Content；非 2xx 或网络错误抛 NotificationError
    """

    webhook_url: str
    timeout_seconds: float = 20.0

    def channel(self) -> str:
        return "discord"

    def notify(self, event: NotificationEvent) -> None:
        data = json.dumps(build_discord_payload(event), ensure_ascii=False).encode("utf-8")
        req = urllib.request.Request(
            url=self.webhook_url,
            data=data,
            headers={
                "Content-Type": "application/json; charset=utf-8",
                "User-Agent": "atcoder-ac-notifier/0",
            },
            method="POST",
        )
        try:
            with urllib.request.urlopen(  # noqa: S310
                req,
                timeout=self.timeout_seconds,
                context=ssl.create_default_context(),
            ) as resp:
                status = getattr(resp, "status", 200)
                body = resp.read()
        except urllib.error.HTTPError as e:
            raise NotificationError(f"Discord webhook failed: status={e.code}") from e
        except (urllib.error.URLError, OSError) as e:
            raise NotificationError(f"Discord webhook network error: {e}") from e

        if status >= 300:
            raise NotificationError(f"Discord webhook failed: status={status}, body={body[:200]!r}")
