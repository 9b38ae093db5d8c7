from __future__ import annotations

from datetime import tzinfo

from ..models import NotificationEvent


def _format_point(point: float) -> str:
    if float(point).is_integer():
        return str(int(point))
    return f"{point:g}"


def format_console_line(event: NotificationEvent, tz: tzinfo | None = None) -> str:
    """
    终端单行格式，例如：
    2026-02-27 09:00:00 tourist AC:abc300 abc300_a point:100 (C++ 23 (gcc 12.2))
    """
    ts = event.timestamp.astimezone(tz) if tz is not None else event.timestamp
    return (
        f"{ts.strftime('%Y-%m-%d %H:%M:%S')} {event.user_id} AC:{event.contest_id}"
        f" {event.problem_id} point:{_format_point(event.point)} ({event.language})"
    )


def build_discord_payload(event: NotificationEvent) -> dict[str, object]:
    """Discord webhook 的 embed 消息体。"""
    return {
        "embeds": [
            {
                "title": f"✅ {event.user_id} solved {event.problem_id}",
                "url": event.submission_url,
                "color": 0x00C000,
                "fields": [
                    {"name": "Contest", "value": event.contest_id, "inline": True},
                    {"name": "Point", "value": _format_point(event.point), "inline": True},
                    {"name": "Language", "value": event.language, "inline": True},
                ],
                "timestamp": event.timestamp.isoformat(),
            }
        ]
    }
