from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from ..models import NotificationEvent
from .base import Notifier


logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ChannelFailure:
    channel: str
    error: str


@dataclass(frozen=True, slots=True)
class DeliveryReport:
    attempts: int
    successes: int
    failures: tuple[ChannelFailure, ...]


@dataclass(slots=True)
class MultiNotifier(Notifier):
    """
    组合通知：把同一事件并行投递给所有子渠道。

    单个渠道失败只记录日志并计入 DeliveryReport，不影响其他渠道，也不向调用方抛出。
    """

    notifiers: tuple[Notifier, ...]

    def channel(self) -> str:
        return "multi"

    def channels(self) -> tuple[str, ...]:
        return tuple(n.channel() for n in self.notifiers)

    def _deliver(self, notifier: Notifier, event: NotificationEvent) -> ChannelFailure | None:
        channel = notifier.channel()
        try:
            notifier.notify(event)
        except Exception as e:  # noqa: BLE001
            logger.exception(
                "notify failed: channel=%s notifier_type=%s user=%s problem=%s submission_id=%d",
                channel,
                type(notifier).__name__,
                event.user_id,
                event.problem_id,
                event.submission_id,
            )
            return ChannelFailure(channel=channel, error=f"{type(e).__name__}: {e}")
        return None

    def notify(self, event: NotificationEvent) -> DeliveryReport:
        if not self.notifiers:
            return DeliveryReport(attempts=0, successes=0, failures=())

        with ThreadPoolExecutor(max_workers=len(self.notifiers), thread_name_prefix="acn-notify") as pool:
            futures = [pool.submit(self._deliver, n, event) for n in self.notifiers]
            results = [f.result() for f in futures]

        failures = tuple(r for r in results if r is not None)
        return DeliveryReport(
            attempts=len(results),
            successes=len(results) - len(failures),
            failures=failures,
        )
