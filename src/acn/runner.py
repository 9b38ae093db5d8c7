from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime

from .config import AppConfig
from .detector import ChangeDetector
from .http_utils import HttpClient
from .models import NotificationEvent, utc_now
from .notify.base import Notifier
from .notify.console import ConsoleNotifier
from .notify.discord import DiscordNotifier
from .notify.multi import DeliveryReport, MultiNotifier
from .sources.atcoder import AtCoderProblemsSource
from .sources.base import SubmissionSource
from .state.json_store import JsonStateStore
from .state.store import StateStore


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class UserCheckReport:
    user_id: str
    cursor_before: int | None
    cursor_after: int | None
    submissions_fetched: int
    accepted: int
    skipped_solved: int
    notifications: int
    notify_failures: int
    error: str | None
    duration_ms: int


@dataclass(slots=True)
class CycleReport:
    started_at: datetime
    finished_at: datetime
    duration_ms: int
    users: tuple[UserCheckReport, ...]
    submissions_fetched: int
    notifications: int
    notify_failures: int
    user_errors: int
    stopped_early: bool


@dataclass(slots=True)
class Runner:
    """
    核心执行器：负责一轮检查内的完整数据流闭环：
    Source(fetch) -> Detector(sort/filter/dedupe) -> Notify -> State(cursor)

    用户按配置顺序串行处理；单个用户的异常只影响该用户本轮。
    """

    state: StateStore
    source: SubmissionSource
    notifier: Notifier
    users: tuple[str, ...]
    retry_delay_seconds: float = 60.0
    stop_event: threading.Event = field(default_factory=threading.Event)

    def check_user(self, user_id: str) -> UserCheckReport:
        """
        检查单个用户。fetch 失败直接抛出（FetchError），由 check_all_users 统一隔离。
        """
        start_t = time.monotonic()
        cursor = self.state.get_cursor(user_id)
        submissions = self.source.fetch(user_id, cursor)

        notify_failures = 0

        def _emit(event: NotificationEvent) -> None:
            nonlocal notify_failures
            result = self.notifier.notify(event)
            if isinstance(result, DeliveryReport):
                notify_failures += len(result.failures)

        report = ChangeDetector(state=self.state).process(user_id, submissions, _emit)
        notify_failures += len(report.emit_failures)

        return UserCheckReport(
            user_id=user_id,
            cursor_before=cursor,
            cursor_after=report.cursor_after,
            submissions_fetched=report.submissions,
            accepted=report.accepted,
            skipped_solved=report.skipped_solved,
            notifications=len(report.events),
            notify_failures=notify_failures,
            error=None,
            duration_ms=int((time.monotonic() - start_t) * 1000),
        )

    def check_all_users(self) -> CycleReport:
        """
        执行一轮检查（所有用户）。

        - 每个用户之间检查停止标志：已停止则不再开始下一个用户
        - 某个用户失败：记录日志，等待 retry_delay_seconds（可被停止打断），继续下一个用户
        """
        started_at = utc_now()
        start_t = time.monotonic()
        logger.info("cycle start: users=%d", len(self.users))

        reports: list[UserCheckReport] = []
        stopped_early = False
        for user_id in self.users:
            if self.stop_event.is_set():
                stopped_early = True
                break

            user_start_t = time.monotonic()
            cursor = self.state.get_cursor(user_id)
            try:
                report = self.check_user(user_id)
            except Exception as e:  # noqa: BLE001
                logger.exception(
                    "user check failed: user=%s cursor=%r retry_delay_seconds=%s",
                    user_id,
                    cursor,
                    self.retry_delay_seconds,
                )
                reports.append(
                    UserCheckReport(
                        user_id=user_id,
                        cursor_before=cursor,
                        cursor_after=cursor,
                        submissions_fetched=0,
                        accepted=0,
                        skipped_solved=0,
                        notifications=0,
                        notify_failures=0,
                        error=f"{type(e).__name__}: {e}",
                        duration_ms=int((time.monotonic() - user_start_t) * 1000),
                    )
                )
                if self.retry_delay_seconds > 0:
                    self.stop_event.wait(self.retry_delay_seconds)
                continue

            logger.info(
                "user checked: user=%s fetched=%d accepted=%d skipped_solved=%d notified=%d notify_failures=%d cursor=%r->%r",
                report.user_id,
                report.submissions_fetched,
                report.accepted,
                report.skipped_solved,
                report.notifications,
                report.notify_failures,
                report.cursor_before,
                report.cursor_after,
            )
            reports.append(report)

        duration_ms = int((time.monotonic() - start_t) * 1000)
        cycle = CycleReport(
            started_at=started_at,
            finished_at=utc_now(),
            duration_ms=duration_ms,
            users=tuple(reports),
            submissions_fetched=sum(r.submissions_fetched for r in reports),
            notifications=sum(r.notifications for r in reports),
            notify_failures=sum(r.notify_failures for r in reports),
            user_errors=sum(1 for r in reports if r.error is not None),
            stopped_early=stopped_early,
        )
        logger.info(
            "cycle done: duration_ms=%d users=%d fetched=%d notified=%d notify_failures=%d user_errors=%d stopped_early=%s",
            cycle.duration_ms,
            len(cycle.users),
            cycle.submissions_fetched,
            cycle.notifications,
            cycle.notify_failures,
            cycle.user_errors,
            cycle.stopped_early,
        )
        return cycle


def build_notifier(config: AppConfig) -> MultiNotifier:
    notifiers: list[Notifier] = []
    if config.console:
        notifiers.append(ConsoleNotifier(tz=config.tzinfo()))

    if config.discord:
        webhook_url = config.resolve_env(config.discord.webhook_env)
        if webhook_url:
            notifiers.append(DiscordNotifier(webhook_url=webhook_url))
        else:
            logger.warning("discord webhook env %s is not set; discord notifications disabled", config.discord.webhook_env)

    return MultiNotifier(notifiers=tuple(notifiers))


def build_runner(config: AppConfig, *, stop_event: threading.Event | None = None) -> Runner:
    """
    根据配置构建可运行的 Runner。

    - 统一在这里做“配置 -> 实例”的装配，Runner 内只关注流程编排
    - 对 secret（webhook URL）只通过环境变量读取，避免落盘
    """
    http = HttpClient(timeout_seconds=config.request_timeout_seconds)
    return Runner(
        state=JsonStateStore(config.state_path),
        source=AtCoderProblemsSource(http=http, base_url=config.api_base_url),
        notifier=build_notifier(config),
        users=config.users,
        retry_delay_seconds=config.retry_delay_seconds,
        stop_event=stop_event or threading.Event(),
    )
