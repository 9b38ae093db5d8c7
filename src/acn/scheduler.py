from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, tzinfo
from typing import Callable, Protocol

from .errors import ConfigError


logger = logging.getLogger(__name__)

_HHMM_RE = re.compile(r"^(\d{1,2}):(\d{2})$")

# (名称, 最小值, 最大值)；星期允许 0-7，7 与 0 都表示周日
_FIELDS = (
    ("minute", 0, 59),
    ("hour", 0, 23),
    ("day", 1, 31),
    ("month", 1, 12),
    ("weekday", 0, 7),
)


def to_cron_expression(spec: str) -> str:
    """
    把配置里的时刻转换为 5 段 cron 表达式。

    - "9:00" / "21:30" -> "0 9 * * *" / "30 21 * * *"
    - 已经是 5 段 cron 表达式的原样返回
    """
    text = (spec or "").strip()
    parts = text.split()
    if len(parts) == 5:
        return " ".join(parts)

    m = _HHMM_RE.match(text)
    if not m:
        raise ConfigError(f"invalid schedule time {spec!r}: expected HH:MM or a 5-field cron expression")
    hour, minute = int(m.group(1)), int(m.group(2))
    if hour > 23 or minute > 59:
        raise ConfigError(f"invalid schedule time {spec!r}: hour must be 0-23 and minute 0-59")
    return f"{minute} {hour} * * *"


def _parse_field(text: str, name: str, lo: int, hi: int) -> frozenset[int]:
    values: set[int] = set()
    for part in text.split(","):
        step = 1
        if "/" in part:
            part, step_s = part.split("/", 1)
            if not step_s.isdecimal() or int(step_s) == 0:
                raise ConfigError(f"invalid cron {name} step: {step_s!r}")
            step = int(step_s)

        if part == "*":
            start, end = lo, hi
        elif "-" in part:
            a, b = part.split("-", 1)
            if not (a.isdecimal() and b.isdecimal()):
                raise ConfigError(f"invalid cron {name} range: {part!r}")
            start, end = int(a), int(b)
        elif part.isdecimal():
            start = int(part)
            end = hi if step > 1 else start
        else:
            raise ConfigError(f"invalid cron {name} value: {part!r}")

        if start < lo or end > hi or start > end:
            raise ConfigError(f"cron {name} out of range {lo}-{hi}: {part!r}")
        values.update(range(start, end + 1, step))
    return frozenset(values)


@dataclass(frozen=True, slots=True)
class CronSchedule:
    """
    标准 5 段 cron（分 时 日 月 周）。

    支持 *、数字、a-b、*/n、a-b/n 以及逗号列表。
    日与周同时被限制时按 cron 惯例取并集。
    """

    expression: str
    minutes: frozenset[int]
    hours: frozenset[int]
    days: frozenset[int]
    months: frozenset[int]
    weekdays: frozenset[int]
    day_restricted: bool
    weekday_restricted: bool

    @classmethod
    def parse(cls, expression: str) -> CronSchedule:
        parts = expression.split()
        if len(parts) != 5:
            raise ConfigError(f"cron expression must have 5 fields: {expression!r}")
        parsed = [_parse_field(p, name, lo, hi) for p, (name, lo, hi) in zip(parts, _FIELDS)]
        weekdays = frozenset(0 if d == 7 else d for d in parsed[4])
        return cls(
            expression=" ".join(parts),
            minutes=parsed[0],
            hours=parsed[1],
            days=parsed[2],
            months=parsed[3],
            weekdays=weekdays,
            day_restricted=not parts[2].startswith("*"),
            weekday_restricted=not parts[4].startswith("*"),
        )

    @classmethod
    def from_spec(cls, spec: str) -> CronSchedule:
        return cls.parse(to_cron_expression(spec))

    def _day_matches(self, dt: datetime) -> bool:
        # cron 周日为 0；Python weekday() 周一为 0
        cron_weekday = (dt.weekday() + 1) % 7
        day_ok = dt.day in self.days
        weekday_ok = cron_weekday in self.weekdays
        if self.day_restricted and self.weekday_restricted:
            return day_ok or weekday_ok
        return day_ok and weekday_ok

    def matches(self, dt: datetime) -> bool:
        return (
            dt.month in self.months
            and self._day_matches(dt)
            and dt.hour in self.hours
            and dt.minute in self.minutes
        )

    def next_after(self, after: datetime) -> datetime:
        """返回严格晚于 after 的下一次触发时刻（与 after 同时区，秒归零）。"""
        dt = after.replace(second=0, microsecond=0) + timedelta(minutes=1)
        # 最多向后找 5 年（覆盖 2 月 29 日之类的表达式）
        limit = dt + timedelta(days=366 * 5)
        while dt <= limit:
            if dt.month not in self.months or not self._day_matches(dt):
                dt = (dt + timedelta(days=1)).replace(hour=0, minute=0)
                continue
            if dt.hour not in self.hours:
                dt = (dt + timedelta(hours=1)).replace(minute=0)
                continue
            if dt.minute not in self.minutes:
                dt += timedelta(minutes=1)
                continue
            return dt
        raise ConfigError(f"cron expression never fires: {self.expression!r}")


class CycleRunner(Protocol):
    def check_all_users(self) -> object: ...


@dataclass(slots=True)
class SchedulerDriver:
    """
    调度驱动：按固定间隔或按墙钟时刻反复执行 runner.check_all_users()。

    - schedules 非空时为墙钟模式，否则为固定间隔轮询
    - stop() 只设置停止标志：正在进行的检查会跑完，之后不再开启新一轮
    """

    runner: CycleRunner
    stop_event: threading.Event
    polling_interval_seconds: float | None = None
    schedules: tuple[CronSchedule, ...] = ()
    tz: tzinfo | None = None
    clock: Callable[[tzinfo | None], datetime] = field(default=datetime.now)
    cycles: int = 0

    @property
    def mode(self) -> str:
        return "schedule" if self.schedules else "polling"

    def stop(self) -> None:
        if not self.stop_event.is_set():
            logger.info("stop requested: mode=%s cycles=%d", self.mode, self.cycles)
        self.stop_event.set()

    @property
    def stopped(self) -> bool:
        return self.stop_event.is_set()

    def run(self) -> None:
        if self.schedules:
            self.run_scheduled()
        elif self.polling_interval_seconds:
            self.run_polling()
        else:
            raise ConfigError("either scheduleTimes or pollingIntervalSeconds must be configured")

    def _run_cycle(self) -> None:
        self.cycles += 1
        try:
            self.runner.check_all_users()
        except Exception:  # noqa: BLE001
            logger.exception("cycle crashed: id=%d", self.cycles)

    def run_polling(self) -> None:
        interval = max(0.0, float(self.polling_interval_seconds or 0))
        logger.info("polling mode: interval_seconds=%s", interval)
        while not self.stopped:
            self._run_cycle()
            if self.stopped:
                break
            logger.debug("next poll in %ss", interval)
            self.stop_event.wait(interval)
        logger.info("polling stopped: cycles=%d", self.cycles)

    def run_scheduled(self) -> None:
        logger.info(
            "schedule mode: expressions=%s tz=%s",
            ",".join(s.expression for s in self.schedules),
            self.tz,
        )
        now = self.clock(self.tz)
        next_fires = [s.next_after(now) for s in self.schedules]
        while not self.stopped:
            fire_at = min(next_fires)
            logger.info("next scheduled run: at=%s", fire_at.isoformat())
            delay = fire_at.timestamp() - self.clock(self.tz).timestamp()
            if delay > 0 and self.stop_event.wait(delay):
                break
            if self.stopped:
                break

            logger.info("scheduled run start: at=%s", fire_at.isoformat())
            self._run_cycle()
            logger.info("scheduled run done: at=%s", fire_at.isoformat())

            # 同一分钟内触发的多个表达式只跑一轮；运行期间错过的时刻不补跑
            base = max(fire_at, self.clock(self.tz))
            next_fires = [
                s.next_after(base) if t <= base else t for s, t in zip(self.schedules, next_fires)
            ]
        logger.info("scheduler stopped: cycles=%d", self.cycles)
