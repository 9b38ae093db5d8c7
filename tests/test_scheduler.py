import threading
from datetime import UTC, datetime

import pytest

from acn.errors import ConfigError
from acn.scheduler import CronSchedule, SchedulerDriver, to_cron_expression


# 2026-02-27 是星期五
FRI = datetime(2026, 2, 27, 8, 59, 30, tzinfo=UTC)


@pytest.mark.parametrize(
    ("spec", "expected"),
    [
        ("09:00", "0 9 * * *"),
        ("9:05", "5 9 * * *"),
        ("21:30", "30 21 * * *"),
        ("0 21 * * 1-5", "0 21 * * 1-5"),
        ("  */15  *  * * *  ", "*/15 * * * *"),
    ],
)
def test_to_cron_expression(spec: str, expected: str) -> None:
    assert to_cron_expression(spec) == expected


@pytest.mark.parametrize("spec", ["24:00", "12:60", "noon", "", "1 2 3 4", "* * * * * *"])
def test_to_cron_expression_rejects_garbage(spec: str) -> None:
    with pytest.raises(ConfigError):
        CronSchedule.from_spec(spec)


@pytest.mark.parametrize("expr", ["60 * * * *", "* 24 * * *", "* * 0 * *", "*/0 * * * *", "a * * * *", "5-1 * * * *"])
def test_cron_parse_rejects_out_of_range(expr: str) -> None:
    with pytest.raises(ConfigError):
        CronSchedule.parse(expr)


def test_daily_time_next_after() -> None:
    s = CronSchedule.from_spec("09:00")
    assert s.next_after(FRI) == datetime(2026, 2, 27, 9, 0, tzinfo=UTC)
    assert s.next_after(datetime(2026, 2, 27, 9, 0, tzinfo=UTC)) == datetime(2026, 2, 28, 9, 0, tzinfo=UTC)


def test_weekday_range_skips_weekend() -> None:
    s = CronSchedule.parse("0 21 * * 1-5")
    assert s.next_after(datetime(2026, 2, 27, 22, 0, tzinfo=UTC)) == datetime(2026, 3, 2, 21, 0, tzinfo=UTC)


def test_weekday_seven_is_sunday() -> None:
    s = CronSchedule.parse("0 12 * * 7")
    assert s.next_after(FRI) == datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def test_day_and_weekday_are_ored() -> None:
    assert CronSchedule.parse("0 0 15 * 1").next_after(FRI) == datetime(2026, 3, 2, 0, 0, tzinfo=UTC)
    assert CronSchedule.parse("0 0 15 * *").next_after(FRI) == datetime(2026, 3, 15, 0, 0, tzinfo=UTC)


def test_step_and_list_fields() -> None:
    s = CronSchedule.parse("*/20 8-9 * * *")
    assert s.minutes == frozenset({0, 20, 40})
    assert s.next_after(FRI) == datetime(2026, 2, 27, 9, 0, tzinfo=UTC)
    assert CronSchedule.parse("5,35 * * * *").next_after(FRI) == datetime(2026, 2, 27, 9, 5, tzinfo=UTC)


def test_leap_day_schedule() -> None:
    s = CronSchedule.parse("0 0 29 2 *")
    assert s.next_after(FRI) == datetime(2028, 2, 29, 0, 0, tzinfo=UTC)


class _CountingRunner:
    def __init__(self, stop_event: threading.Event, stop_after: int, on_call=None) -> None:  # noqa: ANN001
        self.stop_event = stop_event
        self.stop_after = stop_after
        self.on_call = on_call
        self.calls = 0

    def check_all_users(self) -> None:
        self.calls += 1
        if self.on_call is not None:
            self.on_call(self.calls)
        if self.calls >= self.stop_after:
            self.stop_event.set()


def test_polling_runs_until_stopped() -> None:
    ev = threading.Event()
    runner = _CountingRunner(ev, stop_after=3)
    driver = SchedulerDriver(runner=runner, stop_event=ev, polling_interval_seconds=0.01)

    driver.run()

    assert runner.calls == 3
    assert driver.cycles == 3
    assert driver.mode == "polling"


def test_polling_survives_cycle_crash(caplog) -> None:  # noqa: ANN001
    ev = threading.Event()

    def _crash_first(n: int) -> None:
        if n == 1:
            raise RuntimeError("boom")

    runner = _CountingRunner(ev, stop_after=2, on_call=_crash_first)
    SchedulerDriver(runner=runner, stop_event=ev, polling_interval_seconds=0.01).run()

    assert runner.calls == 2
    assert "cycle crashed" in caplog.text


def test_stop_before_run_starts_no_cycle() -> None:
    ev = threading.Event()
    runner = _CountingRunner(ev, stop_after=1)
    driver = SchedulerDriver(runner=runner, stop_event=ev, polling_interval_seconds=60)
    driver.stop()
    driver.run()
    assert runner.calls == 0


def test_stop_interrupts_polling_wait() -> None:
    ev = threading.Event()
    driver_box: list[SchedulerDriver] = []
    runner = _CountingRunner(ev, stop_after=99, on_call=lambda n: driver_box[0].stop())
    driver = SchedulerDriver(runner=runner, stop_event=ev, polling_interval_seconds=3600)
    driver_box.append(driver)

    t = threading.Thread(target=driver.run)
    t.start()
    t.join(timeout=5)

    assert not t.is_alive()
    assert runner.calls == 1


def test_scheduled_mode_fires_once_per_instant() -> None:
    now = [datetime(2026, 2, 27, 8, 59, 59, 950000, tzinfo=UTC)]
    ev = threading.Event()

    def _advance(n: int) -> None:
        # 第一次触发后把时钟拨到 09:00:59.95，下一次 09:01 触发只需等待很短时间
        if n == 1:
            now[0] = datetime(2026, 2, 27, 9, 0, 59, 950000, tzinfo=UTC)

    runner = _CountingRunner(ev, stop_after=2, on_call=_advance)
    driver = SchedulerDriver(
        runner=runner,
        stop_event=ev,
        schedules=(
            CronSchedule.from_spec("09:00"),
            CronSchedule.parse("0 9 * * *"),
            CronSchedule.from_spec("09:01"),
        ),
        tz=UTC,
        clock=lambda tz: now[0],
    )

    driver.run()

    assert driver.mode == "schedule"
    assert runner.calls == 2


def test_run_without_cadence_is_config_error() -> None:
    ev = threading.Event()
    driver = SchedulerDriver(runner=_CountingRunner(ev, stop_after=1), stop_event=ev)
    with pytest.raises(ConfigError):
        driver.run()


def test_stop_interrupts_scheduled_wait() -> None:
    ev = threading.Event()
    runner = _CountingRunner(ev, stop_after=99)
    driver = SchedulerDriver(
        runner=runner,
        stop_event=ev,
        schedules=(CronSchedule.from_spec("09:00"),),
        tz=UTC,
        clock=lambda tz: datetime(2026, 2, 27, 9, 0, 30, tzinfo=UTC),
    )

    t = threading.Thread(target=driver.run)
    t.start()
    driver.stop()
    t.join(timeout=5)

    assert not t.is_alive()
    assert runner.calls == 0
    assert driver.cycles == 0
    assert driver.stopped


def test_day_step_counts_as_unrestricted() -> None:
    s = CronSchedule.parse("0 0 */2 * 1")
    assert not s.day_restricted
    assert s.weekday_restricted
    # 周五之后第一个“奇数日且周一”是 3 月 9 日
    assert s.next_after(FRI) == datetime(2026, 3, 9, 0, 0, tzinfo=UTC)


def test_non_ascii_digits_are_config_error() -> None:
    with pytest.raises(ConfigError):
        CronSchedule.parse("² * * * *")
    with pytest.raises(ConfigError):
        CronSchedule.parse("*/² * * * *")
