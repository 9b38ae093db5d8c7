from __future__ import annotations

import argparse
import logging
import os
import signal

from .config import load_config, write_sample_config
from .errors import ConfigError
from .runner import build_runner
from .scheduler import SchedulerDriver


_TRUTHY = {"1", "true", "yes", "on"}


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="acn", description="AtCoder AC notifier (polling / scheduled)")
    p.add_argument("--config", default="config.json", help="Path to JSON config file (default: config.json)")
    p.add_argument(
        "--log-level",
        default=None,
        help="Log level (DEBUG/INFO/WARNING/ERROR). Defaults to env ACN_LOG_LEVEL or INFO",
    )

    mode = p.add_mutually_exclusive_group(required=False)
    mode.add_argument(
        "--once",
        action="store_true",
        help="Check all users once and exit (also enabled by env ACN_RUN_ONCE=1)",
    )
    mode.add_argument("--init-config", action="store_true", help="Write a sample config file and exit")
    return p


def _resolve_log_level(value: str | None) -> int:
    v = (value or "").strip().upper()
    if not v:
        return logging.INFO
    level = logging.getLevelNamesMapping().get(v)
    if isinstance(level, int):
        return level
    return logging.INFO


def _env_flag(name: str) -> bool:
    return (os.environ.get(name) or "").strip().lower() in _TRUTHY


def _install_signal_handlers(driver: SchedulerDriver, logger: logging.Logger) -> None:
    def _handler(signum, frame) -> None:  # noqa: ANN001, ARG001
        logger.info("received signal %s, shutting down gracefully", signum)
        driver.stop()

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)


def main(argv: list[str] | None = None) -> int:
    args = build_arg_parser().parse_args(argv)
    log_level = _resolve_log_level(args.log_level or os.environ.get("ACN_LOG_LEVEL"))
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logger = logging.getLogger("acn")

    if args.init_config:
        if not write_sample_config(args.config):
            logger.error("config file already exists, not overwriting: %s", args.config)
            return 1
        logger.info("sample config written: %s", args.config)
        return 0

    try:
        config = load_config(args.config)
    except ConfigError as e:
        logger.error("invalid configuration: %s", e)
        return 2

    runner = build_runner(config)
    once = args.once or _env_flag("ACN_RUN_ONCE")
    mode = "once" if once else config.mode

    logger.info("acn start: mode=%s config=%s", mode, args.config)
    logger.info(
        "config: users=%s retry_delay_seconds=%s polling_interval_seconds=%s schedule_times=%s timezone=%s state_path=%s",
        ",".join(config.users),
        config.retry_delay_seconds,
        config.polling_interval_seconds,
        ",".join(config.schedule_times) if config.schedule_times else "<none>",
        config.timezone,
        config.state_path,
    )
    channels = runner.notifier.channels() if hasattr(runner.notifier, "channels") else ()
    logger.info("notifiers: %s", ",".join(channels) if channels else "<none>")
    if not channels:
        logger.warning("no notifiers configured; new ACs will be marked but not delivered")

    if once:
        report = runner.check_all_users()
        logger.info(
            "once done: duration_ms=%d users=%d notified=%d notify_failures=%d user_errors=%d",
            report.duration_ms,
            len(report.users),
            report.notifications,
            report.notify_failures,
            report.user_errors,
        )
        return 0

    driver = SchedulerDriver(
        runner=runner,
        stop_event=runner.stop_event,
        polling_interval_seconds=config.polling_interval_seconds,
        schedules=config.cron_schedules(),
        tz=config.tzinfo(),
    )
    _install_signal_handlers(driver, logger)
    try:
        driver.run()
    except ConfigError as e:
        logger.error("invalid configuration: %s", e)
        return 2
    logger.info("acn stopped: cycles=%d", driver.cycles)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
