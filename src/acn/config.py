from __future__ import annotations

import json
import math
import os
from dataclasses import dataclass
from typing import Any, Mapping
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .errors import ConfigError
from .models import utc_now
from .scheduler import CronSchedule
from .sources.atcoder import DEFAULT_API_BASE


DEFAULT_STATE_PATH = "data/state.json"
DEFAULT_TIMEZONE = "Asia/Tokyo"
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_DISCORD_WEBHOOK_ENV = "DISCORD_WEBHOOK_URL"


def _require_dict(value: Any, *, where: str) -> Mapping[str, Any]:
    if not isinstance(value, dict):
        raise ConfigError(f"Expected object at {where}, got {type(value).__name__}")
    return value


def _get_bool(d: Mapping[str, Any], key: str, default: bool) -> bool:
    v = d.get(key, default)
    return bool(v)


def _is_number(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool)


def _get_positive_number(d: Mapping[str, Any], key: str, *, where: str, default: float | None = None) -> float | None:
    v = d.get(key)
    if v is None:
        return default
    if not _is_number(v) or not math.isfinite(v) or v <= 0:
        raise ConfigError(f"{where}.{key} must be a positive finite number, got {v!r}")
    return float(v)


def _get_str(d: Mapping[str, Any], key: str, default: str | None = None) -> str | None:
    v = d.get(key, default)
    if v is None:
        return None
    return str(v)


def _get_str_list(d: Mapping[str, Any], key: str, *, where: str) -> list[str] | None:
    v = d.get(key)
    if v is None:
        return None
    if not isinstance(v, list) or not all(isinstance(x, str) for x in v):
        raise ConfigError(f"{where}.{key} must be a list of strings")
    return list(v)


@dataclass(frozen=True, slots=True)
class DiscordNotifyConfig:
    """
    Discord webhook 通知配置。

    webhook_env:
      - webhook URL 所在的环境变量名（URL 本身视为 secret，不写进配置文件）
    """

    webhook_env: str = DEFAULT_DISCORD_WEBHOOK_ENV


@dataclass(frozen=True, slots=True)
class AppConfig:
    """
    应用总配置。

    users:
      - 监控的 AtCoder 用户 ID（按顺序逐个检查）
    polling_interval_seconds / schedule_times:
      - 两种调度模式二选一；schedule_times 非空时优先
    retry_delay_seconds:
      - 某个用户检查失败后，等待多久再继续下一个用户
    state_path:
      - JSON 状态文件路径（cursor 与已通知记录）
    """

    users: tuple[str, ...]
    retry_delay_seconds: float
    polling_interval_seconds: float | None = None
    schedule_times: tuple[str, ...] = ()
    timezone: str = DEFAULT_TIMEZONE
    state_path: str = DEFAULT_STATE_PATH
    request_timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    api_base_url: str = DEFAULT_API_BASE
    console: bool = True
    discord: DiscordNotifyConfig | None = None

    @property
    def mode(self) -> str:
        return "schedule" if self.schedule_times else "polling"

    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def cron_schedules(self) -> tuple[CronSchedule, ...]:
        return tuple(CronSchedule.from_spec(s) for s in self.schedule_times)

    def resolve_env(self, env_name: str | None) -> str | None:
        if not env_name:
            return None
        return os.environ.get(env_name)


def parse_config(raw: Any) -> AppConfig:
    root = _require_dict(raw, where="$")

    users = _get_str_list(root, "users", where="$")
    if users is None:
        raise ConfigError("$.users is required")
    users = [u.strip() for u in users]
    if not users or not all(users):
        raise ConfigError("$.users must contain at least one non-empty user id")

    retry_delay = _get_positive_number(root, "retryDelaySeconds", where="$")
    if retry_delay is None:
        raise ConfigError("$.retryDelaySeconds is required")

    polling_interval = _get_positive_number(root, "pollingIntervalSeconds", where="$")
    schedule_times = tuple(s.strip() for s in (_get_str_list(root, "scheduleTimes", where="$") or []))
    if not schedule_times and polling_interval is None:
        raise ConfigError("either $.scheduleTimes or $.pollingIntervalSeconds must be configured")

    timezone = _get_str(root, "timezone", DEFAULT_TIMEZONE) or DEFAULT_TIMEZONE
    try:
        ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError, OSError) as e:
        raise ConfigError(f"$.timezone is not a valid IANA time zone: {timezone!r}") from e

    timeout = _get_positive_number(root, "requestTimeoutSeconds", where="$", default=DEFAULT_TIMEOUT_SECONDS)

    notify = _require_dict(root.get("notify", {}), where="$.notify")
    discord_cfg: DiscordNotifyConfig | None = None
    if isinstance(notify.get("discord"), dict):
        dc = _require_dict(notify["discord"], where="$.notify.discord")
        discord_cfg = DiscordNotifyConfig(
            webhook_env=_get_str(dc, "webhookEnv", DEFAULT_DISCORD_WEBHOOK_ENV) or DEFAULT_DISCORD_WEBHOOK_ENV,
        )

    config = AppConfig(
        users=tuple(users),
        retry_delay_seconds=retry_delay,
        polling_interval_seconds=polling_interval,
        schedule_times=schedule_times,
        timezone=timezone,
        state_path=_get_str(root, "statePath", DEFAULT_STATE_PATH) or DEFAULT_STATE_PATH,
        request_timeout_seconds=timeout or DEFAULT_TIMEOUT_SECONDS,
        api_base_url=_get_str(root, "apiBaseUrl", DEFAULT_API_BASE) or DEFAULT_API_BASE,
        console=_get_bool(notify, "console", True),
        discord=discord_cfg,
    )
    # 提前解析 cron 并试算下一次触发，把格式错误和永不触发的表达式暴露在启动阶段
    now = utc_now()
    for schedule in config.cron_schedules():
        schedule.next_after(now)
    return config


def load_config(config_path: str) -> AppConfig:
    """
    读取 JSON 配置文件。

    JSON 顶层结构（示意）：
    {
      "users": ["tourist"],
      "pollingIntervalSeconds": 300,
      "retryDelaySeconds": 60,
      "scheduleTimes": ["09:00", "0 21 * * 1-5"],
      "timezone": "Asia/Tokyo",
      "statePath": "data/state.json",
      "notify": { "console": true, "discord": { "webhookEnv": "DISCORD_WEBHOOK_URL" } }
    }
    """
    try:
        with open(config_path, "rb") as f:
            raw = json.loads(f.read().decode("utf-8"))
    except FileNotFoundError as e:
        raise ConfigError(f"config file not found: {config_path}") from e
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ConfigError(f"failed to read config file {config_path}: {e}") from e
    return parse_config(raw)


SAMPLE_CONFIG: Mapping[str, Any] = {
    "users": ["tourist", "jiangly"],
    "retryDelaySeconds": 60,
    "scheduleTimes": ["09:00", "21:00"],
    "timezone": DEFAULT_TIMEZONE,
    "statePath": DEFAULT_STATE_PATH,
    "notify": {"console": True, "discord": {"webhookEnv": DEFAULT_DISCORD_WEBHOOK_ENV}},
}


def write_sample_config(config_path: str) -> bool:
    """写出示例配置；文件已存在时不覆盖并返回 False。"""
    if os.path.exists(config_path):
        return False
    parent = os.path.dirname(os.path.abspath(config_path))
    os.makedirs(parent, exist_ok=True)
    with open(config_path, "w", encoding="utf-8") as f:
        json.dump(SAMPLE_CONFIG, f, ensure_ascii=False, indent=2)
        f.write("\n")
    return True
