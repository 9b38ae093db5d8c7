from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Mapping

from .errors import ParseError


ACCEPTED = "AC"


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


def epoch_to_datetime(epoch_second: int) -> datetime:
    return datetime.fromtimestamp(epoch_second, tz=UTC)


def _require_int(obj: Mapping[str, Any], key: str) -> int:
    v = obj.get(key)
    if isinstance(v, bool) or not isinstance(v, int):
        raise ParseError(f"submission field {key!r} must be an integer, got {v!r}")
    return v


def _require_str(obj: Mapping[str, Any], key: str) -> str:
    v = obj.get(key)
    if not isinstance(v, str):
        raise ParseError(f"submission field {key!r} must be a string, got {v!r}")
    return v


def _optional_int(obj: Mapping[str, Any], key: str) -> int | None:
    v = obj.get(key)
    if v is None or isinstance(v, bool) or not isinstance(v, int):
        return None
    return v


@dataclass(frozen=True, slots=True)
class Submission:
    """
    AtCoder Problems API 返回的单条提交记录（只读）。

    只保留下游真正消费的字段；length / execution_time 允许缺失。
    """

    id: int
    epoch_second: int
    problem_id: str
    contest_id: str
    user_id: str
    language: str
    point: float
    result: str
    length: int | None = None
    execution_time: int | None = None

    @property
    def is_accepted(self) -> bool:
        return self.result == ACCEPTED

    @classmethod
    def from_api(cls, obj: Any) -> Submission:
        if not isinstance(obj, dict):
            raise ParseError(f"submission must be an object, got {type(obj).__name__}")
        point = obj.get("point", 0)
        if isinstance(point, bool) or not isinstance(point, (int, float)):
            raise ParseError(f"submission field 'point' must be a number, got {point!r}")
        return cls(
            id=_require_int(obj, "id"),
            epoch_second=_require_int(obj, "epoch_second"),
            problem_id=_require_str(obj, "problem_id"),
            contest_id=_require_str(obj, "contest_id"),
            user_id=_require_str(obj, "user_id"),
            language=_require_str(obj, "language"),
            point=float(point),
            result=_require_str(obj, "result"),
            length=_optional_int(obj, "length"),
            execution_time=_optional_int(obj, "execution_time"),
        )


@dataclass(frozen=True, slots=True)
class NotificationEvent:
    """
    一次“首次 AC”通知事件：由 detector 生成，交给 notifier 投递，不做持久化。
    """

    submission_id: int
    epoch_second: int
    user_id: str
    problem_id: str
    contest_id: str
    language: str
    point: float

    @classmethod
    def from_submission(cls, submission: Submission, *, user_id: str | None = None) -> NotificationEvent:
        return cls(
            submission_id=submission.id,
            epoch_second=submission.epoch_second,
            user_id=user_id or submission.user_id,
            problem_id=submission.problem_id,
            contest_id=submission.contest_id,
            language=submission.language,
            point=submission.point,
        )

    @property
    def timestamp(self) -> datetime:
        return epoch_to_datetime(self.epoch_second)

    @property
    def submission_url(self) -> str:
        return f"https://atcoder.jp/contests/{self.contest_id}/submissions/{self.submission_id}"

    def to_json_dict(self) -> dict[str, Any]:
        return {
            "submission_id": self.submission_id,
            "epoch_second": self.epoch_second,
            "timestamp": self.timestamp.isoformat(),
            "user_id": self.user_id,
            "problem_id": self.problem_id,
            "contest_id": self.contest_id,
            "language": self.language,
            "point": self.point,
            "url": self.submission_url,
        }
