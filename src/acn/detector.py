from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable

from .models import NotificationEvent, Submission
from .state.store import StateStore


logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class DetectionReport:
    user_id: str
    cursor_before: int | None
    cursor_after: int | None
    submissions: int
    accepted: int
    skipped_solved: int
    events: tuple[NotificationEvent, ...]
    emit_failures: tuple[str, ...]


@dataclass(slots=True)
class ChangeDetector:
    """
    变化检测 / 去重引擎：把一批提交记录转换为“首次 AC”通知。

    处理顺序：
    - 按 epoch_second 升序稳定排序（同秒保持原顺序）
    - 只看 result == "AC"
    - 未标记过的 (user, problem)：先 mark_solved，再 emit
      先标记后投递：投递失败不会导致下一轮重复通知
    - 最后把 cursor 推进到整批（含非 AC）最后一条的时间
    """

    state: StateStore

    def process(
        self,
        user_id: str,
        batch: Iterable[Submission],
        emit: Callable[[NotificationEvent], object],
    ) -> DetectionReport:
        cursor_before = self.state.get_cursor(user_id)
        ordered = sorted(batch, key=lambda s: s.epoch_second)
        if not ordered:
            return DetectionReport(
                user_id=user_id,
                cursor_before=cursor_before,
                cursor_after=cursor_before,
                submissions=0,
                accepted=0,
                skipped_solved=0,
                events=(),
                emit_failures=(),
            )

        accepted = [s for s in ordered if s.is_accepted]
        events: list[NotificationEvent] = []
        failures: list[str] = []
        skipped = 0

        for submission in accepted:
            if self.state.is_marked_solved(user_id, submission.problem_id):
                skipped += 1
                continue

            self.state.mark_solved(user_id, submission.problem_id)
            event = NotificationEvent.from_submission(submission, user_id=user_id)
            events.append(event)
            logger.info(
                "new AC: user=%s problem=%s contest=%s submission_id=%d epoch_second=%d",
                user_id,
                event.problem_id,
                event.contest_id,
                event.submission_id,
                event.epoch_second,
            )
            logger.debug("event: %s", event.to_json_dict())
            try:
                emit(event)
            except Exception as e:  # noqa: BLE001
                failures.append(f"{type(e).__name__}: {e}")
                logger.exception(
                    "emit failed: user=%s problem=%s submission_id=%d",
                    user_id,
                    event.problem_id,
                    event.submission_id,
                )

        cursor_after = ordered[-1].epoch_second
        self.state.set_cursor(user_id, cursor_after)

        return DetectionReport(
            user_id=user_id,
            cursor_before=cursor_before,
            cursor_after=cursor_after,
            submissions=len(ordered),
            accepted=len(accepted),
            skipped_solved=skipped,
            events=tuple(events),
            emit_failures=tuple(failures),
        )
