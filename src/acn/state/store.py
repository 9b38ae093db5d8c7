from __future__ import annotations

from typing import Protocol


class StateStore(Protocol):
    """
    状态与幂等层接口：
    - cursor：每个用户最近一次处理到的提交时间（epoch 秒），None 表示从未检查过
    - solved marks：已经通知过的 (user, problem) 集合，只增不减
    """

    def get_cursor(self, user_id: str) -> int | None: ...

    def set_cursor(self, user_id: str, epoch_seconds: int) -> None: ...

    def is_marked_solved(self, user_id: str, problem_id: str) -> bool: ...

    def mark_solved(self, user_id: str, problem_id: str) -> None: ...
