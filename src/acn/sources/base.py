from __future__ import annotations

from typing import Protocol

from ..models import Submission


class SubmissionSource(Protocol):
    """
    提交记录源接口：拉取某个用户“自 since 秒以来”的提交。

    约定：
    - since 为 None 表示首次检查，由 source 自行决定回看窗口
    - 用户不存在 / 窗口内没有提交时返回空列表，而不是抛异常
    - 返回顺序不做保证，排序由 detector 负责
    """

    def key(self) -> str: ...

    def fetch(self, user_id: str, since: int | None) -> list[Submission]: ...
