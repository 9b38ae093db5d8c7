from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any

from ..errors import StateIOError


logger = logging.getLogger(__name__)

LAST_CHECKED_KEY = "lastChecked"
SOLVED_PROBLEMS_KEY = "solvedProblems"


def solved_key(user_id: str, problem_id: str) -> str:
    return f"{user_id}:{problem_id}"


def _empty_state() -> dict[str, Any]:
    return {LAST_CHECKED_KEY: {}, SOLVED_PROBLEMS_KEY: {}}


def _repair(raw: Any, *, path: Path) -> dict[str, Any]:
    """
    补全 / 清洗从文件读出的状态文档。

    - 顶层不是对象：整体视为冷启动
    - lastChecked / solvedProblems 缺失或类型不对：置为空对象
    - cursor 值不是整数：丢弃该用户的 cursor（下次按首次检查处理）
    - 其他未知顶层字段原样保留，写回时不丢失
    """
    if not isinstance(raw, dict):
        logger.warning("state file is not an object, starting empty: path=%s", path)
        return _empty_state()

    state = dict(raw)
    last_checked = state.get(LAST_CHECKED_KEY)
    if not isinstance(last_checked, dict):
        last_checked = {}
    cursors: dict[str, int] = {}
    for user_id, value in last_checked.items():
        if isinstance(value, bool) or not isinstance(value, int):
            logger.warning("dropping invalid cursor: path=%s user=%s value=%r", path, user_id, value)
            continue
        cursors[str(user_id)] = value
    state[LAST_CHECKED_KEY] = cursors

    solved = state.get(SOLVED_PROBLEMS_KEY)
    if not isinstance(solved, dict):
        solved = {}
    state[SOLVED_PROBLEMS_KEY] = {str(k): v for k, v in solved.items()}
    return state


class JsonStateStore:
    """
    JSON 文件状态存储。

    文件结构：
    {
      "lastChecked": {"tourist": 1700000000},
      "solvedProblems": {"tourist:abc300_a": true}
    }

    - 启动时加载一次；文件缺失或损坏时降级为空状态（冷启动），不会导致启动失败
    - 每次状态变更后同步落盘（临时文件 + os.replace 原子替换）
    - 落盘失败只记录日志，内存状态照常推进：最坏情况是重启后重复处理已通知过的提交，
      而 solved marks 会挡住重复通知
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(path)
        self._lock = threading.RLock()
        self._state = self._load()

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            logger.info("state file not found, starting empty: path=%s", self.path)
            return _empty_state()
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError):
            logger.exception("state file unreadable, starting empty: path=%s", self.path)
            return _empty_state()
        return _repair(raw, path=self.path)

    def save(self) -> None:
        """立即落盘；失败抛 StateIOError。"""
        with self._lock:
            payload = json.dumps(self._state, ensure_ascii=False, indent=2, sort_keys=True)
            directory = self.path.parent
            try:
                directory.mkdir(parents=True, exist_ok=True)
                fd, tmp = tempfile.mkstemp(prefix=f".{self.path.name}.", suffix=".tmp", dir=directory)
            except OSError as e:
                raise StateIOError(f"failed to write state file {self.path}: {e}") from e
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(payload)
                os.replace(tmp, self.path)
            except OSError as e:
                try:
                    os.remove(tmp)
                except OSError:
                    pass
                raise StateIOError(f"failed to write state file {self.path}: {e}") from e

    def _flush(self) -> None:
        try:
            self.save()
        except StateIOError:
            logger.exception("state flush failed, keeping in-memory state: path=%s", self.path)

    def get_cursor(self, user_id: str) -> int | None:
        with self._lock:
            return self._state[LAST_CHECKED_KEY].get(user_id)

    def set_cursor(self, user_id: str, epoch_seconds: int) -> None:
        with self._lock:
            self._state[LAST_CHECKED_KEY][user_id] = int(epoch_seconds)
            self._flush()

    def is_marked_solved(self, user_id: str, problem_id: str) -> bool:
        with self._lock:
            return self._state[SOLVED_PROBLEMS_KEY].get(solved_key(user_id, problem_id)) is True

    def mark_solved(self, user_id: str, problem_id: str) -> None:
        with self._lock:
            if self.is_marked_solved(user_id, problem_id):
                return
            self._state[SOLVED_PROBLEMS_KEY][solved_key(user_id, problem_id)] = True
            self._flush()

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return copy.deepcopy(self._state)
