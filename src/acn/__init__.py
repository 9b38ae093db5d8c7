"""
AtCoder AC Notifier (acn)

轮询 AtCoder Problems 的提交记录，检测监控用户“首次 AC”的题目，
每个 (用户, 题目) 只通知一次；状态（cursor 与已通知记录）持久化在 JSON 文件中，
进程重启后不会重复通知。
"""

from .models import NotificationEvent, Submission

__all__ = [
    "NotificationEvent",
    "Submission",
]
