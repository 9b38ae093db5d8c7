from __future__ import annotations

from typing import Protocol

from ..models import NotificationEvent


class Notifier(Protocol):
    """
    通知接口：向某个渠道投递一条 AC 通知。

    约定：
    - notify 失败抛异常（渠道实现抛 NotificationError），由调用方统一捕获并记录
    - channel() 用于日志与故障记录
    - 新渠道只需实现该接口，不需要修改 MultiNotifier
    """

    def channel(self) -> str: ...

    def notify(self, event: NotificationEvent) -> object: ...
