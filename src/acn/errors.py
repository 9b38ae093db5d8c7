from __future__ import annotations


class AcnError(Exception):
    """acn 所有业务异常的基类。"""


class ConfigError(AcnError):
    """配置缺失或不合法：启动阶段即失败（进程非 0 退出）。"""


class FetchError(AcnError):
    """
    拉取提交记录失败（网络错误、超时、非 2xx 状态、数据处理失败）。

    单个用户的 FetchError 只影响该用户本轮检查，不会中断整个周期。
    """


class HttpStatusError(FetchError):
    def __init__(self, status: int, url: str, body: bytes = b"") -> None:
        super().__init__(f"HTTP {status} from {url}: {body[:200]!r}")
        self.status = status
        self.url = url
        self.body = body


class FetchTimeoutError(FetchError):
    pass


class ParseError(FetchError):
    """响应解压 / JSON 解析 / 数据结构不符合预期。"""


class StateIOError(AcnError):
    """状态文件读写失败。持久化是尽力而为的，调用方只记录日志。"""


class NotificationError(AcnError):
    """某个通知渠道投递失败；不影响已标记的状态，也不影响其他渠道。"""
