from __future__ import annotations

import gzip
import http.client
import json
import random
import socket
import ssl
import time
import urllib.error
import urllib.parse
import urllib.request
import zlib
from dataclasses import dataclass
from typing import Any, Mapping

import brotli

from .errors import FetchError, FetchTimeoutError, HttpStatusError, ParseError


def decompress_body(body: bytes, content_encoding: str | None) -> bytes:
    """
    按 Content-Encoding 解压响应体（gzip / deflate / br）。

    解压失败属于“数据处理错误”，抛出 ParseError 而不是网络错误。
    """
    encoding = (content_encoding or "").strip().lower()
    if not encoding or encoding == "identity":
        return body
    try:
        if encoding in ("gzip", "x-gzip"):
            return gzip.decompress(body)
        if encoding == "deflate":
            # 部分服务端发送不带 zlib 头的 raw deflate
            try:
                return zlib.decompress(body)
            except zlib.error:
                return zlib.decompress(body, -zlib.MAX_WBITS)
        if encoding == "br":
            return brotli.decompress(body)
    except (OSError, EOFError, zlib.error, brotli.error) as e:
        raise ParseError(f"failed to decompress {encoding} body: {e}") from e
    raise ParseError(f"unsupported content-encoding: {encoding}")


def _header(headers: Mapping[str, str], name: str) -> str | None:
    for k, v in headers.items():
        if k.lower() == name.lower():
            return v
    return None


@dataclass(frozen=True, slots=True)
class HttpResponse:
    status: int
    url: str
    headers: Mapping[str, str]
    body: bytes

    def content(self) -> bytes:
        return decompress_body(self.body, _header(self.headers, "Content-Encoding"))

    def json(self) -> Any:
        raw = self.content()
        try:
            return json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ParseError(f"invalid JSON from {self.url}: {e}") from e


def _is_timeout(e: BaseException) -> bool:
    if isinstance(e, (TimeoutError, socket.timeout)):
        return True
    reason = getattr(e, "reason", None)
    return isinstance(reason, (TimeoutError, socket.timeout))


class HttpClient:
    """
    轻量 HTTP 客户端（标准库 urllib），供 Sources 拉取接口。

    - 统一超时（默认 30 秒）与请求头
    - 对 429/5xx 做有限次退避重试
    - 非 2xx 统一抛 HttpStatusError，超时抛 FetchTimeoutError，其他网络错误抛 FetchError
    """

    def __init__(
        self,
        *,
        timeout_seconds: float = 30.0,
        user_agent: str = "atcoder-ac-notifier/0",
        max_retries: int = 2,
        base_backoff_seconds: float = 0.8,
        verify_ssl: bool = True,
    ) -> None:
        self._timeout_seconds = timeout_seconds
        self._user_agent = user_agent
        self._max_retries = max_retries
        self._base_backoff_seconds = base_backoff_seconds
        self._ssl_context = ssl.create_default_context() if verify_ssl else ssl._create_unverified_context()

    def get(self, url: str, *, headers: Mapping[str, str] | None = None) -> HttpResponse:
        request_headers = {"User-Agent": self._user_agent}
        if headers:
            request_headers.update(dict(headers))

        last_error: FetchError | None = None
        for attempt in range(self._max_retries + 1):
            try:
                req = urllib.request.Request(url=url, headers=request_headers, method="GET")
                with urllib.request.urlopen(req, timeout=self._timeout_seconds, context=self._ssl_context) as resp:
                    resp_headers = {k: v for k, v in resp.headers.items()}
                    return HttpResponse(
                        status=getattr(resp, "status", 200),
                        url=resp.geturl(),
                        headers=resp_headers,
                        body=resp.read(),
                    )
            except urllib.error.HTTPError as e:
                try:
                    body = e.read() or b""
                except Exception:  # noqa: BLE001
                    body = b""
                last_error = HttpStatusError(e.code, url, body)
                retry = e.code in (429, 500, 502, 503, 504)
                if (not retry) or attempt >= self._max_retries:
                    raise last_error from e
            except (urllib.error.URLError, http.client.HTTPException, OSError) as e:
                if _is_timeout(e):
                    last_error = FetchTimeoutError(f"request timed out after {self._timeout_seconds}s: {url}")
                else:
                    last_error = FetchError(f"network error: {url}: {e}")
                # 超时不重试，避免单个用户把整轮拖长数倍
                if isinstance(last_error, FetchTimeoutError) or attempt >= self._max_retries:
                    raise last_error from e

            backoff = self._base_backoff_seconds * (2**attempt)
            jitter = random.random() * 0.25 * backoff
            time.sleep(backoff + jitter)

        assert last_error is not None
        raise last_error


def with_query_params(url: str, params: Mapping[str, str]) -> str:
    parsed = urllib.parse.urlparse(url)
    q = dict(urllib.parse.parse_qsl(parsed.query, keep_blank_values=True))
    q.update({k: v for k, v in params.items() if v is not None})
    new_query = urllib.parse.urlencode(q)
    return urllib.parse.urlunparse(parsed._replace(query=new_query))
