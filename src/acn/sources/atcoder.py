from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Mapping

from ..errors import HttpStatusError, ParseError
from ..http_utils import HttpClient, with_query_params
from ..models import Submission


logger = logging.getLogger(__name__)

DEFAULT_API_BASE = "https://kenkoooo.com/atcoder/atcoder-api"
DEFAULT_LOOKBACK_SECONDS = 24 * 60 * 60

# kenkoooo.com 会拒绝部分脚本默认的 User-Agent，这里使用接近浏览器的请求头。
_BROWSER_HEADERS: Mapping[str, str] = {
    "User-Agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/145.0.0.0 Safari/537.36"
    ),
    "Accept": "application/json,text/html;q=0.9,*/*;q=0.8",
    "Accept-Language": "ja,en-US;q=0.9,en;q=0.8",
    "Accept-Encoding": "gzip, deflate, br",
    "Cache-Control": "max-age=0",
}


@dataclass(slots=True)
class AtCoderProblemsSource:
    """
    AtCoder Problems（kenkoooo）提交记录源。

    接口：GET {base}/v3/user/submissions?user=<id>&from_second=<epoch>
    - from_second 为闭区间下界
    - 404 视为“没有提交”，返回空列表
    """

    http: HttpClient
    base_url: str = DEFAULT_API_BASE
    lookback_seconds: int = DEFAULT_LOOKBACK_SECONDS
    clock: Callable[[], float] = field(default=time.time)

    def key(self) -> str:
        return "atcoder-problems"

    def submissions_url(self, user_id: str, from_second: int) -> str:
        return with_query_params(
            f"{self.base_url.rstrip('/')}/v3/user/submissions",
            {"user": user_id, "from_second": str(from_second)},
        )

    def fetch(self, user_id: str, since: int | None) -> list[Submission]:
        from_second = since if since is not None else int(self.clock()) - self.lookback_seconds
        url = self.submissions_url(user_id, from_second)

        try:
            resp = self.http.get(url, headers=_BROWSER_HEADERS)
        except HttpStatusError as e:
            if e.status == 404:
                logger.debug("no submissions: user=%s from_second=%d", user_id, from_second)
                return []
            raise

        data = resp.json()
        if not isinstance(data, list):
            raise ParseError(f"AtCoder Problems API expected list, got {type(data).__name__}: {resp.url}")

        submissions = [Submission.from_api(it) for it in data]
        logger.debug("fetched submissions: user=%s from_second=%d count=%d", user_id, from_second, len(submissions))
        return submissions
