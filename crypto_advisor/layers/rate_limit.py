"""
Layer 0 – 限流层
所有出站 API 调用前必须经过同一个 RateLimiter，保证相邻两次调用的
起始时间间隔不小于配置的 interval。

用法:
    limiter = get_rate_limiter()
    limiter.acquire()   # 阻塞直到允许调用
    session.get(url)
"""

import logging
import threading
import time
from typing import Callable, Dict, Optional

from crypto_advisor.config import settings

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    最小间隔限流器

    last_call 的更新是"比较后写入"：持锁比较 now 与 last_call + interval，
    满足条件才写入并放行；不满足则在锁外休眠后重新比较，
    因此并发调用方不会绕过间隔。
    """

    def __init__(
        self,
        interval: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Args:
            interval: 相邻两次调用的最小间隔（秒）
            clock: 单调时钟，测试时可替换
            sleep: 休眠函数，测试时可替换
        """
        self.interval = interval
        self._clock = clock
        self._sleep = sleep
        self._last_call: Optional[float] = None
        self._lock = threading.Lock()

        self._stats = {
            "acquired": 0,
            "waited": 0,
            "total_wait_time": 0.0,
        }

    def acquire(self) -> float:
        """
        阻塞直到距上一次放行至少经过 interval，然后记录本次调用时间

        Returns:
            本次被记录的调用时间（clock 读数）
        """
        start = self._clock()
        while True:
            with self._lock:
                now = self._clock()
                if self._last_call is None or now - self._last_call >= self.interval:
                    self._last_call = now
                    self._stats["acquired"] += 1
                    waited = now - start
                    if waited > 0.01:
                        self._stats["waited"] += 1
                        self._stats["total_wait_time"] += waited
                    return now
                remaining = self._last_call + self.interval - now

            # 锁外休眠，醒来后重新比较（期间可能被其他线程抢先）
            self._sleep(remaining)

    def get_stats(self) -> Dict:
        """获取限流统计"""
        with self._lock:
            avg_wait = (
                self._stats["total_wait_time"] / self._stats["waited"]
                if self._stats["waited"] > 0
                else 0
            )
            return {
                "interval_seconds": self.interval,
                "acquired": self._stats["acquired"],
                "waited": self._stats["waited"],
                "avg_wait_seconds": round(avg_wait, 3),
            }


# ── 进程级实例（按引用注入到数据获取层） ──────────────────
_rate_limiter: Optional[RateLimiter] = None
_rate_limiter_lock = threading.Lock()


def get_rate_limiter() -> RateLimiter:
    global _rate_limiter
    if _rate_limiter is None:
        with _rate_limiter_lock:
            if _rate_limiter is None:
                _rate_limiter = RateLimiter(settings.API_CALL_INTERVAL)
                logger.info(f"API 限流器已创建，调用间隔 {settings.API_CALL_INTERVAL_MS}ms")
    return _rate_limiter
