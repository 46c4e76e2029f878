"""
Layer 1 – 数据获取层
从 CoinGecko 拉取现价与历史价格。这是核心流程中唯一发生网络 I/O 的地方：
先查缓存，未命中或过期才经过限流器发起请求，成功后写回缓存。
"""

import json
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Sequence

import requests

from crypto_advisor.config import settings
from crypto_advisor.exceptions import (
    CacheCorruptionError,
    NetworkError,
    RateLimitExceeded,
)
from crypto_advisor.layers.cache import (
    PRICES_KEY,
    CacheLayer,
    batch_history_key,
    get_history_cache,
    get_price_cache,
    history_key,
)
from crypto_advisor.layers.rate_limit import RateLimiter, get_rate_limiter
from crypto_advisor.models.market import CoinSpec, PriceSeries

logger = logging.getLogger(__name__)


# ── 响应解码 ──────────────────────────────────────────────

def decode_prices(payload: str, universe: Sequence[CoinSpec]) -> Dict[str, float]:
    """解析 /simple/price 响应：{coin_id: {"usd": n}} → {symbol: price}"""
    data = json.loads(payload)
    if not isinstance(data, dict):
        raise ValueError("现价响应不是 JSON 对象")
    prices: Dict[str, float] = {}
    for coin in universe:
        entry = data.get(coin.coin_id)
        if isinstance(entry, dict) and entry.get("usd") is not None:
            prices[coin.symbol] = float(entry["usd"])
    return prices


def decode_history(coin_id: str, payload: str) -> PriceSeries:
    """解析 /market_chart 响应：{"prices": [[ts_ms, price], ...]}"""
    data = json.loads(payload)
    raw = data.get("prices") if isinstance(data, dict) else None
    if not isinstance(raw, list):
        raise ValueError(f"{coin_id} 历史响应缺少 prices 数组")
    points = []
    for item in raw:
        if not isinstance(item, (list, tuple)) or len(item) < 2 or item[1] is None:
            raise ValueError(f"{coin_id} 历史响应包含无效数据点: {item!r}")
        points.append((int(item[0]), float(item[1])))
    points.sort(key=lambda p: p[0])
    return PriceSeries(coin_id=coin_id, points=tuple(points))


class AcquisitionLayer:
    """行情数据源：缓存 → 限流 → HTTP → 写回缓存"""

    def __init__(
        self,
        rate_limiter: RateLimiter,
        price_cache: CacheLayer,
        history_cache: CacheLayer,
        session: Optional[requests.Session] = None,
        base_url: Optional[str] = None,
        price_ttl: Optional[float] = None,
        history_ttl: Optional[float] = None,
        backoff_seconds: Optional[float] = None,
        timeout: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._limiter = rate_limiter
        self._price_cache = price_cache
        self._history_cache = history_cache
        self._base_url = (base_url or settings.COINGECKO_BASE_URL).rstrip("/")
        self._price_ttl = settings.PRICE_CACHE_TTL if price_ttl is None else price_ttl
        self._history_ttl = settings.HISTORY_CACHE_TTL if history_ttl is None else history_ttl
        self._backoff = (
            settings.RATE_LIMIT_BACKOFF_SECONDS if backoff_seconds is None else backoff_seconds
        )
        self._timeout = timeout or settings.HTTP_TIMEOUT
        self._sleep = sleep

        if session is None:
            session = requests.Session()
            session.headers.update({"User-Agent": settings.HTTP_USER_AGENT})
        self._session = session

    # ── 现价 ──────────────────────────────────────────────

    def fetch_current_prices(self, universe: Sequence[CoinSpec]) -> Dict[str, float]:
        """获取币种池的美元现价 {symbol: price}"""
        cached = self._cached(self._price_cache, PRICES_KEY, self._price_ttl,
                              lambda payload: decode_prices(payload, universe))
        if cached is not None:
            logger.info("使用缓存的现价快照")
            return cached

        payload = self._get(
            "/simple/price",
            {"ids": ",".join(c.coin_id for c in universe), "vs_currencies": "usd"},
        )
        prices = self._decode_fresh(lambda: decode_prices(payload, universe), PRICES_KEY)
        self._price_cache.put(PRICES_KEY, payload)
        logger.info(f"现价获取成功，共 {len(prices)} 个币种")
        return prices

    # ── 单币历史 ──────────────────────────────────────────

    def fetch_historical_series(self, coin_id: str, days: int) -> PriceSeries:
        """获取单币最近 days 天的日线价格序列"""
        key = history_key(coin_id, days)
        cached = self._cached(self._history_cache, key, self._history_ttl,
                              lambda payload: decode_history(coin_id, payload))
        if cached is not None:
            return cached

        payload = self._get(
            f"/coins/{coin_id}/market_chart",
            {"vs_currency": "usd", "days": days, "interval": "daily"},
        )
        series = self._decode_fresh(lambda: decode_history(coin_id, payload), key)
        self._history_cache.put(key, payload)
        logger.info(f"{coin_id} 历史价格获取成功（{days} 天），共 {len(series)} 个点")
        return series

    # ── 全币种历史（批量缓存） ─────────────────────────────

    def fetch_historical_prices(
        self, universe: Sequence[CoinSpec], days: int
    ) -> Dict[str, List[float]]:
        """
        获取币种池中所有币的历史价格 {symbol: [price, ...]}

        整体结果作为一个批量条目缓存；未命中时逐个获取，单币失败只记录日志。
        """
        key = batch_history_key(days)

        def _decode_batch(payload: str) -> Dict[str, List[float]]:
            data = json.loads(payload)
            if not isinstance(data, dict):
                raise ValueError("批量历史缓存不是 JSON 对象")
            return {
                c.symbol: [float(p) for p in data[c.coin_id]]
                for c in universe if c.coin_id in data
            }

        cached = self._cached(self._history_cache, key, self._history_ttl, _decode_batch)
        if cached is not None:
            logger.info("使用缓存的批量历史价格")
            return cached

        history: Dict[str, List[float]] = {}
        batch: Dict[str, List[float]] = {}
        for coin in universe:
            try:
                series = self.fetch_historical_series(coin.coin_id, days)
            except NetworkError as exc:
                logger.warning(f"历史价格获取失败（{coin.coin_id}）: {exc}")
                continue
            if len(series):
                history[coin.symbol] = series.prices
                batch[coin.coin_id] = series.prices

        self._history_cache.put(key, json.dumps(batch))
        return history

    # ── 内部工具 ──────────────────────────────────────────

    def _cached(
        self,
        cache: CacheLayer,
        key: str,
        ttl: float,
        decode: Callable[[str], Any],
    ) -> Optional[Any]:
        """缓存命中且未过期时返回解码结果；解码失败视为未命中"""
        lookup = cache.get(key)
        if lookup.expired(ttl):
            return None
        try:
            return decode(lookup.payload)
        except (ValueError, TypeError, KeyError) as exc:
            cache.discard(key, CacheCorruptionError(f"缓存内容无法解析 {key}: {exc}"))
            return None

    def _decode_fresh(self, decode: Callable[[], Any], key: str) -> Any:
        try:
            return decode()
        except (ValueError, TypeError, KeyError) as exc:
            raise NetworkError(f"API 响应格式无效（{key}）: {exc}") from exc

    def _get(self, path: str, params: Dict[str, Any]) -> str:
        """
        发起 GET 请求并返回原始响应文本

        429 时退避后重试一次，第二次 429 抛出 RateLimitExceeded；
        其他非 2xx 或传输失败抛出 NetworkError。
        """
        url = f"{self._base_url}{path}"
        for attempt in (1, 2):
            self._limiter.acquire()
            try:
                resp = self._session.get(url, params=params, timeout=self._timeout)
            except requests.RequestException as exc:
                raise NetworkError(f"请求失败 {url}: {exc}") from exc

            if resp.status_code == 429:
                if attempt == 1:
                    logger.warning(f"触发 API 限流，{self._backoff:g} 秒后重试: {url}")
                    self._sleep(self._backoff)
                    continue
                raise RateLimitExceeded(f"API 限流：重试后仍返回 HTTP 429 ({url})")

            if not 200 <= resp.status_code < 300:
                raise NetworkError(
                    f"获取数据失败: HTTP {resp.status_code} ({url})",
                    status_code=resp.status_code,
                )
            return resp.text

        raise RateLimitExceeded()


# ── 模块级别单例 ──────────────────────────────────────────
_acquisition: Optional[AcquisitionLayer] = None


def get_acquisition_layer() -> AcquisitionLayer:
    global _acquisition
    if _acquisition is None:
        _acquisition = AcquisitionLayer(
            rate_limiter=get_rate_limiter(),
            price_cache=get_price_cache(),
            history_cache=get_history_cache(),
        )
    return _acquisition
