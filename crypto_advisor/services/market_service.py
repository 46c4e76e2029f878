"""
行情数据服务
整合数据获取、处理两层，对外提供现价查询与历史价格/特征查询；
账户、持仓等外部模块只通过这里读取价格。
"""

import logging
from typing import Any, Dict, List, Optional

from crypto_advisor.config import settings
from crypto_advisor.layers.acquisition import AcquisitionLayer, get_acquisition_layer
from crypto_advisor.layers.processing import ProcessingLayer, get_processing_layer
from crypto_advisor.models.market import CoinSpec

logger = logging.getLogger(__name__)


class MarketService:
    """行情业务服务"""

    def __init__(
        self,
        acquisition: Optional[AcquisitionLayer] = None,
        processing: Optional[ProcessingLayer] = None,
    ):
        self._acq = acquisition or get_acquisition_layer()
        self._proc = processing or get_processing_layer()

    # ── 币种池 ────────────────────────────────────────────

    def get_coins(self) -> List[CoinSpec]:
        return CoinSpec.from_pairs(settings.COIN_UNIVERSE)

    def find_coin(self, coin_id_or_symbol: str) -> Optional[CoinSpec]:
        """按 CoinGecko ID 或交易代码查找（代码不区分大小写）"""
        needle = coin_id_or_symbol.lower()
        for coin in self.get_coins():
            if coin.coin_id == needle or coin.symbol.lower() == needle:
                return coin
        return None

    # ── 现价 ──────────────────────────────────────────────

    def get_current_prices(self) -> Dict[str, float]:
        """币种池美元现价 {symbol: price}"""
        return self._acq.fetch_current_prices(self.get_coins())

    def get_historical_prices(self, days: int) -> Dict[str, List[float]]:
        """币种池历史价格 {symbol: [price, ...]}"""
        return self._acq.fetch_historical_prices(self.get_coins(), days)

    # ── 单币历史 + 特征 ───────────────────────────────────

    def get_history(self, coin: CoinSpec, days: int) -> Dict[str, Any]:
        """
        获取单币历史价格及其特征表

        Returns:
            {
                "coin_id": "...", "symbol": "...", "days": 30,
                "prices": [{ "date": "...", "timestamp": ..., "price": ... }, ...],
                "features": [{ "prev_price": ..., "ma3": ..., ... }, ...]
            }
        """
        series = self._acq.fetch_historical_series(coin.coin_id, days)
        frame = self._proc.series_to_frame(series)
        features = self._proc.build_features(series)
        return {
            "coin_id": coin.coin_id,
            "symbol": coin.symbol,
            "days": days,
            "count": len(series),
            "prices": self._proc.to_records(frame),
            "features": self._proc.to_records(features, decimals=6),
        }


# ── 模块级别单例 ──────────────────────────────────────────
_market_service: Optional[MarketService] = None


def get_market_service() -> MarketService:
    global _market_service
    if _market_service is None:
        _market_service = MarketService()
    return _market_service
