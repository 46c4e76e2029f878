"""
Layer 3 – 数据处理层
将按时间排序的价格序列转换为监督回归可用的特征表（滑动窗口统计）。
"""

import logging
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd
from numpy.lib.stride_tricks import sliding_window_view

from crypto_advisor.models.market import PriceSeries

logger = logging.getLogger(__name__)

WINDOW = 7
FEATURE_COLUMNS = ["prev_price", "ma3", "ma7", "volatility3"]
TARGET_COLUMN = "target"


class ProcessingLayer:
    """特征构建：每一行由目标价之前的 7 个价格计算"""

    def build_features(self, series: PriceSeries) -> pd.DataFrame:
        """
        构建特征表

        对 i = 7 .. len-1：
          prev_price  = p[i-1]
          ma3         = mean(p[i-3 .. i-1])
          ma7         = mean(p[i-7 .. i-1])
          volatility3 = p[i-3 .. i-1] 围绕 ma3 的总体标准差
          target      = p[i]

        长度为 L 的序列产生 max(0, L-7) 行；少于 8 个点返回空表（列齐全）。
        纯函数，同一输入多次调用结果逐位一致。
        """
        prices = np.asarray(series.prices, dtype=float)
        if len(prices) <= WINDOW:
            return self.empty_table()

        windows = sliding_window_view(prices[:-1], WINDOW)
        last3 = windows[:, -3:]
        ma3 = last3.mean(axis=1)
        ma7 = windows.mean(axis=1)
        volatility3 = np.sqrt(((last3 - ma3[:, None]) ** 2).mean(axis=1))

        return pd.DataFrame({
            "prev_price": windows[:, -1],
            "ma3": ma3,
            "ma7": ma7,
            "volatility3": volatility3,
            TARGET_COLUMN: prices[WINDOW:],
        })

    def empty_table(self) -> pd.DataFrame:
        return pd.DataFrame({col: pd.Series(dtype=float) for col in FEATURE_COLUMNS + [TARGET_COLUMN]})

    def series_to_frame(self, series: PriceSeries) -> pd.DataFrame:
        """价格序列转 DataFrame（date, timestamp, price），用于展示"""
        if not len(series):
            return pd.DataFrame(columns=["date", "timestamp", "price"])
        df = pd.DataFrame(series.points, columns=["timestamp", "price"])
        df["date"] = pd.to_datetime(df["timestamp"], unit="ms", utc=True).dt.strftime("%Y-%m-%d")
        return df[["date", "timestamp", "price"]]

    def to_records(self, df: pd.DataFrame, decimals: Optional[int] = None) -> List[Dict[str, Any]]:
        """DataFrame 转换为字典列表"""
        if df.empty:
            return []
        if decimals is not None:
            df = df.round(decimals)
        return df.to_dict(orient="records")


# ── 模块级别单例 ──────────────────────────────────────────
_processor: Optional[ProcessingLayer] = None


def get_processing_layer() -> ProcessingLayer:
    global _processor
    if _processor is None:
        _processor = ProcessingLayer()
    return _processor
