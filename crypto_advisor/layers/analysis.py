"""
Layer 4 – 分析层
在特征表上训练回归模型，返回最新一行的预测增长率：
    growth = (predicted - actual) / actual
模型可替换，只要求 fit(X, y) / predict(X) 接口。
"""

import logging
from typing import Any, Callable, Optional

import pandas as pd
from sklearn.ensemble import RandomForestRegressor
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import StandardScaler

from crypto_advisor.config import settings
from crypto_advisor.exceptions import InsufficientDataError
from crypto_advisor.layers.processing import FEATURE_COLUMNS, TARGET_COLUMN

logger = logging.getLogger(__name__)

ModelFactory = Callable[[], Any]


def default_model_factory() -> Pipeline:
    """标准化输入特征后接随机森林回归"""
    return Pipeline([
        ("scaler", StandardScaler()),
        ("forest", RandomForestRegressor(
            n_estimators=settings.MODEL_N_ESTIMATORS,
            random_state=settings.MODEL_RANDOM_STATE,
        )),
    ])


class AnalysisLayer:
    """打分层：每次调用新建模型，线程间不共享状态"""

    def __init__(self, model_factory: Optional[ModelFactory] = None):
        self._model_factory = model_factory or default_model_factory

    def score_growth(self, table: pd.DataFrame, symbol: str = "") -> float:
        """
        训练模型并返回最新一行的相对增长率

        Args:
            table: build_features 输出的特征表
            symbol: 仅用于日志

        Raises:
            InsufficientDataError: 特征表为空，或最新价格为 0
        """
        if table is None or table.empty:
            raise InsufficientDataError(f"{symbol or '特征表'} 没有可用的特征行")

        X = table[FEATURE_COLUMNS]
        y = table[TARGET_COLUMN]

        model = self._model_factory()
        model.fit(X, y)

        latest = X.iloc[[-1]]
        predicted = float(model.predict(latest)[0])
        actual = float(y.iloc[-1])
        if actual == 0:
            raise InsufficientDataError(f"{symbol} 最新价格为 0，无法计算增长率")

        growth = (predicted - actual) / actual
        logger.info(
            f"币种 {symbol}: 现价={actual:.2f} 预测={predicted:.2f} 增长率={growth:.4f}"
        )
        return growth


# ── 模块级别单例 ──────────────────────────────────────────
_analysis: Optional[AnalysisLayer] = None


def get_analysis_layer() -> AnalysisLayer:
    global _analysis
    if _analysis is None:
        _analysis = AnalysisLayer()
    return _analysis
