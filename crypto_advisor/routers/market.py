"""
行情数据路由
GET /api/market/coins               - 支持的币种池
GET /api/market/prices              - 币种池美元现价
GET /api/market/history             - 币种池历史价格（批量）
GET /api/market/{coin}/history      - 单币历史价格与特征表
"""

from typing import Optional

from fastapi import APIRouter, HTTPException, Query, status

from crypto_advisor.config import settings
from crypto_advisor.exceptions import NetworkError
from crypto_advisor.models.response import ApiResponse
from crypto_advisor.services.market_service import get_market_service

router = APIRouter(prefix="/api/market", tags=["行情数据"])


def _upstream_error(exc: NetworkError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail=str(exc),
    )


@router.get("/coins", response_model=ApiResponse)
def list_coins():
    """获取支持的币种池（顺序即推荐平局时的优先顺序）"""
    coins = get_market_service().get_coins()
    return ApiResponse.ok(
        data={
            "count": len(coins),
            "coins": [{"coin_id": c.coin_id, "symbol": c.symbol} for c in coins],
        },
    )


@router.get("/prices", response_model=ApiResponse)
def current_prices():
    """获取币种池的美元现价"""
    try:
        prices = get_market_service().get_current_prices()
    except NetworkError as exc:
        raise _upstream_error(exc)
    return ApiResponse.ok(data={"currency": "usd", "count": len(prices), "prices": prices})


@router.get("/history", response_model=ApiResponse)
def all_history(
    days: Optional[int] = Query(default=None, ge=1, le=365, description="回看天数，默认取配置"),
):
    """获取币种池所有币的历史价格"""
    lookback = days or settings.LOOKBACK_DAYS
    history = get_market_service().get_historical_prices(lookback)
    return ApiResponse.ok(data={"days": lookback, "count": len(history), "history": history})


@router.get("/{coin}/history", response_model=ApiResponse)
def coin_history(
    coin: str,
    days: Optional[int] = Query(default=None, ge=1, le=365, description="回看天数，默认取配置"),
):
    """获取单币历史价格及特征表，coin 可以是 CoinGecko ID 或交易代码"""
    svc = get_market_service()
    spec = svc.find_coin(coin)
    if spec is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"不支持的币种: {coin}",
        )
    try:
        result = svc.get_history(spec, days or settings.LOOKBACK_DAYS)
    except NetworkError as exc:
        raise _upstream_error(exc)
    return ApiResponse.ok(data=result)
