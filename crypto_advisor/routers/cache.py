"""
缓存管理路由
GET  /api/cache/stats     - 缓存与限流统计
"""

from fastapi import APIRouter

from crypto_advisor.layers.cache import get_history_cache, get_price_cache
from crypto_advisor.layers.rate_limit import get_rate_limiter
from crypto_advisor.models.response import ApiResponse

router = APIRouter(prefix="/api/cache", tags=["缓存管理"])


@router.get("/stats", response_model=ApiResponse)
def cache_stats():
    """获取两类缓存的各层统计，以及 API 限流器统计"""
    return ApiResponse.ok(
        data={
            "prices": get_price_cache().stats(),
            "history": get_history_cache().stats(),
            "rate_limiter": get_rate_limiter().get_stats(),
        },
    )
