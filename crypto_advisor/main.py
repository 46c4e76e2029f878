"""
Crypto Advisor 行情与选币服务
独立 FastAPI 应用程序入口

启动方式:
    uvicorn crypto_advisor.main:app --host 0.0.0.0 --port 8002
    python -m crypto_advisor.main
"""

import logging
import os
import time
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from crypto_advisor import __version__
from crypto_advisor.config import settings
from crypto_advisor.models.response import ApiResponse
from crypto_advisor.routers import advisor, cache, health, market

# ── 日志配置 ──────────────────────────────────────────────
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# ── 生命周期管理 ──────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用启动/关闭生命周期钩子"""
    logger.info("=" * 60)
    logger.info(f"🚀 Crypto Advisor v{__version__} 启动中")
    logger.info(f"   数据源    : {settings.COINGECKO_BASE_URL}")
    logger.info(f"   缓存目录  : {settings.CACHE_DIR}")
    logger.info(f"   调用间隔  : {settings.API_CALL_INTERVAL_MS}ms")
    logger.info(f"   币种数量  : {len(settings.COIN_UNIVERSE)}")
    logger.info("=" * 60)

    try:
        os.makedirs(settings.CACHE_DIR, exist_ok=True)
    except OSError as exc:
        logger.warning(f"⚠️ 缓存目录创建失败（文件缓存将不可用）: {exc}")

    yield

    logger.info("✅ 选币服务已关闭")


# ── 应用实例 ──────────────────────────────────────────────
app = FastAPI(
    title="Crypto Advisor 行情与选币服务",
    description=(
        "独立的加密货币行情与选币微服务，提供以下功能：\n"
        "- 📊 币种池现价 / 历史价格（CoinGecko）\n"
        "- 🗄️ 两级缓存（内存 → 文件）\n"
        "- ⏱️ 进程级 API 限流\n"
        "- 🤖 随机森林回归打分，推荐预测增长率最高的币\n\n"
        "**分层架构**\n"
        "```\n"
        "RateLimit Layer    ← 调用间隔闸门\n"
        "Acquisition Layer  ← 从 CoinGecko 拉取原始数据\n"
        "Cache Layer        ← 内存 / 文件两级缓存\n"
        "Processing Layer   ← 滑动窗口特征构建\n"
        "Analysis Layer     ← 回归模型打分\n"
        "```"
    ),
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# ── CORS 中间件 ───────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── 请求计时中间件 ─────────────────────────────────────────
@app.middleware("http")
async def add_process_time(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    response.headers["X-Process-Time"] = f"{(time.time() - start) * 1000:.1f}ms"
    return response


# ── 全局异常处理 ──────────────────────────────────────────
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"未处理的异常: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content=ApiResponse.fail(error="内部服务错误", message=str(exc)).model_dump(),
    )


# ── 注册路由 ──────────────────────────────────────────────
app.include_router(health.router)
app.include_router(market.router)
app.include_router(advisor.router)
app.include_router(cache.router)


# ── 根路由 ───────────────────────────────────────────────
@app.get("/", include_in_schema=False)
async def root():
    return {
        "service": "Crypto Advisor",
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
    }


# ── 直接运行入口 ──────────────────────────────────────────
if __name__ == "__main__":
    uvicorn.run(
        "crypto_advisor.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )
