"""
选币服务配置模块
支持从环境变量读取配置，自动检测 Docker 容器环境并调整缓存目录
"""

import os
from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _is_docker() -> bool:
    """检测当前是否运行在 Docker 容器内"""
    return (
        os.path.exists("/.dockerenv")
        or os.environ.get("DOCKER_CONTAINER", "").lower() in ("1", "true", "yes")
    )


def _default_cache_dir() -> str:
    """Docker 环境使用挂载卷 /app/data/cache，本地使用相对目录"""
    return "/app/data/cache" if _is_docker() else "data/cache"


# ── 默认币种池（CoinGecko ID → 交易代码，顺序即决胜顺序） ──
DEFAULT_COIN_UNIVERSE: List[List[str]] = [
    ["bitcoin", "BTC"],
    ["ethereum", "ETH"],
    ["tether", "USDT"],
    ["binancecoin", "BNB"],
    ["solana", "SOL"],
    ["usd-coin", "USDC"],
    ["ripple", "XRP"],
    ["cardano", "ADA"],
    ["dogecoin", "DOGE"],
    ["avalanche-2", "AVAX"],
]


class AdvisorSettings(BaseSettings):
    """选币服务配置"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── 基础配置 ──────────────────────────────────────────
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=8002)
    DEBUG: bool = Field(default=False)
    ALLOWED_ORIGINS: List[str] = Field(
        default_factory=lambda: ["*"]
    )

    # ── 数据源配置 ─────────────────────────────────────────
    COINGECKO_BASE_URL: str = Field(default="https://api.coingecko.com/api/v3")
    HTTP_TIMEOUT: float = Field(default=10.0)
    HTTP_USER_AGENT: str = Field(default="Mozilla/5.0")
    COIN_UNIVERSE: List[List[str]] = Field(
        default_factory=lambda: [list(pair) for pair in DEFAULT_COIN_UNIVERSE]
    )

    # ── 限流配置 ──────────────────────────────────────────
    API_CALL_INTERVAL_MS: int = Field(default=1200)       # 免费档约 50 次/分钟
    RATE_LIMIT_BACKOFF_SECONDS: float = Field(default=5.0)  # 429 后的退避时间

    # ── 缓存配置 ──────────────────────────────────────────
    CACHE_DIR: str = Field(default_factory=_default_cache_dir)
    PRICE_CACHE_TTL: int = Field(default=900)      # 现价快照 TTL（秒）
    HISTORY_CACHE_TTL: int = Field(default=3600)   # 历史序列 TTL，现价的 4 倍
    MEMORY_CACHE_TTL: int = Field(default=3600)    # 进程内会话缓存 TTL
    MEMORY_CACHE_ENABLED: bool = Field(default=True)

    # ── 选币流程配置 ──────────────────────────────────────
    LOOKBACK_DAYS: int = Field(default=30)
    MIN_FEATURE_ROWS: int = Field(default=5)
    MAX_WORKERS: int = Field(default=4)            # 并发上限，保护 API 配额
    POLL_INTERVAL: float = Field(default=0.2)      # 等待任务时检查取消的间隔
    RUN_TIMEOUT: float = Field(default=300.0)
    CONCURRENT_MODE: bool = Field(default=True)

    # ── 模型配置 ──────────────────────────────────────────
    MODEL_N_ESTIMATORS: int = Field(default=100)
    MODEL_RANDOM_STATE: Optional[int] = Field(default=None)

    # ── 日志配置 ──────────────────────────────────────────
    LOG_LEVEL: str = Field(default="INFO")

    @property
    def API_CALL_INTERVAL(self) -> float:
        return self.API_CALL_INTERVAL_MS / 1000.0


@lru_cache
def get_settings() -> AdvisorSettings:
    """获取全局配置（单例）"""
    return AdvisorSettings()


settings = get_settings()
