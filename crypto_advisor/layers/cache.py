"""
Layer 2 – 缓存层
优先级：内存（进程内会话） → 文件（跨进程持久）

文件内容即 API 原始 JSON 响应，不加任何包装，文件修改时间即写入时间，
因此可以人工查看或预先放入缓存文件。
"""

import hashlib
import logging
import os
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Set, Tuple

from crypto_advisor.config import settings
from crypto_advisor.exceptions import CacheCorruptionError

logger = logging.getLogger(__name__)

PRICES_KEY = "current_prices"


def history_key(coin_id: str, days: int) -> str:
    """单币历史序列缓存键"""
    return f"{coin_id}_hist_{days}"


def batch_history_key(days: int) -> str:
    """全币种历史价格批量缓存键"""
    return f"historical_prices_{days}"


def _file_name(key: str) -> str:
    safe = key.replace(":", "_").replace("/", "_").replace("\\", "_")
    if len(safe) > 200:
        safe = safe[:64] + "_" + hashlib.md5(safe.encode()).hexdigest()
    return f"{safe}.json"


@dataclass(frozen=True)
class CacheLookup:
    """get() 的返回值：payload / 是否命中 / 条目年龄（秒）"""
    payload: Optional[str]
    found: bool
    age: float = 0.0

    @classmethod
    def miss(cls) -> "CacheLookup":
        return cls(payload=None, found=False, age=float("inf"))

    def expired(self, ttl: float) -> bool:
        """未命中或年龄超过 ttl 秒即视为过期"""
        return (not self.found) or self.age > ttl


class CacheLayer:
    """
    两级缓存

    - put() 在启用内存层时同时写内存与文件（write-through），否则只写文件
    - get() 先查内存（超过会话 TTL 的内存条目视为不存在），再查文件
    - is_expired() 按条目写入时间与调用方给定的 TTL 判断
    """

    def __init__(
        self,
        cache_dir: str,
        name: str = "cache",
        use_memory: bool = True,
        memory_ttl: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.name = name
        self.cache_dir = cache_dir
        self.use_memory = use_memory
        self.memory_ttl = memory_ttl
        self._clock = clock
        self._memory: Dict[str, Tuple[str, float]] = {}
        # 本实例写入或读到过的文件键；多个缓存可共用同一目录
        self._disk_keys: Set[str] = set()
        self._lock = threading.Lock()
        self._stats = {
            "memory_hits": 0,
            "disk_hits": 0,
            "misses": 0,
            "writes": 0,
            "corrupt": 0,
        }
        os.makedirs(self.cache_dir, exist_ok=True)

    def file_path(self, key: str) -> str:
        return os.path.join(self.cache_dir, _file_name(key))

    # ── 读取 ──────────────────────────────────────────────

    def get(self, key: str) -> CacheLookup:
        now = self._clock()

        # L1: 内存
        if self.use_memory:
            with self._lock:
                entry = self._memory.get(key)
            if entry is not None:
                payload, written_at = entry
                age = max(0.0, now - written_at)
                if self.memory_ttl is None or age <= self.memory_ttl:
                    self._bump("memory_hits")
                    logger.debug(f"缓存命中（内存）[{self.name}]: {key}")
                    return CacheLookup(payload=payload, found=True, age=age)

        # L2: 文件
        entry = self._read_file(key)
        if entry is None:
            self._bump("misses")
            return CacheLookup.miss()

        payload, written_at = entry
        with self._lock:
            self._disk_keys.add(key)
            if self.use_memory:
                # 提升到内存层，保留原始写入时间
                self._memory[key] = (payload, written_at)
        self._bump("disk_hits")
        logger.debug(f"缓存命中（文件）[{self.name}]: {key}")
        return CacheLookup(payload=payload, found=True, age=max(0.0, now - written_at))

    def _read_file(self, key: str) -> Optional[Tuple[str, float]]:
        path = self.file_path(key)
        if not os.path.exists(path):
            return None
        try:
            with open(path, "r", encoding="utf-8") as fh:
                payload = fh.read()
            written_at = os.path.getmtime(path)
        except (OSError, UnicodeDecodeError) as exc:
            self._report_corrupt(CacheCorruptionError(f"缓存文件无法读取 {path}: {exc}"))
            return None
        if not payload.strip():
            self._report_corrupt(CacheCorruptionError(f"缓存文件为空 {path}"))
            return None
        return payload, written_at

    def _report_corrupt(self, exc: CacheCorruptionError) -> None:
        self._bump("corrupt")
        logger.warning(f"⚠️ {exc}，按未命中处理")

    def discard(self, key: str, exc: CacheCorruptionError) -> None:
        """调用方解码失败时上报：丢弃内存条目，文件保留等待下次覆盖"""
        if self.use_memory:
            with self._lock:
                self._memory.pop(key, None)
        self._report_corrupt(exc)

    # ── 写入 ──────────────────────────────────────────────

    def put(self, key: str, payload: str) -> None:
        written_at = self._clock()
        if self.use_memory:
            with self._lock:
                self._memory[key] = (payload, written_at)

        path = self.file_path(key)
        try:
            os.makedirs(self.cache_dir, exist_ok=True)
            tmp_path = f"{path}.{threading.get_ident()}.tmp"
            with open(tmp_path, "w", encoding="utf-8") as fh:
                fh.write(payload)
            os.utime(tmp_path, (written_at, written_at))
            os.replace(tmp_path, path)
            with self._lock:
                self._disk_keys.add(key)
            logger.debug(f"缓存写入（文件）[{self.name}]: {key}")
        except OSError as exc:
            logger.warning(f"文件缓存写入失败 [{self.name}] {key}: {exc}")
        self._bump("writes")

    # ── 过期判断 ──────────────────────────────────────────

    def is_expired(self, key: str, ttl: float) -> bool:
        """条目不存在或年龄超过 ttl 秒即视为过期"""
        return self.get(key).expired(ttl)

    # ── 统计 ──────────────────────────────────────────────

    def _bump(self, counter: str) -> None:
        with self._lock:
            self._stats[counter] += 1

    def stats(self) -> dict:
        """返回各层缓存统计信息；file.entries 为本缓存的文件条目数，file.dir_files 为目录内文件总数"""
        with self._lock:
            result = {"name": self.name, **self._stats}
            disk_entries = len(self._disk_keys)
            result["memory"] = (
                {"entries": len(self._memory), "ttl": self.memory_ttl, "status": "enabled"}
                if self.use_memory else {"status": "disabled"}
            )
        try:
            file_count = len([
                f for f in os.listdir(self.cache_dir) if f.endswith(".json")
            ]) if os.path.exists(self.cache_dir) else 0
            result["file"] = {
                "entries": disk_entries,
                "dir_files": file_count,
                "dir": self.cache_dir,
                "status": "healthy",
            }
        except OSError as exc:
            result["file"] = {"status": "error", "error": str(exc)}
        return result


# ── 模块级别单例 ──────────────────────────────────────────
_price_cache: Optional[CacheLayer] = None
_history_cache: Optional[CacheLayer] = None


def get_price_cache() -> CacheLayer:
    """现价快照缓存：仅文件层，短 TTL"""
    global _price_cache
    if _price_cache is None:
        _price_cache = CacheLayer(settings.CACHE_DIR, name="prices", use_memory=False)
    return _price_cache


def get_history_cache() -> CacheLayer:
    """历史序列缓存：内存 + 文件，长 TTL"""
    global _history_cache
    if _history_cache is None:
        _history_cache = CacheLayer(
            settings.CACHE_DIR,
            name="history",
            use_memory=settings.MEMORY_CACHE_ENABLED,
            memory_ttl=settings.MEMORY_CACHE_TTL,
        )
    return _history_cache
