"""健康检查路由"""

import os
import time

from fastapi import APIRouter

from crypto_advisor import __version__
from crypto_advisor.config import settings

router = APIRouter(tags=["健康检查"])


def _cache_dir_status() -> dict:
    path = settings.CACHE_DIR
    if not os.path.isdir(path):
        return {"status": "missing", "dir": path}
    if not os.access(path, os.W_OK):
        return {"status": "readonly", "dir": path}
    return {"status": "healthy", "dir": path}


@router.get("/health")
async def health():
    """服务健康检查"""
    return {
        "success": True,
        "data": {
            "status": "ok",
            "version": __version__,
            "timestamp": int(time.time()),
            "service": "Crypto Advisor",
            "cache": _cache_dir_status(),
        },
        "message": "服务运行正常",
    }


@router.get("/healthz")
async def healthz():
    """Kubernetes liveness probe"""
    return {"status": "ok"}


@router.get("/readyz")
async def readyz():
    """Kubernetes readiness probe"""
    return {"ready": True}
