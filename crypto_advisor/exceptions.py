"""选币服务异常定义"""

from typing import Optional


class AdvisorError(Exception):
    """所有选币服务异常的基类"""
    pass


class NetworkError(AdvisorError):
    """远程 API 返回非 2xx（429 除外）或传输失败"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimitExceeded(NetworkError):
    """连续两次收到 HTTP 429"""

    def __init__(self, message: str = "API 限流：重试后仍返回 HTTP 429"):
        super().__init__(message, status_code=429)


class InsufficientDataError(AdvisorError):
    """特征行不足，无法训练或打分"""
    pass


class CacheCorruptionError(AdvisorError):
    """缓存文件损坏或无法读取，按未命中处理"""
    pass


class RunInProgressError(AdvisorError):
    """已有选币流程在运行，拒绝并发启动第二个"""
    pass
