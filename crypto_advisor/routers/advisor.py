"""
选币路由
POST /api/advisor/recommend   - 运行选币流程（阻塞直到完成或被取消）
POST /api/advisor/cancel      - 取消进行中的选币流程
GET  /api/advisor/status      - 最近一次运行的状态与各币分数
"""

from typing import Optional

from fastapi import APIRouter, HTTPException, status

from crypto_advisor.config import settings
from crypto_advisor.exceptions import RunInProgressError
from crypto_advisor.models.response import ApiResponse, RecommendRequest
from crypto_advisor.services.advisor_service import CancellationToken, get_advisor_service

router = APIRouter(prefix="/api/advisor", tags=["选币"])


@router.post("/recommend", response_model=ApiResponse)
def recommend(body: Optional[RecommendRequest] = None):
    """
    对币种池训练模型并返回预测增长率最高的币

    - 没有推荐（全部失败或被取消）不是错误，`recommendation` 为 null
    """
    body = body or RecommendRequest()
    lookback = body.lookback_days or settings.LOOKBACK_DAYS
    concurrent = settings.CONCURRENT_MODE if body.concurrent is None else body.concurrent
    if lookback < 1:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"lookback_days 必须为正整数: {lookback}",
        )

    svc = get_advisor_service()
    try:
        recommendation = svc.run(
            svc.default_universe(),
            lookback,
            cancel_token=CancellationToken(),
            concurrent=concurrent,
        )
    except RunInProgressError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        )
    report = svc.last_report.to_dict()
    message = f"推荐币种: {recommendation}" if recommendation else "本次无推荐"
    return ApiResponse.ok(data=report, message=message)


@router.post("/cancel", response_model=ApiResponse)
def cancel():
    """请求取消进行中的选币流程"""
    cancelled = get_advisor_service().cancel()
    return ApiResponse.ok(
        data={"cancelled": cancelled},
        message="已请求取消" if cancelled else "当前没有进行中的选币流程",
    )


@router.get("/status", response_model=ApiResponse)
def run_status():
    """最近一次（或进行中）选币流程的状态"""
    return ApiResponse.ok(data=get_advisor_service().last_report.to_dict())
