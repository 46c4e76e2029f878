"""
选币服务（Orchestrator）
整合数据获取、处理、分析三层：对币种池逐个获取历史价格 → 构建特征 → 打分，
选出预测增长率最高的币。支持顺序 / 有界并发两种模式，均可协作式取消。
"""

import logging
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Dict, List, Optional, Sequence

from crypto_advisor.config import settings
from crypto_advisor.exceptions import RunInProgressError
from crypto_advisor.layers.acquisition import AcquisitionLayer, get_acquisition_layer
from crypto_advisor.layers.analysis import AnalysisLayer, get_analysis_layer
from crypto_advisor.layers.processing import ProcessingLayer, get_processing_layer
from crypto_advisor.models.market import CoinSpec, GrowthScore, RunReport, RunState

logger = logging.getLogger(__name__)


class CancellationToken:
    """一次运行共享的取消标志：只能由 False 变为 True，不可重置"""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class AdvisorService:
    """选币业务服务"""

    def __init__(
        self,
        acquisition: Optional[AcquisitionLayer] = None,
        processing: Optional[ProcessingLayer] = None,
        analysis: Optional[AnalysisLayer] = None,
        max_workers: Optional[int] = None,
        min_feature_rows: Optional[int] = None,
        poll_interval: Optional[float] = None,
        run_timeout: Optional[float] = None,
    ):
        self._acq = acquisition or get_acquisition_layer()
        self._proc = processing or get_processing_layer()
        self._analysis = analysis or get_analysis_layer()
        cap = max_workers or settings.MAX_WORKERS
        self.max_workers = max(1, min(os.cpu_count() or 1, cap))
        self.min_feature_rows = min_feature_rows or settings.MIN_FEATURE_ROWS
        self.poll_interval = poll_interval or settings.POLL_INTERVAL
        self.run_timeout = run_timeout or settings.RUN_TIMEOUT

        self._lock = threading.Lock()
        self._current_token: Optional[CancellationToken] = None
        self._report = RunReport()

    # ── 运行状态 ──────────────────────────────────────────

    @property
    def last_report(self) -> RunReport:
        with self._lock:
            return self._report

    def cancel(self) -> bool:
        """取消正在进行的运行，返回是否存在进行中的运行"""
        with self._lock:
            token = self._current_token
            running = self._report.state == RunState.RUNNING
        if token is None or not running:
            return False
        token.cancel()
        logger.info("已请求取消当前选币流程")
        return True

    # ── 入口 ──────────────────────────────────────────────

    def default_universe(self) -> List[CoinSpec]:
        """配置中的币种池"""
        return CoinSpec.from_pairs(settings.COIN_UNIVERSE)

    def run(
        self,
        universe: Sequence[CoinSpec],
        lookback_days: int,
        cancel_token: Optional[CancellationToken] = None,
        concurrent: bool = True,
    ) -> Optional[str]:
        """
        对币种池打分并返回推荐的交易代码

        Args:
            universe: 币种池，列表顺序即平局时的优先顺序
            lookback_days: 历史窗口天数
            cancel_token: 取消标志，每次运行需新建
            concurrent: True 使用有界线程池，False 顺序执行

        Returns:
            推荐币种代码；被取消或没有任何币产生有效分数时返回 None

        Raises:
            RunInProgressError: 已有选币流程在运行
        """
        token = cancel_token or CancellationToken()
        report = RunReport(
            state=RunState.RUNNING,
            lookback_days=lookback_days,
            concurrent=concurrent,
            started_at=time.time(),
        )
        # 检查与占用在同一把锁内完成，cancel() 始终指向进行中的那次运行
        with self._lock:
            if self._report.state == RunState.RUNNING:
                raise RunInProgressError("已有选币流程正在运行")
            self._current_token = token
            self._report = report

        skipped: List[str] = []
        if token.cancelled:
            logger.info("选币流程在开始前已被取消")
            return self._finish(report, RunState.CANCELLED, None)

        mode = "并发" if concurrent else "顺序"
        logger.info(f"🚀 开始选币（{mode}模式），币种数 {len(universe)}，回看 {lookback_days} 天")

        try:
            if concurrent:
                scores = self._run_concurrent(universe, lookback_days, token, skipped)
            else:
                scores = self._run_sequential(universe, lookback_days, token, skipped)
        except Exception:
            self._finish(report, RunState.FAILED, None, skipped=skipped)
            raise

        if scores is None:
            logger.info("选币流程已取消，丢弃结果")
            return self._finish(report, RunState.CANCELLED, None, skipped=skipped)

        best = self._select_best(universe, scores)
        if best is None:
            logger.warning("⚠️ 所有币种均未产生有效分数，本次无推荐")
            return self._finish(report, RunState.FAILED, None, scores, skipped)

        logger.info(f"✅ 推荐币种: {best}（增长率 {scores[best]:.4f}）")
        return self._finish(report, RunState.COMPLETED, best, scores, skipped)

    def _finish(
        self,
        report: RunReport,
        state: RunState,
        best: Optional[str],
        scores: Optional[Dict[str, float]] = None,
        skipped: Sequence[str] = (),
    ) -> Optional[str]:
        """写入终态；报告只保存此刻的结果副本，之后仍在运行的任务不会再改动它"""
        with self._lock:
            report.state = state
            report.recommendation = best
            report.scores = dict(scores or {})
            report.skipped = list(skipped)
            report.finished_at = time.time()
        return best

    # ── 单币流程 ──────────────────────────────────────────

    def _score_coin(
        self, coin: CoinSpec, lookback_days: int, skipped: List[str]
    ) -> Optional[GrowthScore]:
        """获取 → 特征 → 打分；失败或数据不足返回 None，不向上抛出"""
        try:
            series = self._acq.fetch_historical_series(coin.coin_id, lookback_days)
            table = self._proc.build_features(series)
            if len(table) < self.min_feature_rows:
                logger.warning(
                    f"{coin.coin_id} 数据不足（{len(series)} 个价格点，"
                    f"{len(table)} 行特征 < {self.min_feature_rows}），跳过"
                )
                self._record_skip(skipped, coin.symbol)
                return None
            growth = self._analysis.score_growth(table, coin.symbol)
            return GrowthScore(symbol=coin.symbol, growth=growth)
        except Exception as exc:
            logger.warning(f"{coin.coin_id} 处理失败: {exc}")
            self._record_skip(skipped, coin.symbol)
            return None

    def _record_skip(self, skipped: List[str], symbol: str) -> None:
        with self._lock:
            skipped.append(symbol)

    def _record_score(self, scores: Dict[str, float], score: GrowthScore) -> None:
        with self._lock:
            scores[score.symbol] = score.growth

    # ── 顺序模式 ──────────────────────────────────────────

    def _run_sequential(
        self,
        universe: Sequence[CoinSpec],
        lookback_days: int,
        token: CancellationToken,
        skipped: List[str],
    ) -> Optional[Dict[str, float]]:
        scores: Dict[str, float] = {}
        for coin in universe:
            if token.cancelled:
                return None
            score = self._score_coin(coin, lookback_days, skipped)
            if score is not None:
                self._record_score(scores, score)
        return scores

    # ── 并发模式 ──────────────────────────────────────────

    def _run_concurrent(
        self,
        universe: Sequence[CoinSpec],
        lookback_days: int,
        token: CancellationToken,
        skipped: List[str],
    ) -> Optional[Dict[str, float]]:
        scores: Dict[str, float] = {}

        def _task(coin: CoinSpec) -> None:
            if token.cancelled:
                return
            score = self._score_coin(coin, lookback_days, skipped)
            if score is not None:
                self._record_score(scores, score)

        executor = ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="advisor"
        )
        cancelled = False
        pending = set()
        try:
            pending = {executor.submit(_task, coin) for coin in universe}
            deadline = time.monotonic() + self.run_timeout
            while pending:
                if token.cancelled:
                    cancelled = True
                    break
                if time.monotonic() >= deadline:
                    logger.warning(f"⚠️ 选币等待超时（{self.run_timeout:g} 秒），未完成 {len(pending)} 个币种")
                    break
                _, pending = wait(pending, timeout=self.poll_interval)
            if token.cancelled:
                cancelled = True
        finally:
            # 取消或超时时不等待进行中的任务，其结果会被丢弃
            executor.shutdown(wait=not cancelled and not pending, cancel_futures=True)

        if cancelled:
            return None
        with self._lock:
            return dict(scores)

    # ── 结果归约 ──────────────────────────────────────────

    @staticmethod
    def _select_best(universe: Sequence[CoinSpec], scores: Dict[str, float]) -> Optional[str]:
        """按币种池顺序取增长率最大者，平局时先出现者胜出"""
        best: Optional[str] = None
        best_growth = float("-inf")
        for coin in universe:
            growth = scores.get(coin.symbol)
            if growth is not None and growth > best_growth:
                best_growth = growth
                best = coin.symbol
        return best


# ── 模块级别单例 ──────────────────────────────────────────
_advisor_service: Optional[AdvisorService] = None


def get_advisor_service() -> AdvisorService:
    global _advisor_service
    if _advisor_service is None:
        _advisor_service = AdvisorService()
    return _advisor_service
