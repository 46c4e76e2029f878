"""行情与选币领域模型"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple


@dataclass(frozen=True)
class CoinSpec:
    """币种池中的一个币：CoinGecko ID + 交易代码"""
    coin_id: str   # e.g. "bitcoin"
    symbol: str    # e.g. "BTC"

    @classmethod
    def from_pairs(cls, pairs: Sequence[Sequence[str]]) -> List["CoinSpec"]:
        return [cls(coin_id=p[0], symbol=p[1]) for p in pairs]


@dataclass(frozen=True)
class PriceSeries:
    """
    单个币种的历史价格序列，按时间升序

    points 为 (timestamp_ms, price) 二元组，获取后不可变
    """
    coin_id: str
    points: Tuple[Tuple[int, float], ...] = ()

    @property
    def prices(self) -> List[float]:
        return [p for _, p in self.points]

    def __len__(self) -> int:
        return len(self.points)


@dataclass(frozen=True)
class GrowthScore:
    """单币打分结果：(预测价 - 现价) / 现价"""
    symbol: str
    growth: float


class RunState(str, Enum):
    """选币流程状态机"""
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass
class RunReport:
    """一次选币流程的汇总（供 HTTP 层展示）"""
    state: RunState = RunState.IDLE
    recommendation: Optional[str] = None
    scores: Dict[str, float] = field(default_factory=dict)
    skipped: List[str] = field(default_factory=list)
    lookback_days: Optional[int] = None
    concurrent: Optional[bool] = None
    started_at: Optional[float] = None
    finished_at: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "recommendation": self.recommendation,
            "scores": dict(self.scores),
            "skipped": list(self.skipped),
            "lookback_days": self.lookback_days,
            "concurrent": self.concurrent,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
        }
