"""
选币服务 HTTP 路由测试

通过 TestClient 调用各路由，数据获取层以 MagicMock 替换，不访问真实网络。
"""

import os
import sys
import threading
import time
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

# 确保项目根目录在 sys.path
ROOT = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from crypto_advisor.exceptions import NetworkError, RunInProgressError  # noqa: E402
from crypto_advisor.layers.processing import ProcessingLayer  # noqa: E402
from crypto_advisor.models.market import PriceSeries, RunState  # noqa: E402
from crypto_advisor.services.advisor_service import AdvisorService  # noqa: E402
from crypto_advisor.services.market_service import MarketService  # noqa: E402

DAY_MS = 86_400_000


def _series(coin_id: str, n: int = 12, start: float = 100.0) -> PriceSeries:
    return PriceSeries(
        coin_id=coin_id,
        points=tuple((i * DAY_MS, start + i) for i in range(n)),
    )


@pytest.fixture(scope="module")
def client():
    from crypto_advisor.main import app
    with TestClient(app) as c:
        yield c


@pytest.fixture
def acquisition():
    acq = MagicMock()
    acq.fetch_historical_series.side_effect = lambda coin_id, days: _series(coin_id)
    return acq


# ─────────────────────────────────────────────────────────
# 1. 健康检查
# ─────────────────────────────────────────────────────────

class TestHealthRoutes:
    def test_health(self, client):
        r = client.get("/health")
        body = r.json()
        assert r.status_code == 200 and body["data"]["status"] == "ok"
        assert body["data"]["cache"]["status"] == "healthy"

    def test_healthz(self, client):
        assert client.get("/healthz").json()["status"] == "ok"

    def test_readyz(self, client):
        assert client.get("/readyz").json()["ready"] is True

    def test_root(self, client):
        body = client.get("/").json()
        assert "version" in body and "docs" in body

    def test_process_time_header(self, client):
        assert "X-Process-Time" in client.get("/healthz").headers


# ─────────────────────────────────────────────────────────
# 2. 行情数据
# ─────────────────────────────────────────────────────────

class TestMarketRoutes:
    def _patch(self, acquisition):
        svc = MarketService(acquisition=acquisition, processing=ProcessingLayer())
        return patch("crypto_advisor.routers.market.get_market_service", return_value=svc)

    def test_coins(self, client, acquisition):
        with self._patch(acquisition):
            r = client.get("/api/market/coins")
        data = r.json()["data"]
        assert data["count"] == 10
        assert data["coins"][0] == {"coin_id": "bitcoin", "symbol": "BTC"}

    def test_prices(self, client, acquisition):
        acquisition.fetch_current_prices.return_value = {"BTC": 50000.0, "ETH": 3000.0}
        with self._patch(acquisition):
            r = client.get("/api/market/prices")
        assert r.status_code == 200
        assert r.json()["data"]["prices"]["BTC"] == 50000.0

    def test_prices_upstream_failure(self, client, acquisition):
        acquisition.fetch_current_prices.side_effect = NetworkError("HTTP 503", status_code=503)
        with self._patch(acquisition):
            r = client.get("/api/market/prices")
        assert r.status_code == 502

    def test_batch_history(self, client, acquisition):
        acquisition.fetch_historical_prices.return_value = {"BTC": [1.0, 2.0]}
        with self._patch(acquisition):
            r = client.get("/api/market/history", params={"days": 14})
        data = r.json()["data"]
        assert data["days"] == 14 and data["history"]["BTC"] == [1.0, 2.0]
        assert acquisition.fetch_historical_prices.call_args[0][1] == 14

    def test_batch_history_rejects_zero_days(self, client, acquisition):
        with self._patch(acquisition):
            assert client.get("/api/market/history", params={"days": 0}).status_code == 422

    def test_coin_history_by_symbol(self, client, acquisition):
        with self._patch(acquisition):
            r = client.get("/api/market/eth/history", params={"days": 30})
        data = r.json()["data"]
        assert r.status_code == 200
        assert data["coin_id"] == "ethereum" and data["symbol"] == "ETH"
        assert data["count"] == 12
        assert len(data["prices"]) == 12
        assert len(data["features"]) == 5
        assert data["features"][0]["prev_price"] == 106.0

    def test_coin_history_unknown(self, client, acquisition):
        with self._patch(acquisition):
            assert client.get("/api/market/notacoin/history").status_code == 404

    def test_coin_history_upstream_failure(self, client, acquisition):
        acquisition.fetch_historical_series.side_effect = NetworkError("timeout")
        with self._patch(acquisition):
            assert client.get("/api/market/bitcoin/history").status_code == 502


# ─────────────────────────────────────────────────────────
# 3. 选币
# ─────────────────────────────────────────────────────────

class TestAdvisorRoutes:
    def _service(self, acquisition) -> AdvisorService:
        analysis = MagicMock()
        analysis.score_growth.side_effect = lambda table, symbol="": 0.3 if symbol == "SOL" else 0.01
        return AdvisorService(
            acquisition=acquisition,
            processing=ProcessingLayer(),
            analysis=analysis,
            poll_interval=0.05,
        )

    @pytest.mark.parametrize("concurrent", [False, True])
    def test_recommend(self, client, acquisition, concurrent):
        svc = self._service(acquisition)
        with patch("crypto_advisor.routers.advisor.get_advisor_service", return_value=svc):
            r = client.post("/api/advisor/recommend",
                            json={"lookback_days": 30, "concurrent": concurrent})
        body = r.json()
        assert r.status_code == 200
        assert body["data"]["recommendation"] == "SOL"
        assert body["data"]["state"] == "completed"
        assert len(body["data"]["scores"]) == 10
        assert "SOL" in body["message"]

    def test_recommend_without_body(self, client, acquisition):
        svc = self._service(acquisition)
        with patch("crypto_advisor.routers.advisor.get_advisor_service", return_value=svc):
            r = client.post("/api/advisor/recommend")
        assert r.status_code == 200
        assert r.json()["data"]["lookback_days"] == 30

    def test_recommend_no_winner(self, client, acquisition):
        acquisition.fetch_historical_series.side_effect = NetworkError("down")
        svc = self._service(acquisition)
        with patch("crypto_advisor.routers.advisor.get_advisor_service", return_value=svc):
            r = client.post("/api/advisor/recommend", json={"concurrent": False})
        body = r.json()
        assert r.status_code == 200
        assert body["data"]["recommendation"] is None
        assert body["data"]["state"] == "failed"

    def test_recommend_invalid_lookback(self, client, acquisition):
        svc = self._service(acquisition)
        with patch("crypto_advisor.routers.advisor.get_advisor_service", return_value=svc):
            r = client.post("/api/advisor/recommend", json={"lookback_days": -3})
        assert r.status_code == 400

    def test_recommend_while_running(self, client):
        svc = MagicMock()
        svc.run.side_effect = RunInProgressError("已有选币流程正在运行")
        with patch("crypto_advisor.routers.advisor.get_advisor_service", return_value=svc):
            r = client.post("/api/advisor/recommend")
        assert r.status_code == 409

    def test_overlapping_requests(self, client):
        """两个重叠的请求只有一个被接受，取消作用于被接受的那次运行"""
        gate = threading.Event()
        acq = MagicMock()

        def gated_fetch(coin_id, days):
            gate.wait(timeout=5)
            return _series(coin_id)

        acq.fetch_historical_series.side_effect = gated_fetch
        svc = self._service(acq)
        responses = {}

        def first_request():
            responses["first"] = client.post("/api/advisor/recommend", json={"concurrent": True})

        with patch("crypto_advisor.routers.advisor.get_advisor_service", return_value=svc):
            worker = threading.Thread(target=first_request)
            worker.start()
            try:
                deadline = time.monotonic() + 2
                while svc.last_report.state != RunState.RUNNING and time.monotonic() < deadline:
                    time.sleep(0.01)

                second = client.post("/api/advisor/recommend", json={"concurrent": False})
                cancelled = client.post("/api/advisor/cancel").json()["data"]["cancelled"]
            finally:
                gate.set()
                worker.join(timeout=10)

        assert second.status_code == 409
        assert cancelled is True
        first = responses["first"]
        assert first.status_code == 200
        assert first.json()["data"]["state"] == "cancelled"
        assert first.json()["data"]["recommendation"] is None

    def test_cancel_when_idle(self, client, acquisition):
        svc = self._service(acquisition)
        with patch("crypto_advisor.routers.advisor.get_advisor_service", return_value=svc):
            r = client.post("/api/advisor/cancel")
        assert r.json()["data"]["cancelled"] is False

    def test_status(self, client, acquisition):
        svc = self._service(acquisition)
        with patch("crypto_advisor.routers.advisor.get_advisor_service", return_value=svc):
            assert client.get("/api/advisor/status").json()["data"]["state"] == "idle"


# ─────────────────────────────────────────────────────────
# 4. 缓存统计
# ─────────────────────────────────────────────────────────

class TestCacheRoutes:
    def test_stats(self, client):
        data = client.get("/api/cache/stats").json()["data"]
        assert data["prices"]["name"] == "prices"
        assert data["prices"]["memory"]["status"] == "disabled"
        assert data["history"]["name"] == "history"
        assert "interval_seconds" in data["rate_limiter"]
