"""Tests for the FastAPI adapter."""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest
from fastapi.testclient import TestClient

from solscope.core.analyzer import WalletAnalyzer
from solscope.core.errors import ConfigurationError, RateLimitedError, UpstreamError
from solscope.core.models import AIInsight, TradingAnalysis, TradingMistake, WalletData
from solscope.core.redis_client import AnalysisCache
from solscope.server import create_app


@pytest.fixture
def helius(sample_transactions, sample_balances):
    client = Mock()
    client.get_wallet_transactions = AsyncMock(return_value=sample_transactions)
    client.get_wallet_balances = AsyncMock(return_value=sample_balances)
    client.close = AsyncMock()
    return client


@pytest.fixture
def dune():
    client = Mock()
    client.execute_query = AsyncMock(return_value={"execution_id": "01J", "state": "QUERY_STATE_PENDING"})
    client.get_execution_results = AsyncMock()
    client.close = AsyncMock()
    return client


@pytest.fixture
def gemini():
    generator = Mock()
    generator.generate_insights = AsyncMock(return_value=[
        AIInsight(type="RISK", title="Concentration", description="One token dominates.",
                  confidence=0.8, impact="HIGH", action="Consider diversifying"),
    ])
    generator.close = AsyncMock()
    return generator


@pytest.fixture
def openai():
    analyzer = Mock()
    analyzer.analyze_trading = AsyncMock(return_value=TradingAnalysis(
        mistakes=[TradingMistake(title="Held losers", description="WIF", severity="high")],
    ))
    analyzer.close = AsyncMock()
    return analyzer


@pytest.fixture
def client(helius, dune, gemini, openai):
    cache = AnalysisCache(enabled=False, ttl_seconds=0)
    app = create_app(
        analyzer=WalletAnalyzer(helius_client=helius, cache=cache, timeout_seconds=5),
        dune_client=dune,
        insight_generator=gemini,
        trading_analyzer=openai,
        cache=cache,
    )
    return TestClient(app)


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.json()["redis"] is False


def test_analyze_wallet(client, sample_wallet_address):
    response = client.get("/api/analyze-wallet", params={"address": sample_wallet_address})

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "success"
    assert isinstance(body["timestamp"], int)
    assert body["metrics"]["overview"]["totalTransactions"] == 4
    assert body["metrics"]["swapMetrics"]["totalSwaps"] == 2


def test_analyze_wallet_requires_address(client, helius):
    response = client.get("/api/analyze-wallet")

    assert response.status_code == 400
    assert response.json() == {"error": "Wallet address is required"}
    helius.get_wallet_transactions.assert_not_called()


def test_analyze_wallet_rejects_malformed_address(client):
    response = client.get("/api/analyze-wallet", params={"address": "not-a-wallet"})
    assert response.status_code == 400
    assert response.json()["details"] == "not-a-wallet"


def test_analyze_wallet_no_data(client, helius, sample_wallet_address):
    helius.get_wallet_transactions.return_value = []
    helius.get_wallet_balances.return_value = WalletData()

    response = client.get("/api/analyze-wallet", params={"address": sample_wallet_address})

    assert response.status_code == 404
    assert response.json()["error"] == "No data available for this wallet"


def test_upstream_failure_hides_message(client, helius, sample_wallet_address):
    helius.get_wallet_transactions.side_effect = UpstreamError("helius", "helius exploded at node 7")

    response = client.get("/api/analyze-wallet", params={"address": sample_wallet_address})

    assert response.status_code == 500
    assert response.json() == {"error": "Failed to analyze wallet"}


def test_missing_configuration_is_503(client, helius, sample_wallet_address):
    helius.get_wallet_transactions.side_effect = ConfigurationError("HELIUS_API_KEY is not configured")

    response = client.get("/api/analyze-wallet", params={"address": sample_wallet_address})

    assert response.status_code == 503
    assert response.json()["error"] == "Service is not configured"


def test_rate_limited_is_429(client, helius, sample_wallet_address):
    helius.get_wallet_transactions.side_effect = RateLimitedError("helius")

    response = client.get("/api/analyze-wallet", params={"address": sample_wallet_address})

    assert response.status_code == 429
    assert response.json()["error"] == "Rate limited by upstream API, please retry later"


def test_timeout_is_504(helius, dune, gemini, openai, sample_wallet_address):
    async def never_done(_address):
        await asyncio.sleep(10)

    helius.get_wallet_transactions.side_effect = never_done
    cache = AnalysisCache(enabled=False, ttl_seconds=0)
    app = create_app(
        analyzer=WalletAnalyzer(helius_client=helius, cache=cache, timeout_seconds=0.05),
        dune_client=dune,
        insight_generator=gemini,
        trading_analyzer=openai,
        cache=cache,
    )

    response = TestClient(app).get("/api/analyze-wallet", params={"address": sample_wallet_address})

    assert response.status_code == 504
    assert response.json()["error"] == "Wallet analysis timed out"


def test_analyze_trades(client, dune, sample_wallet_address):
    response = client.post("/api/analyze-trades", json={"walletAddress": sample_wallet_address})

    assert response.status_code == 200
    assert response.json() == {"success": True, "data": {"execution_id": "01J", "state": "QUERY_STATE_PENDING"}}
    dune.execute_query.assert_awaited_once_with(sample_wallet_address)


def test_analyze_trades_requires_address(client, dune):
    response = client.post("/api/analyze-trades", json={})

    assert response.status_code == 400
    dune.execute_query.assert_not_called()


def test_task_with_rows_adds_transformed_data(client, dune, dune_results):
    dune.get_execution_results.return_value = dune_results

    response = client.get("/api/task/01J")

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["state"] == "QUERY_STATE_COMPLETED"
    transformed = data["transformedData"]
    assert len(transformed["trades"]) == 3
    assert transformed["summary_metrics"]["totalTrades"] == 3
    assert transformed["portfolio_metrics"]["win_rate"] == pytest.approx(50.0)


def test_task_still_running(client, dune):
    dune.get_execution_results.return_value = {"execution_id": "01J", "state": "QUERY_STATE_EXECUTING",
                                               "is_execution_finished": False}

    data = client.get("/api/task/01J").json()["data"]

    assert data["state"] == "QUERY_STATE_EXECUTING"
    assert "transformedData" not in data


def test_generate_insights(client, gemini):
    metrics = {"overview": {"totalTransactions": 4}}
    response = client.post("/api/generate-insights", json={"metrics": metrics, "prompt": "be brief"})

    assert response.status_code == 200
    insights = response.json()["insights"]
    assert insights[0]["title"] == "Concentration"
    assert insights[0]["action"] == "Consider diversifying"
    gemini.generate_insights.assert_awaited_once_with(metrics, "be brief")


def test_analyze_trading_unwraps_transformed_data(client, openai):
    transformed = {"trades": [], "summary_metrics": {"totalTrades": 0}}
    response = client.post("/api/analyze-trading", json={"transformedData": transformed})

    assert response.status_code == 200
    assert response.json()["analysis"]["mistakes"][0]["severity"] == "high"
    openai.analyze_trading.assert_awaited_once_with(transformed)


def test_analyze_trading_accepts_bare_payload(client, openai):
    transformed = {"trades": []}
    client.post("/api/analyze-trading", json=transformed)
    openai.analyze_trading.assert_awaited_once_with(transformed)
