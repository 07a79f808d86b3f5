"""Tests for the wallet metrics builder and WalletAnalyzer."""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from solscope.core.analyzer import (
    WalletAnalyzer,
    analyze_trade_streaks,
    build_detailed_metrics,
    calculate_average_hold_time,
    determine_trading_style,
    swap_amount,
    swap_slippage,
    token_distribution,
    token_value,
    transaction_pnl,
    validate_wallet_address,
)
from solscope.core.errors import (
    AnalysisTimeoutError,
    InvalidAddressError,
    NoDataError,
    RateLimitedError,
    UpstreamError,
)
from solscope.core.models import DetailedMetrics, WalletData
from solscope.core.redis_client import AnalysisCache
from solscope.core.rules import RuleBasedAnalyzer
from conftest import BONK_MINT, make_swap, make_tx


class TestSwapHelpers:
    def test_token_value_applies_decimals(self):
        entry = {"rawTokenAmount": {"tokenAmount": "1500000", "decimals": 6}}
        assert token_value(entry) == pytest.approx(1.5)
        assert token_value(None) == 0.0
        assert token_value({"rawTokenAmount": "bad"}) == 0.0

    def test_swap_amount_takes_larger_side(self):
        assert swap_amount(make_swap(1_000_000_000, 9, 2_000_000, 6)) == pytest.approx(2.0)
        assert swap_amount(None) == 0.0

    def test_slippage_is_zero_without_quote(self):
        assert swap_slippage(make_swap(1_000_000_000, 9, 2_000_000, 6)) == 0.0
        assert swap_slippage({"tokenInputs": []}) == 0.0

    def test_transaction_pnl_subtracts_fee(self, sample_transactions):
        win, loss, transfer, _ = sample_transactions
        assert transaction_pnl(win) == pytest.approx(1.0 - 5000 / 1e9)
        assert transaction_pnl(loss) == pytest.approx(-2.0 - 5000 / 1e9)
        assert transaction_pnl(transfer) == 0.0


class TestBuildDetailedMetrics:
    def test_overview(self, sample_transactions, sample_balances, now):
        overview = build_detailed_metrics(sample_transactions, sample_balances, now).overview

        assert overview.total_transactions == 4
        assert overview.unique_tokens == 2
        assert overview.total_volume == pytest.approx(3.5)
        assert overview.total_fees == 20000.0
        assert overview.success_rate == pytest.approx(0.75)
        assert overview.account_age == pytest.approx(1.0)
        assert overview.last_activity == sample_transactions[-1].timestamp
        assert overview.profit_loss.realized == pytest.approx(-1.00001)
        assert overview.profit_loss.unrealized == 0.0

    def test_swap_metrics(self, sample_transactions, sample_balances, now):
        swaps = build_detailed_metrics(sample_transactions, sample_balances, now).swap_metrics

        assert swaps.total_swaps == 2
        assert swaps.swap_volume == pytest.approx(3.0)
        assert swaps.average_swap_size == pytest.approx(1.5)
        assert [d.dex for d in swaps.dex_distribution] == ["RAYDIUM", "JUPITER"]
        assert swaps.dex_distribution[0].volume == pytest.approx(3.0)
        assert swaps.slippage_stats.average == 0.0
        assert swaps.timing.best_hours == [12, 13, 0]
        assert swaps.timing.worst_hours == [0, 1, 2]

        weekdays = {d.day: d for d in swaps.timing.weekday_distribution}
        assert list(weekdays)[0] == "Sunday"
        assert weekdays["Wednesday"].count == 2
        assert weekdays["Wednesday"].volume == pytest.approx(3.0)
        assert weekdays["Thursday"].count == 0

    def test_trading_stats(self, sample_transactions, sample_balances, now):
        stats = build_detailed_metrics(sample_transactions, sample_balances, now).trading_stats

        assert stats.win_rate == pytest.approx(0.25)
        assert stats.profit_loss == pytest.approx(-1.00001)
        assert stats.best_trade == pytest.approx(0.999995)
        assert stats.worst_trade == pytest.approx(-2.000005)
        assert stats.average_return == pytest.approx(-0.50000, abs=1e-5)
        assert stats.successive_wins == 1
        assert stats.successive_losses == 1
        # BONK touched at t0 and t0 + 24h; WIF only once
        assert stats.average_hold_time == pytest.approx(24.0)
        assert [d.date for d in stats.trading_frequency] == ["2024-11-20", "2024-11-21"]
        assert stats.trading_frequency[0].count == 2
        assert stats.trading_frequency[0].profit_loss == pytest.approx(-1.00001)

    def test_token_concentration_pattern(self, sample_transactions, sample_balances, now):
        patterns = build_detailed_metrics(sample_transactions, sample_balances, now).trading_stats.patterns

        assert [p.type for p in patterns] == ["token"]
        assert patterns[0].metrics["topTokenShare"] == pytest.approx(2.5 / 3.5)
        assert patterns[0].metrics["tokenCount"] == 2.0

    def test_high_volume_pattern(self, now):
        txs = [make_tx(f"sig-{i}", 1732104000 + i, amount=10.0) for i in range(3)]
        patterns = build_detailed_metrics(txs, WalletData(), now).trading_stats.patterns
        assert patterns[0].type == "time"
        assert patterns[0].metrics["averageHourlyVolume"] == pytest.approx(30.0)

    def test_token_metrics_are_per_transaction(self, sample_transactions, sample_balances, now):
        metrics = build_detailed_metrics(sample_transactions, sample_balances, now)

        assert [t.symbol for t in metrics.token_metrics] == ["BONK", "WIF", "BONK"]
        assert token_distribution(metrics.token_metrics) == [
            {"symbol": "BONK", "transactions": 2, "percentage": pytest.approx(200 / 3)},
            {"symbol": "WIF", "transactions": 1, "percentage": pytest.approx(100 / 3)},
        ]

    def test_empty_history(self, now):
        metrics = build_detailed_metrics([], WalletData(), now)

        assert metrics.overview.total_transactions == 0
        assert metrics.overview.success_rate == 0.0
        assert metrics.swap_metrics.average_swap_size == 0.0
        assert metrics.trading_stats.win_rate == 0.0
        assert metrics.trading_stats.average_hold_time == 0.0
        assert metrics.token_metrics == []

    def test_streaks_use_chronological_order(self):
        win = make_swap(1_000_000_000, 9, 2_000_000_000, 9)
        loss = make_swap(2_000_000_000, 9, 1_000_000_000, 9)
        txs = [
            make_tx("c", 300, swap=loss),
            make_tx("a", 100, swap=win),
            make_tx("b", 200, swap=win),
            make_tx("d", 400, swap=loss),
        ]
        assert analyze_trade_streaks(txs) == {"successive_wins": 2, "successive_losses": 2}

    def test_hold_time_ignores_single_touch_mints(self):
        txs = [make_tx("a", 0, mint=BONK_MINT)]
        assert calculate_average_hold_time(txs) == 0.0

    def test_camel_case_wire_format(self, sample_transactions, sample_balances, now):
        out = build_detailed_metrics(sample_transactions, sample_balances, now).to_dict()

        assert set(out) == {
            "overview", "swapMetrics", "tokenMetrics", "tradingStats",
            "riskMetrics", "predictionMetrics", "aiInsights",
        }
        assert out["overview"]["profitLoss"]["realized"] == pytest.approx(-1.00001)
        assert "avgSlippage" in out["swapMetrics"]["dexDistribution"][0]
        assert "standardDeviation" in out["swapMetrics"]["slippageStats"]
        assert "volume24h" in out["tokenMetrics"][0]
        assert out["riskMetrics"]["smartContractRisk"] == {"score": 0.0, "factors": []}


class TestValidateAddress:
    def test_valid(self, sample_wallet_address):
        assert validate_wallet_address(f"  {sample_wallet_address} ") == sample_wallet_address

    @pytest.mark.parametrize("bad", ["", None, "   "])
    def test_missing(self, bad):
        with pytest.raises(InvalidAddressError, match="Wallet address is required"):
            validate_wallet_address(bad)

    @pytest.mark.parametrize("bad", ["short", "0" * 40, "O" * 40, "x" * 45])
    def test_malformed(self, bad):
        with pytest.raises(InvalidAddressError):
            validate_wallet_address(bad)


class TestTradingStyle:
    @pytest.mark.parametrize("count,style", [
        (0, "Casual Trader"),
        (50, "Casual Trader"),
        (51, "Regular Trader"),
        (101, "Active Trader"),
    ])
    def test_style_by_transaction_count(self, count, style):
        metrics = DetailedMetrics.empty()
        metrics.overview.total_transactions = count
        assert determine_trading_style(metrics) == style


def _mock_helius(transactions, balances):
    helius = Mock()
    helius.get_wallet_transactions = AsyncMock(return_value=transactions)
    helius.get_wallet_balances = AsyncMock(return_value=balances)
    helius.close = AsyncMock()
    return helius


class TestWalletAnalyzer:
    def test_analyze_wallet(self, sample_wallet_address, sample_transactions, sample_balances, now):
        helius = _mock_helius(sample_transactions, sample_balances)
        sink = Mock()
        analyzer = WalletAnalyzer(helius_client=helius, timeout_seconds=5, metrics_sink=sink)

        result = asyncio.run(analyzer.analyze_wallet(sample_wallet_address, now=now))

        helius.get_wallet_transactions.assert_awaited_once_with(sample_wallet_address)
        assert result["overview"]["totalTransactions"] == 4
        assert result["aiInsights"]["tradingStyle"] == "Casual Trader"
        assert result["aiInsights"]["marketContext"]["keyFactors"] == [
            "4 total transactions",
            "2 unique tokens traded",
        ]
        sink.record_wallet_analyzed.assert_called_once_with("success")
        sink.record_analysis_duration.assert_called_once()

    def test_rule_recommendations_flow_into_insights(self, sample_wallet_address, sample_transactions, now):
        # token_metrics balances stay 0, so no default rule fires
        helius = _mock_helius(sample_transactions, WalletData())
        rule_analyzer = Mock(wraps=RuleBasedAnalyzer())
        analyzer = WalletAnalyzer(helius_client=helius, rule_analyzer=rule_analyzer, timeout_seconds=5)

        result = asyncio.run(analyzer.analyze_wallet(sample_wallet_address, now=now))

        rule_analyzer.analyze.assert_called_once()
        assert result["aiInsights"]["recommendations"] == []
        assert result["aiInsights"]["strengthsWeaknesses"] == {"strengths": [], "weaknesses": []}

    def test_invalid_address_skips_fetch(self):
        helius = _mock_helius([], WalletData())
        analyzer = WalletAnalyzer(helius_client=helius, timeout_seconds=5)

        with pytest.raises(InvalidAddressError):
            asyncio.run(analyzer.analyze_wallet(""))
        helius.get_wallet_transactions.assert_not_called()

    def test_no_transactions(self, sample_wallet_address):
        sink = Mock()
        analyzer = WalletAnalyzer(
            helius_client=_mock_helius([], WalletData()), timeout_seconds=5, metrics_sink=sink
        )

        with pytest.raises(NoDataError):
            asyncio.run(analyzer.analyze_wallet(sample_wallet_address))
        sink.record_wallet_analyzed.assert_called_once_with("no_data")

    def test_timeout(self, sample_wallet_address):
        async def slow(_address):
            await asyncio.sleep(5)
            return []

        helius = _mock_helius([], WalletData())
        helius.get_wallet_transactions = slow
        sink = Mock()
        analyzer = WalletAnalyzer(helius_client=helius, timeout_seconds=0.05, metrics_sink=sink)

        with pytest.raises(AnalysisTimeoutError):
            asyncio.run(analyzer.analyze_wallet(sample_wallet_address))
        sink.record_wallet_analyzed.assert_called_once_with("timeout")

    def test_upstream_error_is_counted(self, sample_wallet_address):
        helius = _mock_helius([], WalletData())
        helius.get_wallet_transactions = AsyncMock(side_effect=UpstreamError("helius", "HTTP 500"))
        sink = Mock()
        analyzer = WalletAnalyzer(helius_client=helius, timeout_seconds=5, metrics_sink=sink)

        with pytest.raises(UpstreamError):
            asyncio.run(analyzer.analyze_wallet(sample_wallet_address))
        sink.record_upstream_error.assert_called_once_with("helius")
        sink.record_wallet_analyzed.assert_called_once_with("error")

    def test_rate_limit_is_counted(self, sample_wallet_address):
        helius = _mock_helius([], WalletData())
        helius.get_wallet_transactions = AsyncMock(side_effect=RateLimitedError("helius"))
        sink = Mock()
        analyzer = WalletAnalyzer(helius_client=helius, timeout_seconds=5, metrics_sink=sink)

        with pytest.raises(RateLimitedError):
            asyncio.run(analyzer.analyze_wallet(sample_wallet_address))
        sink.record_upstream_error.assert_called_once_with("helius")

    def test_cache_hit_skips_fetch(self, sample_wallet_address, sample_transactions, sample_balances, now):
        helius = _mock_helius(sample_transactions, sample_balances)
        cache = AnalysisCache(enabled=False, ttl_seconds=300)
        analyzer = WalletAnalyzer(helius_client=helius, cache=cache, timeout_seconds=5)

        first = asyncio.run(analyzer.analyze_wallet(sample_wallet_address, now=now))
        second = asyncio.run(analyzer.analyze_wallet(sample_wallet_address, now=now))

        assert first == second
        assert helius.get_wallet_transactions.await_count == 1

    def test_close(self):
        helius = _mock_helius([], WalletData())
        asyncio.run(WalletAnalyzer(helius_client=helius, timeout_seconds=5).close())
        helius.close.assert_awaited_once()
