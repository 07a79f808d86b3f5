"""
Wallet Analyzer - on-chain history to DetailedMetrics

This module turns a wallet's normalized Helius transactions and balance
snapshot into the DetailedMetrics structure served by /api/analyze-wallet:

- Overview totals (volume, fees, success rate, account age)
- Swap metrics (DEX distribution, slippage, hour/weekday timing)
- Per-transaction token records
- Trading statistics (per-swap P&L, streaks, daily activity, patterns)

build_detailed_metrics() is pure and synchronous; WalletAnalyzer adds the
concurrent fetch, timeout, caching and rule-based insight pass around it.
"""

import asyncio
import logging
import time
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from ..config import ScopeConfig
from .errors import (
    AnalysisTimeoutError,
    InvalidAddressError,
    NoDataError,
    RateLimitedError,
    SolScopeError,
    UpstreamError,
)
from .helius_client import LAMPORTS_PER_SOL, HeliusClient
from .models import (
    AIInsights,
    DailyActivity,
    DetailedMetrics,
    DexVolume,
    InsightRecommendation,
    MarketContext,
    Opportunity,
    Overview,
    PredictionMetrics,
    ProfitLoss,
    RiskMetrics,
    SlippageStats,
    StrengthsWeaknesses,
    SwapMetrics,
    SwapTiming,
    TokenMetric,
    TradingPattern,
    TradingStats,
    TransactionData,
    WalletData,
    WeekdayVolume,
)
from .numeric_utils import float_or_zero, mean, median, pstdev, safe_divide
from .redis_client import AnalysisCache
from .rules import RuleAnalysis, RuleBasedAnalyzer

logger = logging.getLogger(__name__)

WEEKDAYS = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]
BASE58_ALPHABET = set("123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz")

HIGH_FREQUENCY_HOURLY_VOLUME = 5.0
DOMINANT_TOKEN_SHARE = 0.5


def validate_wallet_address(address: Optional[str]) -> str:
    """
    Validate a Solana wallet address (base58, 32-44 chars).

    Raises:
        InvalidAddressError: Missing or malformed address
    """
    address = (address or "").strip()
    if not address:
        raise InvalidAddressError()
    if not 32 <= len(address) <= 44 or not set(address) <= BASE58_ALPHABET:
        raise InvalidAddressError("Invalid wallet address", details=address)
    return address


# ---------------------------------------------------------------------------
# Per-transaction helpers
# ---------------------------------------------------------------------------

def token_value(token: Optional[Dict[str, Any]]) -> float:
    """Decimal-adjusted amount of a swap input/output entry (0 when absent)."""
    if not token or not isinstance(token.get("rawTokenAmount"), dict):
        return 0.0
    raw = token["rawTokenAmount"]
    decimals = int(float_or_zero(raw.get("decimals")))
    return float_or_zero(raw.get("tokenAmount")) / (10 ** decimals)


def _first(items: Optional[Sequence[Dict[str, Any]]]) -> Optional[Dict[str, Any]]:
    return items[0] if items else None


def swap_amount(swap: Optional[Dict[str, Any]]) -> float:
    """Larger of the first input and first output value."""
    if not swap:
        return 0.0
    return max(token_value(_first(swap.get("tokenInputs"))), token_value(_first(swap.get("tokenOutputs"))))


def swap_slippage(swap: Optional[Dict[str, Any]]) -> float:
    """
    Percent shortfall of the realized output against the quoted output.

    Enhanced transactions carry no quote, so the realized output stands in for
    the expected one and the result is 0 for every swap.
    """
    if not swap or not swap.get("tokenInputs") or not swap.get("tokenOutputs"):
        return 0.0
    expected = token_value(swap["tokenOutputs"][0])
    actual = token_value(swap["tokenOutputs"][0])
    if expected == 0:
        return 0.0
    return (expected - actual) / expected * 100


def swap_dex(swap: Dict[str, Any]) -> str:
    inner = _first(swap.get("innerSwaps"))
    if inner and isinstance(inner.get("programInfo"), dict):
        return inner["programInfo"].get("source") or "Unknown"
    return "Unknown"


def transaction_pnl(tx: TransactionData) -> float:
    """Output value - input value - fee (SOL) for swaps; 0 otherwise."""
    swap = tx.swap_event
    if not swap:
        return 0.0
    input_value = token_value(_first(swap.get("tokenInputs")))
    output_value = token_value(_first(swap.get("tokenOutputs")))
    return output_value - input_value - tx.fee / LAMPORTS_PER_SOL


def _utc_datetime(timestamp: int) -> datetime:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


def _chronological(transactions: Sequence[TransactionData]) -> List[TransactionData]:
    return sorted(transactions, key=lambda tx: tx.timestamp)


# ---------------------------------------------------------------------------
# Section builders
# ---------------------------------------------------------------------------

def calculate_dex_distribution(swaps: Sequence[TransactionData]) -> List[DexVolume]:
    stats: Dict[str, DexVolume] = {}
    for tx in swaps:
        swap = tx.swap_event
        dex = swap_dex(swap)
        entry = stats.setdefault(dex, DexVolume(dex=dex))
        entry.volume += swap_amount(swap)
        entry.count += 1
        # running mean
        entry.avg_slippage += (swap_slippage(swap) - entry.avg_slippage) / entry.count
    return sorted(stats.values(), key=lambda d: d.volume, reverse=True)


def calculate_slippage_stats(swaps: Sequence[TransactionData]) -> SlippageStats:
    slippages = [s for s in (swap_slippage(tx.swap_event) for tx in swaps) if s > 0]
    return SlippageStats(
        average=mean(slippages),
        median=median(slippages),
        max=max(slippages + [0.0]),
        min=min(slippages + [0.0]),
        standard_deviation=pstdev(slippages),
    )


def analyze_swap_timing(swaps: Sequence[TransactionData]) -> SwapTiming:
    """Best/worst 3 UTC hours by SOL volume and weekday distribution (Sunday first)."""
    hourly = [0.0] * 24
    weekdays = [WeekdayVolume(day=day) for day in WEEKDAYS]
    for tx in swaps:
        moment = _utc_datetime(tx.timestamp)
        hourly[moment.hour] += tx.amount
        # isoweekday(): Monday=1 .. Sunday=7
        day = weekdays[moment.isoweekday() % 7]
        day.count += 1
        day.volume += tx.amount

    hours = list(range(24))
    return SwapTiming(
        best_hours=sorted(hours, key=lambda h: hourly[h], reverse=True)[:3],
        worst_hours=sorted(hours, key=lambda h: hourly[h])[:3],
        weekday_distribution=weekdays,
    )


def process_swaps(transactions: Sequence[TransactionData]) -> SwapMetrics:
    swaps = [tx for tx in transactions if tx.swap_event]
    volume = sum(tx.amount for tx in swaps)
    return SwapMetrics(
        total_swaps=len(swaps),
        swap_volume=volume,
        average_swap_size=safe_divide(volume, len(swaps)),
        dex_distribution=calculate_dex_distribution(swaps),
        slippage_stats=calculate_slippage_stats(swaps),
        timing=analyze_swap_timing(swaps),
    )


def process_tokens(transactions: Sequence[TransactionData]) -> List[TokenMetric]:
    """One record per transaction with token transfers (not merged by token)."""
    return [
        TokenMetric(
            symbol=tx.token_info.symbol if tx.token_info else "Unknown",
            mint=tx.token_info.mint if tx.token_info else "",
            transactions=1,
            last_activity=tx.timestamp,
        )
        for tx in transactions
        if tx.token_transfers
    ]


def token_distribution(token_metrics: Sequence[TokenMetric]) -> List[Dict[str, Any]]:
    """
    Merge per-transaction token records by symbol.

    Returns:
        ``[{symbol, transactions, percentage}]`` sorted by count descending,
        percentage of all token transactions (x100)
    """
    counts: Dict[str, int] = defaultdict(int)
    for metric in token_metrics:
        counts[metric.symbol] += metric.transactions
    total = sum(counts.values())
    merged = [
        {"symbol": symbol, "transactions": count, "percentage": safe_divide(count, total) * 100}
        for symbol, count in counts.items()
    ]
    return sorted(merged, key=lambda m: m["transactions"], reverse=True)


def analyze_trading_frequency(transactions: Sequence[TransactionData]) -> List[DailyActivity]:
    days: Dict[str, DailyActivity] = {}
    for tx in transactions:
        date = _utc_datetime(tx.timestamp).strftime("%Y-%m-%d")
        day = days.setdefault(date, DailyActivity(date=date))
        day.count += 1
        day.volume += tx.amount
        day.profit_loss += transaction_pnl(tx)
    return [days[date] for date in sorted(days)]


def analyze_trade_streaks(transactions: Sequence[TransactionData]) -> Dict[str, int]:
    """Longest runs of winning and losing swaps; zero-P&L transactions don't break a run."""
    win_streak = loss_streak = max_wins = max_losses = 0
    for tx in _chronological(transactions):
        pnl = transaction_pnl(tx)
        if pnl > 0:
            win_streak += 1
            loss_streak = 0
            max_wins = max(max_wins, win_streak)
        elif pnl < 0:
            loss_streak += 1
            win_streak = 0
            max_losses = max(max_losses, loss_streak)
    return {"successive_wins": max_wins, "successive_losses": max_losses}


def calculate_average_hold_time(transactions: Sequence[TransactionData]) -> float:
    """Mean hours between first and last activity per mint, ignoring single-touch mints."""
    spans: Dict[str, List[int]] = {}
    for tx in transactions:
        if not tx.token_info or not tx.token_info.mint:
            continue
        first_last = spans.setdefault(tx.token_info.mint, [tx.timestamp, tx.timestamp])
        first_last[0] = min(first_last[0], tx.timestamp)
        first_last[1] = max(first_last[1], tx.timestamp)

    durations = [last - first for first, last in spans.values() if last - first > 0]
    return mean(durations) / 3600


def identify_trading_patterns(transactions: Sequence[TransactionData]) -> List[TradingPattern]:
    patterns: List[TradingPattern] = []

    hourly: Dict[int, float] = defaultdict(float)
    for tx in transactions:
        hourly[_utc_datetime(tx.timestamp).hour] += tx.amount
    hourly_mean = mean(hourly.values())
    if hourly_mean > HIGH_FREQUENCY_HOURLY_VOLUME:
        patterns.append(TradingPattern(
            type="time",
            description="High-frequency trading detected",
            confidence=0.8,
            significance="high",
            metrics={"averageHourlyVolume": hourly_mean},
        ))

    token_volumes: Dict[str, float] = defaultdict(float)
    for tx in transactions:
        if tx.token_info and tx.token_info.mint:
            token_volumes[tx.token_info.mint] += tx.amount
    total = sum(token_volumes.values())
    top_share = safe_divide(max(token_volumes.values(), default=0.0), total)
    if top_share > DOMINANT_TOKEN_SHARE:
        patterns.append(TradingPattern(
            type="token",
            description="Token concentration detected",
            confidence=0.9,
            significance="high",
            metrics={"topTokenShare": top_share, "tokenCount": float(len(token_volumes))},
        ))

    return patterns


def calculate_trade_stats(transactions: Sequence[TransactionData]) -> TradingStats:
    pnls = [transaction_pnl(tx) for tx in transactions]
    returns = [p for p in pnls if p != 0]
    profitable = sum(
        1 for tx in transactions
        if tx.swap_event and token_value(_first(tx.swap_event.get("tokenOutputs")))
        > token_value(_first(tx.swap_event.get("tokenInputs")))
    )
    volatility = pstdev(returns)
    streaks = analyze_trade_streaks(transactions)

    return TradingStats(
        profit_loss=sum(pnls),
        win_rate=safe_divide(profitable, len(transactions)),
        average_return=mean(returns),
        best_trade=max(pnls + [0.0]),
        worst_trade=min(pnls + [0.0]),
        average_hold_time=calculate_average_hold_time(transactions),
        volatility=volatility,
        sharpe_ratio=safe_divide(mean(returns), volatility),
        successive_wins=streaks["successive_wins"],
        successive_losses=streaks["successive_losses"],
        trading_frequency=analyze_trading_frequency(transactions),
        patterns=identify_trading_patterns(transactions),
    )


def build_overview(transactions: Sequence[TransactionData], balances: WalletData, now: datetime) -> Overview:
    realized = sum(transaction_pnl(tx) for tx in transactions)
    timestamps = [tx.timestamp for tx in transactions]
    account_age = 0.0
    if timestamps:
        account_age = (now.timestamp() - min(timestamps)) / 86400

    return Overview(
        total_transactions=len(transactions),
        unique_tokens=len(balances.token_balances),
        total_volume=sum(tx.amount for tx in transactions),
        total_fees=float(sum(tx.fee for tx in transactions)),
        success_rate=safe_divide(sum(1 for tx in transactions if tx.status == "success"), len(transactions)),
        account_age=account_age,
        last_activity=max(timestamps, default=0),
        profit_loss=ProfitLoss(total=realized, realized=realized, unrealized=0.0),
    )


def build_detailed_metrics(
    transactions: Sequence[TransactionData],
    balances: WalletData,
    now: Optional[datetime] = None,
) -> DetailedMetrics:
    """
    Derive DetailedMetrics from a wallet's transactions and balance snapshot.

    Prediction metrics and AI insights are left at their defaults; see
    apply_rule_analysis().

    Args:
        transactions: Normalized transactions (any order)
        balances: Balance snapshot
        now: Reference time for account age (defaults to the wall clock)

    Returns:
        DetailedMetrics
    """
    now = now or datetime.now(timezone.utc)
    return DetailedMetrics(
        overview=build_overview(transactions, balances, now),
        swap_metrics=process_swaps(transactions),
        token_metrics=process_tokens(transactions),
        trading_stats=calculate_trade_stats(transactions),
        risk_metrics=RiskMetrics(),
        prediction_metrics=PredictionMetrics(),
        ai_insights=AIInsights(),
    )


def determine_trading_style(metrics: DetailedMetrics) -> str:
    trade_count = metrics.overview.total_transactions
    if trade_count > 100:
        return "Active Trader"
    if trade_count > 50:
        return "Regular Trader"
    return "Casual Trader"


def apply_rule_analysis(metrics: DetailedMetrics, analysis: RuleAnalysis) -> DetailedMetrics:
    """Fill ai_insights from a rule analysis of the same metrics."""
    metrics.ai_insights = AIInsights(
        summary="Analysis based on historical trading patterns",
        trading_style=determine_trading_style(metrics),
        strengths_weaknesses=StrengthsWeaknesses(
            strengths=[p.description for p in analysis.patterns if p.impact > 0],
            weaknesses=[p.description for p in analysis.patterns if p.impact < 0],
        ),
        opportunities=[
            Opportunity(description=rec.recommendation, confidence=0.7, timeframe="short-term")
            for rec in analysis.recommendations
        ],
        recommendations=[
            InsightRecommendation(
                type="strategy",
                description=rec.recommendation,
                priority=rec.priority,
                expected_impact="medium",
            )
            for rec in analysis.recommendations
        ],
        market_context=MarketContext(
            position="Analysis based on historical data",
            sentiment="Neutral",
            key_factors=[
                f"{metrics.overview.total_transactions} total transactions",
                f"{metrics.overview.unique_tokens} unique tokens traded",
            ],
        ),
    )
    return metrics


class WalletAnalyzer:
    """
    Wallet analyzer for fetching and computing DetailedMetrics.

    In production, initialize with API credentials:
        analyzer = WalletAnalyzer(helius_client=HeliusClient(api_key="..."))
    """

    def __init__(
        self,
        helius_client: Optional[HeliusClient] = None,
        rule_analyzer: Optional[RuleBasedAnalyzer] = None,
        cache: Optional[AnalysisCache] = None,
        timeout_seconds: Optional[float] = None,
        metrics_sink=None,
    ):
        """
        Initialize the wallet analyzer.

        Args:
            helius_client: Transaction/balance source (defaults to env-configured client)
            rule_analyzer: Rule engine (defaults to the built-in rule table)
            cache: Optional analysis cache
            timeout_seconds: Whole-analysis timeout (defaults to config)
            metrics_sink: Optional ScopeMetrics
        """
        self.helius_client = helius_client or HeliusClient()
        self.metrics_sink = metrics_sink
        self.rule_analyzer = rule_analyzer or RuleBasedAnalyzer(metrics_sink=metrics_sink)
        self.cache = cache
        self.timeout_seconds = timeout_seconds or ScopeConfig.get_analysis_timeout_seconds()

    async def _fetch(self, address: str):
        return await asyncio.gather(
            self.helius_client.get_wallet_transactions(address),
            self.helius_client.get_wallet_balances(address),
        )

    async def analyze_wallet(self, address: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Fetch, derive and rule-analyze a wallet.

        Args:
            address: Wallet address to analyze
            now: Reference time (defaults to the wall clock)

        Returns:
            DetailedMetrics as a camelCase dict

        Raises:
            InvalidAddressError, NoDataError, AnalysisTimeoutError,
            RateLimitedError, ConfigurationError, UpstreamError
        """
        address = validate_wallet_address(address)

        if self.cache is not None:
            cached = self.cache.get(address)
            if cached is not None:
                logger.info(f"[Analyzer] Cache hit for {address[:8]}...")
                return cached

        started = time.monotonic()
        outcome = "error"
        try:
            try:
                transactions, balances = await asyncio.wait_for(self._fetch(address), self.timeout_seconds)
            except asyncio.TimeoutError as e:
                outcome = "timeout"
                raise AnalysisTimeoutError(details=f"No result after {self.timeout_seconds}s") from e
            except (UpstreamError, RateLimitedError) as e:
                if self.metrics_sink is not None:
                    self.metrics_sink.record_upstream_error(e.source)
                raise

            if not transactions:
                outcome = "no_data"
                raise NoDataError()

            metrics = build_detailed_metrics(transactions, balances, now)
            apply_rule_analysis(metrics, self.rule_analyzer.analyze(metrics))
            payload = metrics.to_dict()
            outcome = "success"
        except SolScopeError as e:
            logger.warning(f"[Analyzer] Analysis of {address[:8]}... failed: {e}")
            raise
        finally:
            if self.metrics_sink is not None:
                self.metrics_sink.record_wallet_analyzed(outcome)
                self.metrics_sink.record_analysis_duration(time.monotonic() - started)

        logger.info(
            f"[Analyzer] {address[:8]}...: {len(transactions)} transactions, "
            f"{metrics.swap_metrics.total_swaps} swaps"
        )
        if self.cache is not None:
            self.cache.set(address, payload)
        return payload

    async def close(self):
        await self.helius_client.close()
