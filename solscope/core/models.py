"""
Data models for SolScope trade and wallet analysis.

This module defines the core data structures used throughout SolScope for
representing Dune token rows, derived trades, portfolio aggregates, normalized
Helius transactions and the nested DetailedMetrics structure served to the UI.

Every numeric field defaults to zero or an empty list so consumers only ever
branch on values, never on missing keys.
"""

from dataclasses import dataclass, field, fields, is_dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from .numeric_utils import coerce_float


class TradeStatus(str, Enum):
    """Lifecycle state of a derived trade."""
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class RuleCategory(str, Enum):
    """Category of an analysis rule."""
    PATTERN = "pattern"
    RISK = "risk"
    OPPORTUNITY = "opportunity"
    PERFORMANCE = "performance"


def _camel(name: str) -> str:
    parts = name.rstrip("_").split("_")
    return parts[0] + "".join(p[:1].upper() + p[1:] for p in parts[1:])


def to_wire(value: Any, camel: bool = True) -> Any:
    """
    Recursively convert dataclasses into JSON-ready dicts.

    Args:
        value: Dataclass, list, dict, enum or scalar
        camel: Emit camelCase keys (UI shapes) instead of field names

    Returns:
        Plain Python structure suitable for json.dumps
    """
    if is_dataclass(value) and not isinstance(value, type):
        out = {}
        for f in fields(value):
            key = _camel(f.name) if camel else f.name.rstrip("_")
            out[key] = to_wire(getattr(value, f.name), camel)
        return out
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, list):
        return [to_wire(v, camel) for v in value]
    if isinstance(value, dict):
        return {k: to_wire(v, camel) for k, v in value.items()}
    return value


# ---------------------------------------------------------------------------
# Dune trade path
# ---------------------------------------------------------------------------

@dataclass
class TokenRow:
    """One row of the Dune wallet-trading query (a token's lifetime)."""
    token_address: str = ""  # HTML link, e.g. <a href=...>BONK</a>
    buy: Optional[float] = None
    sell: Optional[float] = None
    pnl: Optional[float] = None
    usd_balance: Optional[float] = None
    total_pnl: Optional[float] = None
    token_balance: Optional[float] = None
    initial_buy_price: Optional[float] = None
    latest_price: Optional[float] = None
    latest_block_time: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TokenRow":
        """Build a row from a raw Dune dict, degrading malformed numerics to None."""
        block_time = data.get("latest_block_time")
        return cls(
            token_address=str(data.get("token_address") or ""),
            buy=coerce_float(data.get("buy")),
            sell=coerce_float(data.get("sell")),
            pnl=coerce_float(data.get("pnl")),
            usd_balance=coerce_float(data.get("usd_balance")),
            total_pnl=coerce_float(data.get("total_pnl")),
            token_balance=coerce_float(data.get("token_balance")),
            initial_buy_price=coerce_float(data.get("initial_buy_price")),
            latest_price=coerce_float(data.get("latest_price")),
            latest_block_time=str(block_time) if block_time else None,
        )


@dataclass
class TradeEntry:
    price: float
    amount: float
    timestamp: str
    total_cost: float


@dataclass
class TradeExit:
    price: Optional[float] = None
    amount: Optional[float] = None
    timestamp: Optional[str] = None
    total_return: Optional[float] = None


@dataclass
class TradeMetrics:
    pnl: Optional[float] = None
    roi: Optional[float] = None  # percent
    holding_time_hours: Optional[float] = None
    # Simple price return since entry, not a peak-to-trough drawdown
    max_drawdown: Optional[float] = None


@dataclass
class Trade:
    """A derived record of one token position's entry, exit and performance."""
    token: str
    entry: TradeEntry
    exit: TradeExit
    metrics: TradeMetrics
    status: TradeStatus

    def to_dict(self) -> Dict[str, Any]:
        return to_wire(self, camel=False)


@dataclass
class PortfolioMetrics:
    total_trades: int = 0
    win_rate: float = 0.0  # percent of CLOSED trades with pnl > 0
    average_roi: float = 0.0
    sharpe_ratio: float = 0.0
    max_drawdown: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return to_wire(self, camel=False)


@dataclass
class TokenAmount:
    token: str = ""
    amount: float = 0.0


@dataclass
class SummaryMetrics:
    total_trades: int = 0
    win_rate: float = 0.0
    total_pnl: float = 0.0
    active_positions: int = 0
    avg_holding_time: float = 0.0
    biggest_win: TokenAmount = field(default_factory=TokenAmount)
    biggest_loss: TokenAmount = field(default_factory=TokenAmount)

    def to_dict(self) -> Dict[str, Any]:
        out = to_wire(self)
        out["totalPnL"] = out.pop("totalPnl")
        return out


@dataclass
class PnlPoint:
    token: str
    pnl: float
    color: str


@dataclass
class SizeReturnPoint:
    size: float
    return_: float


@dataclass
class TimeFrameWinRate:
    time_frame: str
    win_rate: float


@dataclass
class NamedValue:
    metric: str
    value: float


@dataclass
class ChartData:
    pnl_distribution: List[PnlPoint] = field(default_factory=list)
    position_size_vs_returns: List[SizeReturnPoint] = field(default_factory=list)
    time_analysis: List[TimeFrameWinRate] = field(default_factory=list)
    risk_metrics: List[NamedValue] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return to_wire(self)


@dataclass
class TransformedData:
    """Output of the Dune trade pipeline."""
    trades: List[Trade] = field(default_factory=list)
    portfolio_metrics: PortfolioMetrics = field(default_factory=PortfolioMetrics)
    summary_metrics: SummaryMetrics = field(default_factory=SummaryMetrics)
    chart_data: ChartData = field(default_factory=ChartData)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "trades": [t.to_dict() for t in self.trades],
            "portfolio_metrics": self.portfolio_metrics.to_dict(),
            "summary_metrics": self.summary_metrics.to_dict(),
            "chart_data": self.chart_data.to_dict(),
        }


# ---------------------------------------------------------------------------
# Live RPC path (Helius)
# ---------------------------------------------------------------------------

@dataclass
class TokenInfo:
    symbol: str = "Unknown"
    name: str = "Unknown Token"
    mint: str = ""
    amount: float = 0.0
    decimals: int = 0


@dataclass
class TransactionData:
    """
    Normalized Helius transaction.

    ``amount`` is the SOL moved by native transfers; ``fee`` stays in lamports
    as reported by the RPC.
    """
    signature: str
    timestamp: int
    slot: int = 0
    type: str = "UNKNOWN"
    fee: int = 0
    fee_payer: str = ""
    status: str = "success"  # success | error
    amount: float = 0.0
    token_info: Optional[TokenInfo] = None
    native_transfers: List[Dict[str, Any]] = field(default_factory=list)
    token_transfers: List[Dict[str, Any]] = field(default_factory=list)
    events: Dict[str, Any] = field(default_factory=dict)
    description: str = ""

    @property
    def swap_event(self) -> Optional[Dict[str, Any]]:
        swap = self.events.get("swap") if self.events else None
        return swap or None


@dataclass
class WalletData:
    """Wallet balance snapshot."""
    balance: float = 0.0  # SOL
    token_balances: Dict[str, TokenInfo] = field(default_factory=dict)


@dataclass
class ProfitLoss:
    total: float = 0.0
    realized: float = 0.0
    unrealized: float = 0.0


@dataclass
class Overview:
    total_transactions: int = 0
    unique_tokens: int = 0
    total_volume: float = 0.0
    total_fees: float = 0.0
    success_rate: float = 0.0  # fraction
    account_age: float = 0.0  # days
    last_activity: int = 0
    profit_loss: ProfitLoss = field(default_factory=ProfitLoss)


@dataclass
class DexVolume:
    dex: str
    volume: float = 0.0
    count: int = 0
    avg_slippage: float = 0.0


@dataclass
class SlippageStats:
    average: float = 0.0
    median: float = 0.0
    max: float = 0.0
    min: float = 0.0
    standard_deviation: float = 0.0


@dataclass
class WeekdayVolume:
    day: str
    volume: float = 0.0
    count: int = 0


@dataclass
class SwapTiming:
    best_hours: List[int] = field(default_factory=list)
    worst_hours: List[int] = field(default_factory=list)
    weekday_distribution: List[WeekdayVolume] = field(default_factory=list)


@dataclass
class SwapMetrics:
    total_swaps: int = 0
    swap_volume: float = 0.0
    average_swap_size: float = 0.0
    dex_distribution: List[DexVolume] = field(default_factory=list)
    slippage_stats: SlippageStats = field(default_factory=SlippageStats)
    timing: SwapTiming = field(default_factory=SwapTiming)


@dataclass
class TokenMetric:
    symbol: str = "Unknown"
    mint: str = ""
    balance: float = 0.0
    volume_24h: float = 0.0
    price_change_24h: float = 0.0
    transactions: int = 0
    last_activity: int = 0
    profit_loss: float = 0.0
    holding_period: float = 0.0
    risk_score: float = 0.0


@dataclass
class DailyActivity:
    date: str  # YYYY-MM-DD, UTC
    count: int = 0
    volume: float = 0.0
    profit_loss: float = 0.0


@dataclass
class TradingPattern:
    type: str  # time | volume | token | price
    confidence: float
    description: str
    metrics: Dict[str, float] = field(default_factory=dict)
    significance: str = "medium"  # high | medium | low


@dataclass
class TradingStats:
    profit_loss: float = 0.0
    win_rate: float = 0.0  # fraction
    average_return: float = 0.0
    best_trade: float = 0.0
    worst_trade: float = 0.0
    average_hold_time: float = 0.0  # hours
    volatility: float = 0.0
    sharpe_ratio: float = 0.0
    successive_wins: int = 0
    successive_losses: int = 0
    trading_frequency: List[DailyActivity] = field(default_factory=list)
    patterns: List[TradingPattern] = field(default_factory=list)


@dataclass
class Drawdown:
    max: float = 0.0
    current: float = 0.0
    duration: float = 0.0


@dataclass
class Concentration:
    token_level: float = 0.0
    protocol_level: float = 0.0


@dataclass
class SectorCorrelation:
    sector: str
    correlation: float = 0.0


@dataclass
class Correlation:
    market_beta: float = 0.0
    sector_correlations: List[SectorCorrelation] = field(default_factory=list)


@dataclass
class ValueAtRisk:
    daily: float = 0.0
    weekly: float = 0.0
    confidence: float = 0.95


@dataclass
class ImpermanentLoss:
    current: float = 0.0
    projected: float = 0.0


@dataclass
class ProtocolExposure:
    protocol: str
    exposure: float = 0.0
    risk: str = "low"  # high | medium | low


@dataclass
class SmartContractRisk:
    score: float = 0.0
    factors: List[str] = field(default_factory=list)


@dataclass
class RiskMetrics:
    volatility: float = 0.0
    drawdown: Drawdown = field(default_factory=Drawdown)
    concentration: Concentration = field(default_factory=Concentration)
    correlation: Correlation = field(default_factory=Correlation)
    var: ValueAtRisk = field(default_factory=ValueAtRisk)
    sharpe_ratio: float = 0.0
    warnings: List[str] = field(default_factory=list)
    liquidity_exposure: float = 0.0
    impermanent_loss: ImpermanentLoss = field(default_factory=ImpermanentLoss)
    protocol_exposure: List[ProtocolExposure] = field(default_factory=list)
    market_beta: float = 0.0
    composability_risk: float = 0.0
    smart_contract_risk: SmartContractRisk = field(default_factory=SmartContractRisk)


@dataclass
class PredictionMetrics:
    price_targets: List[Dict[str, Any]] = field(default_factory=list)
    behavior_predictions: List[Dict[str, Any]] = field(default_factory=list)
    risk_predictions: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class StrengthsWeaknesses:
    strengths: List[str] = field(default_factory=list)
    weaknesses: List[str] = field(default_factory=list)


@dataclass
class Opportunity:
    description: str
    confidence: float = 0.0
    timeframe: str = "short-term"


@dataclass
class InsightRecommendation:
    type: str  # risk | performance | strategy
    description: str
    priority: int = 0
    expected_impact: str = "medium"


@dataclass
class MarketContext:
    position: str = "Analysis based on historical data"
    sentiment: str = "Neutral"
    key_factors: List[str] = field(default_factory=list)


@dataclass
class AIInsights:
    summary: str = "Analysis based on historical trading patterns"
    trading_style: str = "Analyzing..."
    strengths_weaknesses: StrengthsWeaknesses = field(default_factory=StrengthsWeaknesses)
    opportunities: List[Opportunity] = field(default_factory=list)
    recommendations: List[InsightRecommendation] = field(default_factory=list)
    market_context: MarketContext = field(default_factory=MarketContext)


@dataclass
class DetailedMetrics:
    """Full per-wallet derived statistics consumed by the UI and the rule analyzer."""
    overview: Overview = field(default_factory=Overview)
    swap_metrics: SwapMetrics = field(default_factory=SwapMetrics)
    token_metrics: List[TokenMetric] = field(default_factory=list)
    trading_stats: TradingStats = field(default_factory=TradingStats)
    risk_metrics: RiskMetrics = field(default_factory=RiskMetrics)
    prediction_metrics: PredictionMetrics = field(default_factory=PredictionMetrics)
    ai_insights: AIInsights = field(default_factory=AIInsights)

    @classmethod
    def empty(cls) -> "DetailedMetrics":
        """All-zero shell."""
        return cls()

    def to_dict(self) -> Dict[str, Any]:
        return to_wire(self)


# ---------------------------------------------------------------------------
# LLM boundary
# ---------------------------------------------------------------------------

@dataclass
class AIInsight:
    type: str  # OPPORTUNITY | RISK | PATTERN | RECOMMENDATION
    title: str
    description: str
    confidence: float
    impact: str  # LOW | MEDIUM | HIGH
    action: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out = to_wire(self)
        if out["action"] is None:
            del out["action"]
        return out


@dataclass
class TradingMistake:
    title: str
    description: str
    severity: str  # high | medium | low


@dataclass
class TradingImprovement:
    category: str
    recommendations: List[str] = field(default_factory=list)


@dataclass
class TradingPatterns:
    winning: List[str] = field(default_factory=list)
    losing: List[str] = field(default_factory=list)
    general: List[str] = field(default_factory=list)


@dataclass
class TradingAnalysis:
    """Structured LLM review of a TransformedData payload."""
    mistakes: List[TradingMistake] = field(default_factory=list)
    improvements: List[TradingImprovement] = field(default_factory=list)
    patterns: TradingPatterns = field(default_factory=TradingPatterns)

    def to_dict(self) -> Dict[str, Any]:
        return to_wire(self)
