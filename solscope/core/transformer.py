"""
Dune trade pipeline: token rows -> trades -> portfolio aggregates.

Converts the rows returned by the wallet-trading Dune query into one Trade per
token and folds them into PortfolioMetrics, SummaryMetrics and ChartData.

Everything here is synchronous and side-effect free. The only time source is
the explicit ``now`` argument, so the same rows and the same ``now`` always
produce the same output.
"""

import logging
import math
import re
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from .models import (
    ChartData,
    NamedValue,
    PnlPoint,
    PortfolioMetrics,
    SizeReturnPoint,
    SummaryMetrics,
    TimeFrameWinRate,
    TokenAmount,
    TokenRow,
    Trade,
    TradeEntry,
    TradeExit,
    TradeMetrics,
    TradeStatus,
    TransformedData,
)
from .numeric_utils import mean, pstdev, safe_divide

logger = logging.getLogger(__name__)

TOKEN_NAME_PATTERN = re.compile(r">([^<]+)<")
TIME_FRAMES_HOURS = (24, 168, 720)  # day, week, month
WIN_COLOR = "#4CAF50"
LOSS_COLOR = "#F44336"


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """
    Parse a Dune/ISO timestamp into an aware UTC datetime.

    Accepts ``2024-11-20T12:00:00Z``, ``2024-11-20 12:00:00.000 UTC`` and naive
    ISO strings (assumed UTC).

    Returns:
        Aware datetime, or None if value is missing or unparseable
    """
    if not value:
        return None
    text = str(value).strip()
    if text.endswith(" UTC"):
        text = text[:-4]
    text = text.replace("Z", "+00:00")
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _utc(now: Optional[datetime]) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now


def extract_token_name(token_address: str) -> str:
    """Return the link text of an HTML-encoded token field, or 'Unknown'."""
    match = TOKEN_NAME_PATTERN.search(token_address or "")
    return match.group(1) if match else "Unknown"


def calculate_holding_hours(block_time: Optional[str], now: datetime) -> Optional[int]:
    """Whole hours elapsed between block_time and now (floored)."""
    started = parse_timestamp(block_time)
    if started is None:
        return None
    return math.floor((_utc(now) - started).total_seconds() / 3600)


def calculate_max_drawdown(row: TokenRow) -> Optional[float]:
    """
    Percent price change from the initial buy to the latest price.

    This is the realized price return, kept under the historical
    ``max_drawdown`` name that the UI and stored payloads use.
    """
    if not row.initial_buy_price or not row.latest_price:
        return None
    return (row.latest_price - row.initial_buy_price) / row.initial_buy_price * 100


def normalize_token_row(row: Union[TokenRow, Dict[str, Any]], now: Optional[datetime] = None) -> Trade:
    """
    Convert one Dune token row into a Trade.

    Args:
        row: TokenRow or raw Dune row dict
        now: Current time used for holding time and missing entry timestamps

    Returns:
        Trade (never raises on malformed numeric fields)
    """
    if not isinstance(row, TokenRow):
        row = TokenRow.from_dict(row)
    now = _utc(now)

    closed = row.sell is not None

    entry = TradeEntry(
        price=row.initial_buy_price or 0.0,
        amount=row.token_balance or 0.0,
        timestamp=row.latest_block_time or now.isoformat(),
        total_cost=row.buy or 0.0,
    )
    if closed:
        exit_ = TradeExit(
            price=row.latest_price,
            amount=row.sell,
            timestamp=row.latest_block_time,
            total_return=row.sell,
        )
    else:
        exit_ = TradeExit()

    roi = None
    if row.total_pnl and row.buy:
        roi = row.total_pnl / row.buy * 100

    return Trade(
        token=extract_token_name(row.token_address),
        entry=entry,
        exit=exit_,
        metrics=TradeMetrics(
            pnl=row.total_pnl,
            roi=roi,
            holding_time_hours=calculate_holding_hours(row.latest_block_time, now),
            max_drawdown=calculate_max_drawdown(row),
        ),
        status=TradeStatus.CLOSED if closed else TradeStatus.OPEN,
    )


# ---------------------------------------------------------------------------
# Aggregation helpers
# ---------------------------------------------------------------------------

def _is_win(trade: Trade) -> bool:
    return trade.metrics.pnl is not None and trade.metrics.pnl > 0


def _closed(trades: Iterable[Trade]) -> List[Trade]:
    return [t for t in trades if t.status == TradeStatus.CLOSED]


def calculate_win_rate(trades: Sequence[Trade]) -> float:
    """Percent of CLOSED trades with positive pnl; 0 when nothing is closed."""
    closed = _closed(trades)
    wins = [t for t in closed if _is_win(t)]
    return safe_divide(len(wins), len(closed)) * 100


def calculate_sharpe_ratio(trades: Sequence[Trade]) -> float:
    """Mean ROI over population stddev of ROI across all trades (null ROI as 0)."""
    if not trades:
        return 0.0
    returns = [t.metrics.roi or 0.0 for t in trades]
    std_dev = pstdev(returns)
    if std_dev == 0:
        return 0.0
    return mean(returns) / std_dev


def calculate_portfolio_max_drawdown(trades: Sequence[Trade]) -> float:
    """Lowest per-trade max_drawdown (null as 0); 0 for no trades."""
    if not trades:
        return 0.0
    return min(t.metrics.max_drawdown or 0.0 for t in trades)


def calculate_average_holding_time(trades: Sequence[Trade]) -> float:
    return mean(t.metrics.holding_time_hours or 0 for t in trades)


def calculate_win_rate_for_time_frame(trades: Sequence[Trade], hours: int) -> float:
    """Win rate among trades with a non-zero holding time of at most ``hours``."""
    relevant = [t for t in trades if t.metrics.holding_time_hours and t.metrics.holding_time_hours <= hours]
    wins = [t for t in relevant if _is_win(t)]
    return safe_divide(len(wins), len(relevant)) * 100


# ---------------------------------------------------------------------------
# Aggregators
# ---------------------------------------------------------------------------

def calculate_portfolio_metrics(trades: Sequence[Trade]) -> PortfolioMetrics:
    closed = _closed(trades)
    return PortfolioMetrics(
        total_trades=len(trades),
        win_rate=calculate_win_rate(trades),
        average_roi=mean(t.metrics.roi or 0.0 for t in closed),
        sharpe_ratio=calculate_sharpe_ratio(trades),
        max_drawdown=calculate_portfolio_max_drawdown(trades),
    )


def calculate_summary_metrics(trades: Sequence[Trade]) -> SummaryMetrics:
    # sorted() is stable, so equal pnl keeps row order
    by_pnl = sorted(trades, key=lambda t: t.metrics.pnl or 0.0, reverse=True)
    biggest_win = TokenAmount()
    biggest_loss = TokenAmount()
    if by_pnl:
        biggest_win = TokenAmount(token=by_pnl[0].token, amount=by_pnl[0].metrics.pnl or 0.0)
        biggest_loss = TokenAmount(token=by_pnl[-1].token, amount=by_pnl[-1].metrics.pnl or 0.0)

    return SummaryMetrics(
        total_trades=len(trades),
        win_rate=calculate_win_rate(trades),
        total_pnl=sum(t.metrics.pnl or 0.0 for t in trades),
        active_positions=sum(1 for t in trades if t.status == TradeStatus.OPEN),
        avg_holding_time=calculate_average_holding_time(trades),
        biggest_win=biggest_win,
        biggest_loss=biggest_loss,
    )


def generate_time_analysis(trades: Sequence[Trade]) -> List[TimeFrameWinRate]:
    return [
        TimeFrameWinRate(time_frame=f"{hours}h", win_rate=calculate_win_rate_for_time_frame(trades, hours))
        for hours in TIME_FRAMES_HOURS
    ]


def generate_chart_data(trades: Sequence[Trade]) -> ChartData:
    return ChartData(
        pnl_distribution=[
            PnlPoint(
                token=t.token,
                pnl=t.metrics.pnl or 0.0,
                color=WIN_COLOR if _is_win(t) else LOSS_COLOR,
            )
            for t in trades
        ],
        position_size_vs_returns=[
            SizeReturnPoint(size=t.entry.total_cost, return_=t.metrics.roi or 0.0)
            for t in trades
        ],
        time_analysis=generate_time_analysis(trades),
        risk_metrics=[
            NamedValue(metric="Sharpe Ratio", value=calculate_sharpe_ratio(trades)),
            NamedValue(metric="Max Drawdown", value=calculate_portfolio_max_drawdown(trades)),
            NamedValue(metric="Win Rate", value=calculate_win_rate(trades)),
        ],
    )


def transform_rows(rows: Iterable[Union[TokenRow, Dict[str, Any]]], now: Optional[datetime] = None) -> TransformedData:
    """Run the full normalizer + aggregator pipeline over token rows."""
    now = _utc(now)
    trades = [normalize_token_row(row, now) for row in rows]
    logger.debug(f"Normalized {len(trades)} token rows into trades")
    return TransformedData(
        trades=trades,
        portfolio_metrics=calculate_portfolio_metrics(trades),
        summary_metrics=calculate_summary_metrics(trades),
        chart_data=generate_chart_data(trades),
    )


def extract_rows(results: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Pull ``result.rows`` out of a Dune results payload (empty when absent)."""
    if not results:
        return []
    result = results.get("result") or {}
    rows = result.get("rows") or []
    return [r for r in rows if isinstance(r, dict)]


def transform_dune_data(results: Optional[Dict[str, Any]], now: Optional[datetime] = None) -> TransformedData:
    """
    Transform a Dune execution-results payload.

    Args:
        results: ``{"result": {"rows": [...], "metadata": {...}}, ...}``
        now: Current time (defaults to the wall clock)

    Returns:
        TransformedData with trades and aggregates
    """
    return transform_rows(extract_rows(results), now)
