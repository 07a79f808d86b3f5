#!/usr/bin/env python3
"""
SolScope - Solana wallet analytics

Usage:
    python -m solscope.main serve                   # Run the HTTP API
    python -m solscope.main analyze <address>       # Live metrics via Helius
    python -m solscope.main trades <address>        # Dune trade history + portfolio metrics
    python -m solscope.main transform results.json  # Transform a saved Dune results payload
    python -m solscope.main config                  # Print configuration summary

Add --json to analyze/trades/transform to print the raw payload instead of
the report.
"""

import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict

from .config import ScopeConfig
from .core.analyzer import WalletAnalyzer
from .core.dune_client import DuneClient
from .core.errors import SolScopeError
from .core.models import TransformedData
from .core.transformer import transform_dune_data

logger = logging.getLogger("solscope")


def parse_args(argv=None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="SolScope - Solana wallet analytics",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging"
    )

    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default="0.0.0.0", help="Bind address (default: 0.0.0.0)")
    serve.add_argument(
        "--port",
        type=int,
        default=ScopeConfig.get_port(),
        help=f"Port (default: {ScopeConfig.get_port()}, or PORT)"
    )

    analyze = sub.add_parser("analyze", help="Analyze a wallet's on-chain history")
    analyze.add_argument("address", help="Wallet address (base58)")
    analyze.add_argument("--json", action="store_true", help="Print DetailedMetrics JSON")
    analyze.add_argument(
        "--timeout",
        type=float,
        default=ScopeConfig.get_analysis_timeout_seconds(),
        help="Analysis timeout in seconds (default: SOLSCOPE_ANALYSIS_TIMEOUT_SECONDS)"
    )

    trades = sub.add_parser("trades", help="Run the Dune trade query for a wallet")
    trades.add_argument("address", help="Wallet address (base58)")
    trades.add_argument("--json", action="store_true", help="Print transformed trade JSON")
    trades.add_argument("--poll-interval", type=float, default=2.0, help="Seconds between status polls")
    trades.add_argument("--max-polls", type=int, default=60, help="Give up after this many polls")

    transform = sub.add_parser("transform", help="Transform a saved Dune results JSON file")
    transform.add_argument("path", help="Path to Dune execution results JSON ('-' for stdin)")
    transform.add_argument("--json", action="store_true", help="Print transformed trade JSON")

    sub.add_parser("config", help="Print configuration summary")

    return parser.parse_args(argv)


def print_trade_report(data: TransformedData):
    """Print portfolio and summary metrics for a transformed trade history."""
    summary = data.summary_metrics
    portfolio = data.portfolio_metrics

    print("\n[SolScope] Trade summary:")
    print(f"  Tokens traded: {summary.total_trades}")
    print(f"  Open positions: {summary.active_positions}")
    print(f"  Win rate (closed): {summary.win_rate:.1f}%")
    print(f"  Total PnL: ${summary.total_pnl:,.2f}")
    print(f"  Average ROI (closed): {portfolio.average_roi:.1f}%")
    print(f"  Sharpe ratio: {portfolio.sharpe_ratio:.2f}")
    print(f"  Avg holding time: {summary.avg_holding_time:.1f}h")
    if summary.total_trades:
        print(f"  Biggest win: {summary.biggest_win.token} (${summary.biggest_win.amount:,.2f})")
        print(f"  Biggest loss: {summary.biggest_loss.token} (${summary.biggest_loss.amount:,.2f})")

    print("  Win rate by holding time:")
    for frame in data.chart_data.time_analysis:
        print(f"    <= {frame.time_frame}: {frame.win_rate:.1f}%")


def print_wallet_report(metrics: Dict[str, Any]):
    """Print the headline numbers of a DetailedMetrics dict."""
    overview = metrics["overview"]
    swaps = metrics["swapMetrics"]
    stats = metrics["tradingStats"]
    insights = metrics["aiInsights"]

    print("\n[SolScope] Wallet overview:")
    print(f"  Transactions: {overview['totalTransactions']} ({overview['successRate'] * 100:.1f}% successful)")
    print(f"  Tokens held: {overview['uniqueTokens']}")
    print(f"  Volume: {overview['totalVolume']:.4f} SOL")
    print(f"  Account age: {overview['accountAge']:.1f} days")
    print(f"  Realized PnL: {overview['profitLoss']['realized']:.4f}")
    print(f"  Swaps: {swaps['totalSwaps']}")
    for dex in swaps["dexDistribution"][:5]:
        print(f"    {dex['dex']}: {dex['count']} swaps, volume {dex['volume']:.4f}")
    print(f"  Win rate: {stats['winRate'] * 100:.1f}%")
    print(f"  Trading style: {insights['tradingStyle']}")
    if insights["recommendations"]:
        print("  Recommendations:")
        for rec in insights["recommendations"]:
            print(f"    - {rec['description']}")


async def run_analyze(args: argparse.Namespace) -> int:
    analyzer = WalletAnalyzer(timeout_seconds=args.timeout)
    try:
        metrics = await analyzer.analyze_wallet(args.address)
    finally:
        await analyzer.close()

    if args.json:
        print(json.dumps(metrics, indent=2))
    else:
        print_wallet_report(metrics)
    return 0


async def run_trades(args: argparse.Namespace) -> int:
    async with DuneClient() as client:
        results = await client.get_wallet_trading_data(
            args.address,
            poll_interval=args.poll_interval,
            max_polls=args.max_polls,
        )
    return emit_transformed(transform_dune_data(results), args.json)


def run_transform(args: argparse.Namespace) -> int:
    if args.path == "-":
        results = json.load(sys.stdin)
    else:
        with open(args.path, "r", encoding="utf-8") as f:
            results = json.load(f)
    return emit_transformed(transform_dune_data(results), args.json)


def emit_transformed(data: TransformedData, as_json: bool) -> int:
    if as_json:
        print(json.dumps(data.to_dict(), indent=2))
    else:
        print_trade_report(data)
    return 0


def main(argv=None):
    """Main entry point for the SolScope CLI."""
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "config":
        ScopeConfig.print_config_summary()
        is_valid, _ = ScopeConfig.validate_config()
        sys.exit(0 if is_valid else 1)

    if args.command == "serve":
        from .server import run
        run(host=args.host, port=args.port)
        return

    logger.info(f"Started at: {datetime.now(timezone.utc).isoformat()}")
    try:
        if args.command == "analyze":
            code = asyncio.run(run_analyze(args))
        elif args.command == "trades":
            code = asyncio.run(run_trades(args))
        else:
            code = run_transform(args)
    except SolScopeError as e:
        print(f"[SolScope] ERROR: {e}" + (f" ({e.details})" if e.details else ""), file=sys.stderr)
        sys.exit(1)
    except (OSError, ValueError) as e:
        print(f"[SolScope] ERROR: {e}", file=sys.stderr)
        sys.exit(1)

    sys.exit(code)


if __name__ == "__main__":
    main()
