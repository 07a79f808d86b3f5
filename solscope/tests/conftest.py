"""
Pytest configuration and fixtures for SolScope tests.
"""

from datetime import datetime, timezone

import pytest

from solscope.core.models import TokenInfo, TransactionData, WalletData

# 2024-11-21T12:00:00Z, a Thursday
FIXED_NOW = datetime(2024, 11, 21, 12, 0, 0, tzinfo=timezone.utc)
BONK_MINT = "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263"
WIF_MINT = "EKpQGSJtjMFqKZ9KQanSqYXRcF8fBopzLHYxdM65zcjm"
SOL_MINT = "So11111111111111111111111111111111111111112"


def token_link(name: str, mint: str = BONK_MINT) -> str:
    return f'<a href="https://solscan.io/token/{mint}" target="_blank">{name}</a>'


def make_swap(
    input_amount: int,
    input_decimals: int,
    output_amount: int,
    output_decimals: int,
    source: str = "JUPITER",
    input_mint: str = SOL_MINT,
    output_mint: str = BONK_MINT,
) -> dict:
    """Helius swap event with one input and one output."""
    return {
        "tokenInputs": [{
            "mint": input_mint,
            "rawTokenAmount": {"tokenAmount": str(input_amount), "decimals": input_decimals},
        }],
        "tokenOutputs": [{
            "mint": output_mint,
            "rawTokenAmount": {"tokenAmount": str(output_amount), "decimals": output_decimals},
        }],
        "innerSwaps": [{"programInfo": {"source": source}}],
    }


def make_tx(
    signature: str,
    timestamp: int,
    amount: float = 0.0,
    fee: int = 5000,
    swap: dict = None,
    mint: str = None,
    symbol: str = "BONK",
    status: str = "success",
) -> TransactionData:
    """Normalized transaction; a mint adds one token transfer and token info."""
    token_transfers = []
    token_info = None
    if mint:
        token_transfers = [{"mint": mint, "tokenAmount": 1.0}]
        token_info = TokenInfo(symbol=symbol, name=symbol, mint=mint, amount=1.0)
    return TransactionData(
        signature=signature,
        timestamp=timestamp,
        type="SWAP" if swap else "TRANSFER",
        fee=fee,
        status=status,
        amount=amount,
        token_info=token_info,
        token_transfers=token_transfers,
        events={"swap": swap} if swap else {},
    )


@pytest.fixture
def now():
    """Fixed reference time for deterministic holding times."""
    return FIXED_NOW


@pytest.fixture
def sample_wallet_address():
    """Sample Solana wallet address for testing."""
    return "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU"


@pytest.fixture
def dune_rows():
    """Three token rows: a closed win, a closed loss and an open position."""
    return [
        {
            "token_address": token_link("BONK"),
            "buy": 100.0,
            "sell": 150.0,
            "pnl": 50.0,
            "usd_balance": 0.0,
            "total_pnl": 50.0,
            "token_balance": 0.0,
            "initial_buy_price": 1.0,
            "latest_price": 1.5,
            "latest_block_time": "2024-11-21 00:00:00.000 UTC",  # 12h before FIXED_NOW
        },
        {
            "token_address": token_link("WIF", WIF_MINT),
            "buy": 200.0,
            "sell": 120.0,
            "pnl": -80.0,
            "usd_balance": 0.0,
            "total_pnl": -80.0,
            "token_balance": 0.0,
            "initial_buy_price": 2.0,
            "latest_price": 1.2,
            "latest_block_time": "2024-11-18T12:00:00Z",  # 72h
        },
        {
            "token_address": token_link("POPCAT"),
            "buy": 50.0,
            "sell": None,
            "pnl": None,
            "usd_balance": 60.0,
            "total_pnl": 10.0,
            "token_balance": 1000.0,
            "initial_buy_price": 0.05,
            "latest_price": 0.06,
            "latest_block_time": "2024-11-01T12:00:00Z",  # 480h
        },
    ]


@pytest.fixture
def dune_results(dune_rows):
    """Dune execution-results payload wrapping dune_rows."""
    return {
        "execution_id": "01JD0000000000000000000000",
        "query_id": 4321,
        "state": "QUERY_STATE_COMPLETED",
        "is_execution_finished": True,
        "result": {"rows": dune_rows, "metadata": {"row_count": len(dune_rows)}},
    }


@pytest.fixture
def sample_transactions():
    """
    Four transactions on 2024-11-20/21 (UTC):
    - winning Jupiter swap (1 SOL -> 2 units out)
    - losing Raydium swap (3 units in -> 1 unit out)
    - plain SOL transfer touching BONK
    - failed transfer
    """
    t0 = 1732104000  # 2024-11-20T12:00:00Z (Wednesday)
    return [
        make_tx("sig-win", t0, amount=2.0, swap=make_swap(1_000_000_000, 9, 2_000_000, 6), mint=BONK_MINT),
        make_tx("sig-loss", t0 + 3600, amount=1.0,
                swap=make_swap(3_000_000, 6, 1_000_000_000, 9, source="RAYDIUM"), mint=WIF_MINT, symbol="WIF"),
        make_tx("sig-transfer", t0 + 7200 * 12, amount=0.5, mint=BONK_MINT),
        make_tx("sig-failed", t0 + 7200 * 12 + 60, amount=0.0, status="error"),
    ]


@pytest.fixture
def sample_balances():
    """Balance snapshot with two token holdings."""
    return WalletData(
        balance=12.5,
        token_balances={
            BONK_MINT: TokenInfo(symbol="BONK", name="Bonk", mint=BONK_MINT, amount=1_000_000.0, decimals=5),
            WIF_MINT: TokenInfo(symbol="WIF", name="dogwifhat", mint=WIF_MINT, amount=12.0, decimals=6),
        },
    )
