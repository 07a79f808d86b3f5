#!/usr/bin/env python3
"""
SolScope - Live API Health Check
Verifies connectivity to Helius, Dune and the Redis cache.
"""
import asyncio
import sys

from solscope.config import ScopeConfig
from solscope.core.dune_client import DuneClient
from solscope.core.errors import SolScopeError
from solscope.core.helius_client import HeliusClient
from solscope.core.redis_client import AnalysisCache

# Known active wallet used for connectivity checks
TEST_WALLET = "5Q544fKrFoe6tsEbD7S8EmxGTJYAKtTVhAW5Q5pge4j1"


async def check_helius() -> bool:
    print("\n[1/3] Checking Helius API...")
    key = ScopeConfig.get_helius_api_key()
    if not key:
        print("❌ HELIUS_API_KEY not found in env.")
        return False

    async with HeliusClient(api_key=key, max_transactions=5, page_limit=5) as client:
        try:
            signatures = await client.get_signatures(TEST_WALLET)
            balances = await client.get_wallet_balances(TEST_WALLET)
        except SolScopeError as e:
            print(f"❌ Helius failed: {e}")
            return False

    print(f"✅ Helius connected. Fetched {len(signatures)} signatures, {len(balances.token_balances)} token balances.")
    return True


async def check_dune() -> bool:
    print("\n[2/3] Checking Dune API...")
    if not ScopeConfig.get_dune_api_key():
        print("⚠️  DUNE_API_KEY not found. Trade analysis is disabled.")
        return True  # Not fatal

    async with DuneClient() as client:
        try:
            # A bogus execution id still proves the key is accepted
            await client.get_execution_status("01HEALTHCHECK000000000000000")
        except SolScopeError as e:
            if "HTTP 401" in str(e) or "HTTP 403" in str(e):
                print(f"❌ Dune rejected the API key: {e}")
                return False
    print("✅ Dune reachable.")
    return True


def check_redis() -> bool:
    print("\n[3/3] Checking Redis cache...")
    if not ScopeConfig.get_redis_enabled():
        print("⚠️  REDIS_ENABLED is false. Using in-memory cache.")
        return True
    if AnalysisCache().is_available():
        print("✅ Redis connected.")
        return True
    print("❌ Redis enabled but unreachable.")
    return False


async def main() -> int:
    print("=== SolScope Connectivity Check ===")
    h = await check_helius()
    d = await check_dune()
    r = check_redis()

    if h and d and r:
        print("\n✅ All systems GO.")
        return 0
    print("\n❌ Some systems failed checks.")
    return 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
