"""
SolScope Configuration Module

Centralized configuration management for SolScope.
Loads from environment variables (and a local .env file) with sensible defaults.
"""

import os
from typing import Optional
from urllib.parse import urlparse, parse_qs

from dotenv import load_dotenv

load_dotenv()


class ScopeConfig:
    """Centralized SolScope configuration."""

    # ========================================================================
    # API Keys
    # ========================================================================

    @staticmethod
    def get_helius_api_key() -> Optional[str]:
        """Get Helius API key from environment or RPC URL."""
        key = os.getenv("HELIUS_API_KEY")
        if not key:
            # Try to extract from RPC URL
            rpc_url = os.getenv("SOLANA_RPC_URL", "")
            if rpc_url:
                # parse_qs returns a list, e.g., {'api-key': ['xyz']}
                query_params = parse_qs(urlparse(rpc_url).query)
                if "api-key" in query_params:
                    key = query_params["api-key"][0]
        return key or None

    @staticmethod
    def get_dune_api_key() -> Optional[str]:
        """Get Dune API key from environment."""
        return os.getenv("DUNE_API_KEY")

    @staticmethod
    def get_dune_query_id() -> Optional[str]:
        """Get the id of the saved wallet-trading Dune query."""
        return os.getenv("DUNE_QUERY_ID")

    @staticmethod
    def get_openai_api_key() -> Optional[str]:
        return os.getenv("OPENAI_API_KEY")

    @staticmethod
    def get_openai_model() -> str:
        return os.getenv("OPENAI_MODEL", "gpt-4o")

    @staticmethod
    def get_gemini_api_key() -> Optional[str]:
        return os.getenv("GEMINI_API_KEY")

    @staticmethod
    def get_gemini_model() -> str:
        return os.getenv("GEMINI_MODEL", "gemini-1.5-pro")

    # ========================================================================
    # Analysis Limits
    # ========================================================================

    @staticmethod
    def get_analysis_timeout_seconds() -> float:
        """Get whole-request timeout for wallet analysis."""
        return float(os.getenv("SOLSCOPE_ANALYSIS_TIMEOUT_SECONDS", "45"))

    @staticmethod
    def get_max_transactions() -> int:
        """Get maximum number of transactions fetched per wallet."""
        return int(os.getenv("SOLSCOPE_MAX_TRANSACTIONS", "1000"))

    @staticmethod
    def get_tx_page_limit() -> int:
        """Get signatures requested per getSignaturesForAddress page."""
        return int(os.getenv("SOLSCOPE_TX_PAGE_LIMIT", "100"))

    @staticmethod
    def get_retry_attempts() -> int:
        """Get attempts per upstream request (first try included)."""
        return int(os.getenv("SOLSCOPE_RETRY_ATTEMPTS", "3"))

    @staticmethod
    def get_retry_delay_seconds() -> float:
        """Get fixed delay between upstream retries."""
        return float(os.getenv("SOLSCOPE_RETRY_DELAY_SECONDS", "1.0"))

    # ========================================================================
    # Cache / Metrics / Server
    # ========================================================================

    @staticmethod
    def get_cache_ttl_seconds() -> int:
        """Get analysis cache TTL; also the width of the cache time bucket."""
        return int(os.getenv("SOLSCOPE_CACHE_TTL_SECONDS", "300"))

    @staticmethod
    def get_redis_enabled() -> bool:
        """Get whether Redis caching is enabled."""
        return os.getenv("REDIS_ENABLED", "false").lower() == "true"

    @staticmethod
    def get_redis_url() -> str:
        """Get Redis connection URL."""
        return os.getenv("REDIS_URL", "redis://localhost:6379")

    @staticmethod
    def get_metrics_enabled() -> bool:
        return os.getenv("SOLSCOPE_METRICS_ENABLED", "false").lower() == "true"

    @staticmethod
    def get_metrics_port() -> int:
        return int(os.getenv("SOLSCOPE_METRICS_PORT", "9091"))

    @staticmethod
    def get_port() -> int:
        """Get HTTP API port."""
        return int(os.getenv("PORT", "3001"))

    @staticmethod
    def validate_config() -> tuple[bool, list[str]]:
        """
        Validate the current configuration.

        Returns:
            Tuple of (is_valid, list_of_warnings)
        """
        warnings = []
        is_valid = True

        if not ScopeConfig.get_helius_api_key():
            warnings.append("HELIUS_API_KEY is not set. /api/analyze-wallet will answer 503.")

        if not ScopeConfig.get_dune_api_key() or not ScopeConfig.get_dune_query_id():
            warnings.append("DUNE_API_KEY or DUNE_QUERY_ID is not set. Trade analysis is disabled.")

        if not ScopeConfig.get_openai_api_key():
            warnings.append("OPENAI_API_KEY is not set. /api/analyze-trading is disabled.")

        if not ScopeConfig.get_gemini_api_key():
            warnings.append("GEMINI_API_KEY is not set. /api/generate-insights is disabled.")

        try:
            if ScopeConfig.get_analysis_timeout_seconds() <= 0:
                warnings.append("ERROR: SOLSCOPE_ANALYSIS_TIMEOUT_SECONDS must be positive")
                is_valid = False
            if ScopeConfig.get_retry_attempts() < 1:
                warnings.append("ERROR: SOLSCOPE_RETRY_ATTEMPTS must be at least 1")
                is_valid = False
            if ScopeConfig.get_tx_page_limit() < 1 or ScopeConfig.get_tx_page_limit() > 1000:
                warnings.append("ERROR: SOLSCOPE_TX_PAGE_LIMIT must be between 1 and 1000")
                is_valid = False
        except ValueError as e:
            warnings.append(f"ERROR: Invalid numeric setting: {e}")
            is_valid = False

        return is_valid, warnings

    @staticmethod
    def print_config_summary():
        """Print a summary of current configuration."""
        print("=" * 70)
        print("SolScope Configuration Summary")
        print("=" * 70)
        print(f"Helius API Key: {'Set' if ScopeConfig.get_helius_api_key() else 'Not set'}")
        print(f"Dune API Key: {'Set' if ScopeConfig.get_dune_api_key() else 'Not set'}")
        print(f"Dune Query ID: {ScopeConfig.get_dune_query_id() or 'Not set'}")
        print(f"OpenAI Model: {ScopeConfig.get_openai_model()} ({'key set' if ScopeConfig.get_openai_api_key() else 'no key'})")
        print(f"Gemini Model: {ScopeConfig.get_gemini_model()} ({'key set' if ScopeConfig.get_gemini_api_key() else 'no key'})")
        print(f"Analysis Timeout: {ScopeConfig.get_analysis_timeout_seconds()}s")
        print(f"Max Transactions: {ScopeConfig.get_max_transactions()}")
        print(f"Retries: {ScopeConfig.get_retry_attempts()} x {ScopeConfig.get_retry_delay_seconds()}s")
        print(f"Redis Cache: {'enabled' if ScopeConfig.get_redis_enabled() else 'disabled'} (TTL {ScopeConfig.get_cache_ttl_seconds()}s)")
        print(f"Metrics: {'enabled' if ScopeConfig.get_metrics_enabled() else 'disabled'}")
        print("=" * 70)

        is_valid, warnings = ScopeConfig.validate_config()
        if warnings:
            print("\nConfiguration Warnings:")
            for warning in warnings:
                print(f"  ⚠️  {warning}")
        else:
            print("\n✓ Configuration looks good!")
