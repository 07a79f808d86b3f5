"""
SolScope Core Module

Provides the trade pipeline, wallet metrics, rule analysis and upstream API clients.
"""

from .analyzer import WalletAnalyzer, build_detailed_metrics, token_distribution
from .dune_client import DuneClient
from .errors import (
    AnalysisTimeoutError,
    ConfigurationError,
    InvalidAddressError,
    NoDataError,
    RateLimitedError,
    RuleConfigurationError,
    SolScopeError,
    UpstreamError,
)
from .helius_client import HeliusClient
from .insights import GeminiInsightGenerator, OpenAITradingAnalyzer, parse_insights
from .models import (
    DetailedMetrics,
    PortfolioMetrics,
    SummaryMetrics,
    TokenRow,
    Trade,
    TradeStatus,
    TransactionData,
    TransformedData,
    WalletData,
)
from .rules import Rule, RuleAnalysis, RuleBasedAnalyzer, RuleGraph, default_rules
from .transformer import (
    calculate_portfolio_metrics,
    calculate_summary_metrics,
    generate_chart_data,
    normalize_token_row,
    transform_dune_data,
)

__all__ = [
    # Analyzer
    "WalletAnalyzer",
    "build_detailed_metrics",
    "token_distribution",
    # Clients
    "DuneClient",
    "HeliusClient",
    "GeminiInsightGenerator",
    "OpenAITradingAnalyzer",
    "parse_insights",
    # Errors
    "SolScopeError",
    "InvalidAddressError",
    "NoDataError",
    "RateLimitedError",
    "ConfigurationError",
    "AnalysisTimeoutError",
    "UpstreamError",
    "RuleConfigurationError",
    # Models
    "DetailedMetrics",
    "PortfolioMetrics",
    "SummaryMetrics",
    "TokenRow",
    "Trade",
    "TradeStatus",
    "TransactionData",
    "TransformedData",
    "WalletData",
    # Rules
    "Rule",
    "RuleAnalysis",
    "RuleBasedAnalyzer",
    "RuleGraph",
    "default_rules",
    # Transformer
    "normalize_token_row",
    "calculate_portfolio_metrics",
    "calculate_summary_metrics",
    "generate_chart_data",
    "transform_dune_data",
]
