"""
Error taxonomy for SolScope.

Each error carries the HTTP status the API layer answers with, so request
handlers map failures in one place instead of branching on message text.
"""

from typing import Optional


class SolScopeError(Exception):
    """Base class for all SolScope failures."""
    http_status = 500
    public_message = "Failed to analyze wallet"

    def __init__(self, message: Optional[str] = None, details: Optional[str] = None):
        super().__init__(message or self.public_message)
        self.details = details


class InvalidAddressError(SolScopeError):
    """Missing or malformed wallet address."""
    http_status = 400
    public_message = "Wallet address is required"


class NoDataError(SolScopeError):
    """Wallet has no on-chain history; not an error for the caller."""
    http_status = 404
    public_message = "No data available for this wallet"


class RateLimitedError(SolScopeError):
    """Upstream API kept answering 429 after all retries."""
    http_status = 429
    public_message = "Rate limited by upstream API, please retry later"

    def __init__(self, source: str = "http", message: Optional[str] = None, details: Optional[str] = None):
        super().__init__(message, details)
        self.source = source


class ConfigurationError(SolScopeError):
    """Required API key or query id is not configured."""
    http_status = 503
    public_message = "Service is not configured"


class AnalysisTimeoutError(SolScopeError):
    """Whole-request timeout expired; in-flight fetches are abandoned."""
    http_status = 504
    public_message = "Wallet analysis timed out"


class UpstreamError(SolScopeError):
    """Upstream API failed or returned a malformed payload."""
    http_status = 500
    public_message = "Failed to analyze wallet"

    def __init__(self, source: str, message: Optional[str] = None, details: Optional[str] = None):
        super().__init__(message or f"{source} request failed", details)
        self.source = source


class RuleConfigurationError(SolScopeError):
    """Rule table references an unknown rule or contains a dependency cycle."""
