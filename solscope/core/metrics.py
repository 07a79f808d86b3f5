"""
Prometheus Metrics Export for SolScope

Exports SolScope-specific metrics for monitoring:
- Wallets analyzed (by outcome)
- Analysis duration
- Upstream API errors by source
- Rule triggers by rule id
"""

import logging
from typing import Optional

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Histogram, start_http_server

from ..config import ScopeConfig

logger = logging.getLogger(__name__)


class ScopeMetrics:
    """
    Prometheus metrics exporter for SolScope.

    Metrics exported:
    - solscope_wallets_analyzed_total: Wallet analyses by outcome (Counter with label)
    - solscope_analysis_duration_seconds: Wall time per wallet analysis (Histogram)
    - solscope_upstream_errors_total: Failed upstream calls by source (Counter with label)
    - solscope_rule_triggers_total: Triggered analysis rules by id (Counter with label)
    """

    def __init__(self, port: int = 9091, registry: CollectorRegistry = REGISTRY):
        """
        Initialize metrics exporter.

        Args:
            port: Port to expose metrics on (default 9091)
            registry: Prometheus registry (tests pass a private one)
        """
        self.port = port
        self.metrics_started = False

        self.wallets_analyzed = Counter(
            'solscope_wallets_analyzed_total',
            'Total number of wallet analyses',
            ['outcome'],
            registry=registry,
        )

        self.analysis_duration = Histogram(
            'solscope_analysis_duration_seconds',
            'Time taken to analyze a wallet',
            buckets=[0.5, 1, 2, 5, 10, 20, 45, 90],
            registry=registry,
        )

        self.upstream_errors = Counter(
            'solscope_upstream_errors_total',
            'Total number of failed upstream API calls',
            ['source'],
            registry=registry,
        )

        self.rule_triggers = Counter(
            'solscope_rule_triggers_total',
            'Total number of analysis rule triggers',
            ['rule_id'],
            registry=registry,
        )

    def start_server(self):
        """Start Prometheus metrics HTTP server."""
        if self.metrics_started:
            return

        try:
            start_http_server(self.port)
            self.metrics_started = True
            logger.info(f"Prometheus metrics server started on port {self.port}")
        except OSError as e:
            logger.warning(f"Failed to start Prometheus metrics server: {e}")

    def record_wallet_analyzed(self, outcome: str = "success"):
        """
        Increment wallets analyzed counter.

        Args:
            outcome: success | no_data | error | timeout
        """
        self.wallets_analyzed.labels(outcome=outcome).inc()

    def record_analysis_duration(self, duration_seconds: float):
        self.analysis_duration.observe(duration_seconds)

    def record_upstream_error(self, source: str):
        self.upstream_errors.labels(source=source).inc()

    def record_rule_triggered(self, rule_id: str):
        self.rule_triggers.labels(rule_id=rule_id).inc()


# Global metrics instance
_metrics_instance: Optional[ScopeMetrics] = None


def get_metrics() -> ScopeMetrics:
    """Get or create global metrics instance."""
    global _metrics_instance

    if _metrics_instance is None:
        _metrics_instance = ScopeMetrics(port=ScopeConfig.get_metrics_port())

        # Auto-start if enabled
        if ScopeConfig.get_metrics_enabled():
            _metrics_instance.start_server()

    return _metrics_instance
