"""
Rule-Based Analyzer.

Evaluates a table of rules against DetailedMetrics. Each rule has a condition
predicate plus impact, confidence and recommendations, each either fixed or
computed from the metrics. Rules may depend on other rules and only trigger
when every dependency triggered too.

The dependency graph is validated once at construction. Evaluation state lives
in a memo dict created per analyze() call, so an analyzer instance is safe to
share between concurrent requests.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Union

from .errors import RuleConfigurationError
from .models import DetailedMetrics, RuleCategory, to_wire
from .numeric_utils import clamp, mean, safe_divide

logger = logging.getLogger(__name__)

Condition = Callable[[DetailedMetrics], bool]
Score = Union[float, Callable[[DetailedMetrics], float]]
Recommendations = Union[List[str], Callable[[DetailedMetrics], List[str]]]


@dataclass
class Rule:
    """A single analysis rule."""
    id: str
    name: str
    description: str
    category: RuleCategory
    condition: Condition
    impact: Score  # in [-1, 1], constant or computed from metrics
    confidence: Score  # in [0, 1]
    recommendations: Recommendations = field(default_factory=list)
    priority: int = 1
    dependencies: List[str] = field(default_factory=list)

    def impact_for(self, metrics: DetailedMetrics) -> float:
        return float(self.impact(metrics) if callable(self.impact) else self.impact)

    def confidence_for(self, metrics: DetailedMetrics) -> float:
        return float(self.confidence(metrics) if callable(self.confidence) else self.confidence)

    def recommendations_for(self, metrics: DetailedMetrics) -> List[str]:
        texts = self.recommendations(metrics) if callable(self.recommendations) else self.recommendations
        return list(texts)


@dataclass
class PatternFinding:
    name: str
    description: str
    impact: float
    confidence: float


@dataclass
class RiskFinding:
    name: str
    description: str
    severity: float
    recommendations: List[str] = field(default_factory=list)


@dataclass
class RankedRecommendation:
    source: str
    recommendation: str
    priority: int
    impact: float


@dataclass
class RuleAnalysis:
    """Result of one analyze() call."""
    patterns: List[PatternFinding] = field(default_factory=list)
    risks: List[RiskFinding] = field(default_factory=list)
    recommendations: List[RankedRecommendation] = field(default_factory=list)
    score: float = 1.0
    triggered: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict:
        out = to_wire(self)
        del out["triggered"]
        return out


class RuleGraph:
    """
    Rules indexed by id with validated dependencies.

    Raises:
        RuleConfigurationError: duplicate ids, unknown dependency ids or cycles
    """

    def __init__(self, rules: Sequence[Rule]):
        self.rules: Dict[str, Rule] = {}
        for rule in rules:
            if rule.id in self.rules:
                raise RuleConfigurationError(f"Duplicate rule id: {rule.id}")
            self.rules[rule.id] = rule

        for rule in self.rules.values():
            for dep in rule.dependencies:
                if dep not in self.rules:
                    raise RuleConfigurationError(
                        f"Rule {rule.id} depends on unknown rule {dep}"
                    )

        self.order: List[str] = self._topological_order()

    def _topological_order(self) -> List[str]:
        # Depth-first post-order; a node seen again while still on the stack is a cycle
        order: List[str] = []
        state: Dict[str, int] = {}  # 1 = visiting, 2 = done

        def visit(rule_id: str, path: List[str]) -> None:
            mark = state.get(rule_id)
            if mark == 2:
                return
            if mark == 1:
                cycle = " -> ".join(path[path.index(rule_id):] + [rule_id])
                raise RuleConfigurationError(f"Rule dependency cycle: {cycle}")
            state[rule_id] = 1
            for dep in self.rules[rule_id].dependencies:
                visit(dep, path + [rule_id])
            state[rule_id] = 2
            order.append(rule_id)

        for rule_id in self.rules:
            visit(rule_id, [])
        return order

    def __len__(self) -> int:
        return len(self.rules)

    def __getitem__(self, rule_id: str) -> Rule:
        return self.rules[rule_id]


class RuleBasedAnalyzer:
    """Evaluates a RuleGraph against wallet metrics."""

    def __init__(self, rules: Optional[Sequence[Rule]] = None, metrics_sink=None):
        """
        Args:
            rules: Rule table (defaults to default_rules())
            metrics_sink: Optional ScopeMetrics used to count triggered rules
        """
        self.graph = RuleGraph(default_rules() if rules is None else rules)
        self.metrics_sink = metrics_sink

    def _evaluate(self, rule_id: str, metrics: DetailedMetrics, memo: Dict[str, bool]) -> bool:
        if rule_id in memo:
            return memo[rule_id]
        rule = self.graph[rule_id]
        deps_ok = all(self._evaluate(dep, metrics, memo) for dep in rule.dependencies)
        memo[rule_id] = bool(deps_ok and rule.condition(metrics))
        return memo[rule_id]

    def analyze(self, metrics: DetailedMetrics) -> RuleAnalysis:
        """
        Evaluate every rule and summarize the triggered ones.

        Exceptions raised by a rule condition propagate to the caller.

        Returns:
            RuleAnalysis with patterns, risks, ranked recommendations and score
        """
        memo: Dict[str, bool] = {}
        triggered: List[Rule] = []
        # Declaration order keeps output (and recommendation tie order) stable
        for rule_id in self.graph.rules:
            if self._evaluate(rule_id, metrics, memo):
                triggered.append(self.graph[rule_id])

        analysis = RuleAnalysis(triggered=[r.id for r in triggered])
        weighted: List[float] = []

        for rule in triggered:
            impact = rule.impact_for(metrics)
            confidence = rule.confidence_for(metrics)
            recommendations = rule.recommendations_for(metrics)
            weighted.append(impact * confidence)

            if rule.category == RuleCategory.PATTERN:
                analysis.patterns.append(PatternFinding(
                    name=rule.name,
                    description=rule.description,
                    impact=impact,
                    confidence=confidence,
                ))
            elif rule.category == RuleCategory.RISK:
                analysis.risks.append(RiskFinding(
                    name=rule.name,
                    description=rule.description,
                    severity=-impact,
                    recommendations=list(recommendations),
                ))

            for text in recommendations:
                analysis.recommendations.append(RankedRecommendation(
                    source=rule.name,
                    recommendation=text,
                    priority=rule.priority,
                    impact=abs(impact),
                ))

            if self.metrics_sink is not None:
                self.metrics_sink.record_rule_triggered(rule.id)

        analysis.recommendations.sort(key=lambda r: r.priority * r.impact, reverse=True)
        if weighted:
            analysis.score = clamp(1 + mean(weighted), 0.0, 1.0)

        logger.debug(
            f"Rule analysis: {len(triggered)}/{len(self.graph)} triggered, score={analysis.score:.2f}"
        )
        return analysis


# ---------------------------------------------------------------------------
# Default rule table
# ---------------------------------------------------------------------------

def _average_daily_trades(metrics: DetailedMetrics) -> float:
    return mean(day.count for day in metrics.trading_stats.trading_frequency)


def _profitable_day_share(metrics: DetailedMetrics) -> float:
    days = metrics.trading_stats.trading_frequency
    profitable = sum(1 for day in days if day.profit_loss > 0)
    return safe_divide(profitable, len(days))


def _max_token_balance(metrics: DetailedMetrics) -> float:
    if not metrics.token_metrics:
        return 0.0
    return max(t.balance for t in metrics.token_metrics)


def default_rules() -> List[Rule]:
    """Built-in rule table."""
    return [
        Rule(
            id="high-frequency-trading",
            name="High-Frequency Trading Pattern",
            description="Identifies high-frequency trading behavior",
            category=RuleCategory.PATTERN,
            condition=lambda m: _average_daily_trades(m) > 10,
            impact=lambda m: 1.0 if m.trading_stats.win_rate > 0.6 else -1.0,
            confidence=lambda m: min(m.overview.total_transactions / 1000, 0.95),
            recommendations=[
                "Consider transaction costs impact on strategy",
                "Implement advanced execution algorithms",
                "Monitor slippage across different DEXs",
            ],
            priority=1,
        ),
        Rule(
            id="token-concentration",
            name="Token Concentration Risk",
            description="Analyzes portfolio concentration risk",
            category=RuleCategory.RISK,
            condition=lambda m: _max_token_balance(m) > 0.4,
            impact=-0.8,
            confidence=0.9,
            recommendations=[
                "Consider diversifying token holdings",
                "Set maximum allocation limits per token",
                "Review portfolio rebalancing strategy",
            ],
            priority=1,
        ),
        Rule(
            id="market-timing",
            name="Market Timing Analysis",
            description="Evaluates market timing effectiveness",
            category=RuleCategory.PERFORMANCE,
            condition=lambda m: _profitable_day_share(m) > 0.6,
            impact=0.7,
            confidence=lambda m: min(len(m.trading_stats.trading_frequency) / 100, 0.85),
            recommendations=[
                "Continue monitoring successful timing patterns",
                "Consider automating entry/exit strategies",
                "Document market conditions for successful trades",
            ],
            priority=2,
        ),
        Rule(
            id="liquidity-risk",
            name="Liquidity Risk Assessment",
            description="Analyzes exposure to liquidity risks",
            category=RuleCategory.RISK,
            condition=lambda m: m.risk_metrics.liquidity_exposure > 0.3,
            impact=-0.6,
            confidence=0.85,
            recommendations=[
                "Consider reducing position sizes in illiquid tokens",
                "Implement sliding slippage tolerance",
                "Monitor DEX liquidity trends",
            ],
            priority=1,
            dependencies=["token-concentration"],
        ),
        Rule(
            id="smart-contract-risk",
            name="Smart Contract Risk Analysis",
            description="Evaluates exposure to smart contract risks",
            category=RuleCategory.RISK,
            condition=lambda m: m.risk_metrics.smart_contract_risk.score > 0.7,
            impact=-0.9,
            confidence=0.95,
            recommendations=[
                "Diversify across multiple protocols",
                "Prioritize audited protocols",
                "Consider using smart contract coverage",
            ],
            priority=1,
        ),
    ]
