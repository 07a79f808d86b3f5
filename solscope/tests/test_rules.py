"""Tests for the rule-based analyzer."""

import pytest

from solscope.core.errors import RuleConfigurationError
from solscope.core.models import DailyActivity, DetailedMetrics, RuleCategory, TokenMetric
from solscope.core.rules import Rule, RuleBasedAnalyzer, RuleGraph, default_rules


def make_rule(rule_id, condition=lambda m: True, dependencies=None, **kwargs):
    defaults = dict(
        name=rule_id.title(),
        description=f"{rule_id} rule",
        category=RuleCategory.PATTERN,
        impact=0.5,
        confidence=1.0,
        recommendations=[f"act on {rule_id}"],
    )
    defaults.update(kwargs)
    return Rule(id=rule_id, condition=condition, dependencies=dependencies or [], **defaults)


def concentrated_metrics():
    """Metrics where one token balance exceeds the concentration threshold."""
    metrics = DetailedMetrics.empty()
    metrics.token_metrics = [TokenMetric(symbol="BONK", balance=0.9), TokenMetric(symbol="WIF", balance=0.1)]
    return metrics


class TestRuleGraph:
    def test_default_rules_are_valid(self):
        graph = RuleGraph(default_rules())
        assert len(graph) == 5
        assert graph.order.index("token-concentration") < graph.order.index("liquidity-risk")

    def test_unknown_dependency(self):
        with pytest.raises(RuleConfigurationError, match="unknown rule missing"):
            RuleGraph([make_rule("a", dependencies=["missing"])])

    def test_cycle(self):
        rules = [
            make_rule("a", dependencies=["b"]),
            make_rule("b", dependencies=["c"]),
            make_rule("c", dependencies=["a"]),
        ]
        with pytest.raises(RuleConfigurationError, match="cycle"):
            RuleGraph(rules)

    def test_self_dependency(self):
        with pytest.raises(RuleConfigurationError):
            RuleGraph([make_rule("a", dependencies=["a"])])

    def test_duplicate_id(self):
        with pytest.raises(RuleConfigurationError, match="Duplicate"):
            RuleGraph([make_rule("a"), make_rule("a")])

    def test_analyzer_validates_at_construction(self):
        with pytest.raises(RuleConfigurationError):
            RuleBasedAnalyzer([make_rule("a", dependencies=["b"])])


class TestRuleBasedAnalyzer:
    def test_empty_metrics_trigger_nothing(self):
        analysis = RuleBasedAnalyzer().analyze(DetailedMetrics.empty())

        assert analysis.patterns == []
        assert analysis.risks == []
        assert analysis.recommendations == []
        assert analysis.score == 1.0
        assert analysis.triggered == []

    def test_token_concentration(self):
        analysis = RuleBasedAnalyzer().analyze(concentrated_metrics())

        assert analysis.triggered == ["token-concentration"]
        assert len(analysis.risks) == 1
        risk = analysis.risks[0]
        assert risk.name == "Token Concentration Risk"
        assert risk.severity == pytest.approx(0.8)
        assert risk.recommendations[0] == "Consider diversifying token holdings"
        assert [r.impact for r in analysis.recommendations] == [pytest.approx(0.8)] * 3
        # 1 + (-0.8 * 0.9)
        assert analysis.score == pytest.approx(0.28)

    def test_dependency_gates_liquidity_risk(self):
        analyzer = RuleBasedAnalyzer()

        metrics = DetailedMetrics.empty()
        metrics.risk_metrics.liquidity_exposure = 0.5
        assert "liquidity-risk" not in analyzer.analyze(metrics).triggered

        metrics = concentrated_metrics()
        metrics.risk_metrics.liquidity_exposure = 0.5
        assert analyzer.analyze(metrics).triggered == ["token-concentration", "liquidity-risk"]

    def test_high_frequency_pattern_impact_depends_on_win_rate(self):
        metrics = DetailedMetrics.empty()
        metrics.trading_stats.trading_frequency = [DailyActivity(date="2024-11-20", count=20)]
        metrics.overview.total_transactions = 500

        metrics.trading_stats.win_rate = 0.7
        pattern = RuleBasedAnalyzer().analyze(metrics).patterns[0]
        assert pattern.name == "High-Frequency Trading Pattern"
        assert pattern.impact == 1.0
        assert pattern.confidence == pytest.approx(0.5)

        metrics.trading_stats.win_rate = 0.3
        assert RuleBasedAnalyzer().analyze(metrics).patterns[0].impact == -1.0

    def test_market_timing_is_neither_pattern_nor_risk(self):
        metrics = DetailedMetrics.empty()
        metrics.trading_stats.trading_frequency = [
            DailyActivity(date=f"2024-11-{d:02d}", count=1, profit_loss=1.0) for d in range(1, 11)
        ]
        analysis = RuleBasedAnalyzer().analyze(metrics)

        assert analysis.triggered == ["market-timing"]
        assert analysis.patterns == [] and analysis.risks == []
        assert len(analysis.recommendations) == 3
        # 1 + 0.7 * 0.1 clamps to 1
        assert analysis.score == 1.0

    def test_recommendations_ranked_by_priority_times_impact(self):
        rules = [
            make_rule("low", impact=0.2, priority=1),
            make_rule("high", impact=-0.9, priority=2, category=RuleCategory.RISK),
            make_rule("mid", impact=0.5, priority=1),
        ]
        analysis = RuleBasedAnalyzer(rules).analyze(DetailedMetrics.empty())

        assert [r.source for r in analysis.recommendations] == ["High", "Mid", "Low"]
        assert analysis.recommendations[0].impact == pytest.approx(0.9)

    def test_recommendations_computed_from_metrics(self):
        rule = make_rule(
            "concentration",
            category=RuleCategory.RISK,
            impact=-0.8,
            recommendations=lambda m: [f"Reduce {m.token_metrics[0].symbol} exposure"],
        )
        analysis = RuleBasedAnalyzer([rule]).analyze(concentrated_metrics())

        assert analysis.risks[0].recommendations == ["Reduce BONK exposure"]
        assert [r.recommendation for r in analysis.recommendations] == ["Reduce BONK exposure"]

    def test_score_is_clamped_at_zero(self):
        rules = [make_rule(f"r{i}", impact=-1.0, confidence=1.0) for i in range(3)]
        assert RuleBasedAnalyzer(rules).analyze(DetailedMetrics.empty()).score == 0.0

    def test_condition_errors_propagate(self):
        def boom(_metrics):
            raise ZeroDivisionError("bad rule")

        analyzer = RuleBasedAnalyzer([make_rule("broken", condition=boom)])
        with pytest.raises(ZeroDivisionError):
            analyzer.analyze(DetailedMetrics.empty())

    def test_dependency_evaluated_once(self):
        calls = []

        def counted(_metrics):
            calls.append(1)
            return True

        rules = [
            make_rule("base", condition=counted),
            make_rule("child1", dependencies=["base"]),
            make_rule("child2", dependencies=["base"]),
        ]
        analysis = RuleBasedAnalyzer(rules).analyze(DetailedMetrics.empty())

        assert len(calls) == 1
        assert analysis.triggered == ["base", "child1", "child2"]

    def test_metrics_sink_counts_triggers(self):
        class Sink:
            def __init__(self):
                self.rule_ids = []

            def record_rule_triggered(self, rule_id):
                self.rule_ids.append(rule_id)

        sink = Sink()
        RuleBasedAnalyzer(metrics_sink=sink).analyze(concentrated_metrics())
        assert sink.rule_ids == ["token-concentration"]

    def test_to_dict_omits_triggered(self):
        out = RuleBasedAnalyzer().analyze(concentrated_metrics()).to_dict()
        assert set(out) == {"patterns", "risks", "recommendations", "score"}
        assert out["recommendations"][0]["source"] == "Token Concentration Risk"
