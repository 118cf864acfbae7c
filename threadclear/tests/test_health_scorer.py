"""Tests for conversation health scoring"""

from datetime import datetime, timezone

import pytest

from threadclear.analysis.health_scorer import HealthScorer, recency_weight, risk_for_score
from threadclear.analysis.models import (
    Misalignment,
    RiskLevel,
    Severity,
    TensionPoint,
    UnansweredQuestion,
)
from threadclear.config.models import HealthConfig

ASKED_AT = datetime(2024, 3, 8, 12, 0, tzinfo=timezone.utc)


def unanswered(message_id: str, days: float) -> UnansweredQuestion:
    return UnansweredQuestion(question="Is it ready?", asked_by="Alice", asked_at=ASKED_AT,
                              days_unanswered=days, message_id=message_id)


def tension(severity: Severity) -> TensionPoint:
    return TensionPoint(type="Emotional", severity=severity, description="tense", message_ids=["msg1"])


def misalignment() -> Misalignment:
    return Misalignment(description="differs", message_ids=["msg1"])


class TestRiskTable:

    @pytest.mark.parametrize("score,expected", [
        (1.0, RiskLevel.LOW),
        (0.8, RiskLevel.LOW),
        (0.79, RiskLevel.MEDIUM),
        (0.6, RiskLevel.MEDIUM),
        (0.4, RiskLevel.HIGH),
        (0.39, RiskLevel.CRITICAL),
        (0.0, RiskLevel.CRITICAL),
    ])
    def test_thresholds(self, score, expected):
        assert risk_for_score(score) == expected

    def test_recency_weight(self):
        assert recency_weight(0, 7) == 0.5
        assert recency_weight(3.5, 7) == 0.75
        assert recency_weight(30, 7) == 1.0


class TestHealthScorer:

    def test_quiet_thread_is_healthy(self, build_capsule):
        capsule = build_capsule("Alice: Deploy finished.\nBob: Thanks.")

        health = HealthScorer().score(capsule, [], [], [])

        assert health.responsiveness_score == 1.0
        assert health.health_score == 1.0
        assert health.risk_level == RiskLevel.LOW
        assert health.issues == []
        assert len(health.strengths) == 3

    def test_troubled_thread(self, build_capsule):
        capsule = build_capsule("Alice: Is it ready?\nBob: What do you mean?")
        scorer = HealthScorer()

        health = scorer.score(
            capsule,
            [unanswered("msg1", 7)],
            [tension(Severity.HIGH), tension(Severity.HIGH)],
            [misalignment(), misalignment()],
        )

        assert health.responsiveness_score == 0.5
        assert health.clarity_score == 0.5
        assert health.alignment_score == 0.0
        assert health.health_score == pytest.approx(0.3333, abs=1e-4)
        assert health.risk_level == RiskLevel.CRITICAL
        assert len(health.issues) == 3
        assert len(health.recommendations) == 3

    def test_saturation_caps_sub_scores(self, build_capsule):
        capsule = build_capsule("Alice: Hello")
        scorer = HealthScorer()
        assert scorer.clarity([misalignment()] * 10) == 0.0
        assert scorer.alignment([tension(Severity.MODERATE)] * 10) == 0.0

    def test_weights(self, build_capsule):
        capsule = build_capsule("Alice: Is it ready?")
        scorer = HealthScorer(HealthConfig(responsiveness_weight=1.0, clarity_weight=0.0, alignment_weight=0.0))

        health = scorer.score(capsule, [unanswered("msg1", 0)], [], [])

        assert health.health_score == 0.5
        assert health.risk_level == RiskLevel.HIGH

    def test_all_zero_weights_rejected(self):
        with pytest.raises(ValueError):
            HealthConfig(responsiveness_weight=0, clarity_weight=0, alignment_weight=0)

    def test_weakest_area_recommended_when_no_issue(self, build_capsule):
        capsule = build_capsule("Alice: Hello")
        health = HealthScorer().score(capsule, [], [tension(Severity.MODERATE)], [])
        assert health.alignment_score == pytest.approx(0.6667, abs=1e-4)
        assert health.issues == []
        assert health.recommendations == ["Keep an eye on alignment, the weakest area of this thread"]
