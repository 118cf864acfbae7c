"""
Conversation Health Scorer

Deterministic aggregate over the other detectors' findings. Sub-scores:

    responsiveness = 1 - sum(recency weight of unanswered) / total questions
    clarity        = 1 - min(1, misalignments / clarity_saturation)
    alignment      = 1 - min(1, tension severity sum / alignment_saturation)

A recency weight grows from 0.5 (just asked) to 1.0 once a question has been
open for `recency_window_days`. A conversation without questions is fully
responsive. The health score is the weighted mean of the three sub-scores,
mapped onto the risk table below. These cutoffs are stable so that scores
stay comparable across runs.
"""

import logging
from typing import List, Optional, Tuple

from ..config.models import HealthConfig
from .models import (
    ConversationHealth,
    Misalignment,
    RiskLevel,
    TensionPoint,
    ThreadCapsule,
    UnansweredQuestion,
)

logger = logging.getLogger(__name__)

RISK_THRESHOLDS: Tuple[Tuple[float, RiskLevel], ...] = (
    (0.8, RiskLevel.LOW),
    (0.6, RiskLevel.MEDIUM),
    (0.4, RiskLevel.HIGH),
)

# Sub-scores at or above this read as a strength
STRENGTH_LEVEL = 0.8
# Sub-scores below this read as an issue
ISSUE_LEVEL = 0.6


def risk_for_score(score: float) -> RiskLevel:
    for cutoff, level in RISK_THRESHOLDS:
        if score >= cutoff:
            return level
    return RiskLevel.CRITICAL


def recency_weight(days_unanswered: float, window_days: float) -> float:
    return 0.5 + 0.5 * min(1.0, max(0.0, days_unanswered) / window_days)


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


class HealthScorer:
    """Computes ConversationHealth from detector findings"""

    def __init__(self, config: Optional[HealthConfig] = None):
        self.config = config or HealthConfig()
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def responsiveness(self, capsule: ThreadCapsule, unanswered: List[UnansweredQuestion]) -> float:
        total = sum(len(m.linguistic_features.questions) for m in capsule.messages)
        if total == 0:
            return 1.0
        weighted = sum(recency_weight(q.days_unanswered, self.config.recency_window_days) for q in unanswered)
        return _clamp(1.0 - weighted / total)

    def clarity(self, misalignments: List[Misalignment]) -> float:
        return _clamp(1.0 - min(1.0, len(misalignments) / self.config.clarity_saturation))

    def alignment(self, tension_points: List[TensionPoint]) -> float:
        severity_sum = sum(point.severity.weight for point in tension_points)
        return _clamp(1.0 - min(1.0, severity_sum / self.config.alignment_saturation))

    def score(self, capsule: ThreadCapsule, unanswered: List[UnansweredQuestion],
              tension_points: List[TensionPoint], misalignments: List[Misalignment]) -> ConversationHealth:
        responsiveness = self.responsiveness(capsule, unanswered)
        clarity = self.clarity(misalignments)
        alignment = self.alignment(tension_points)

        cfg = self.config
        total_weight = cfg.responsiveness_weight + cfg.clarity_weight + cfg.alignment_weight
        health = (
            responsiveness * cfg.responsiveness_weight
            + clarity * cfg.clarity_weight
            + alignment * cfg.alignment_weight
        ) / total_weight
        health = round(_clamp(health), 4)

        issues, strengths, recommendations = self._describe(
            responsiveness, clarity, alignment, unanswered, tension_points, misalignments
        )
        result = ConversationHealth(
            responsiveness_score=round(responsiveness, 4),
            clarity_score=round(clarity, 4),
            alignment_score=round(alignment, 4),
            health_score=health,
            risk_level=risk_for_score(health),
            issues=issues,
            strengths=strengths,
            recommendations=recommendations,
        )
        self.logger.debug(f"Health {health:.2f} ({result.risk_level.value}) for capsule {capsule.capsule_id}")
        return result

    @staticmethod
    def _describe(responsiveness: float, clarity: float, alignment: float,
                  unanswered: List[UnansweredQuestion], tension_points: List[TensionPoint],
                  misalignments: List[Misalignment]) -> Tuple[List[str], List[str], List[str]]:
        issues: List[str] = []
        strengths: List[str] = []
        recommendations: List[str] = []

        if responsiveness < ISSUE_LEVEL:
            issues.append(f"{len(unanswered)} question(s) remain unanswered")
            recommendations.append("Answer the outstanding questions before moving the thread forward")
        elif responsiveness >= STRENGTH_LEVEL:
            strengths.append("Questions are answered promptly")

        if clarity < ISSUE_LEVEL:
            issues.append(f"{len(misalignments)} misalignment(s) in expectations or understanding")
            recommendations.append("Summarize what was agreed and ask everyone to confirm it")
        elif clarity >= STRENGTH_LEVEL:
            strengths.append("Participants share a clear understanding")

        if alignment < ISSUE_LEVEL:
            high = sum(1 for p in tension_points if p.severity.weight >= 3)
            issues.append(f"{len(tension_points)} tension point(s), {high} of them high severity")
            recommendations.append("Acknowledge the frustration directly and lower the pressure in the next reply")
        elif alignment >= STRENGTH_LEVEL:
            strengths.append("The tone stays constructive")

        # Always surface the weakest dimension when nothing crossed the issue line
        if not issues:
            weakest = min(
                (("responsiveness", responsiveness), ("clarity", clarity), ("alignment", alignment)),
                key=lambda pair: pair[1],
            )
            if weakest[1] < STRENGTH_LEVEL:
                recommendations.append(f"Keep an eye on {weakest[0]}, the weakest area of this thread")

        return issues, strengths, recommendations
