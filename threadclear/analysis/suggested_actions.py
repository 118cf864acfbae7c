"""
Suggested next actions

Built from the merged findings, highest priority first and capped at
`max_suggested_actions`. In hybrid mode the provider may add suggestions of
its own; those are deduplicated against the templated ones before capping.
"""

import logging
from typing import TYPE_CHECKING, List

from .models import (
    ConversationAnalysis,
    Priority,
    RiskLevel,
    Severity,
    SuggestedAction,
    ThreadCapsule,
)
from .prompts import build_suggestions_prompt
from .similarity import same_text

if TYPE_CHECKING:
    from ..core.context import AnalysisContext

logger = logging.getLogger(__name__)

SLOT = "suggested_actions"


def parse_priority(value: str) -> Priority:
    lowered = (value or "").strip().lower()
    if lowered in ("high", "critical", "urgent"):
        return Priority.HIGH
    if lowered in ("low", "minor"):
        return Priority.LOW
    return Priority.MEDIUM


class SuggestedActionGenerator:
    """Derives prioritized next steps from detector findings"""

    def __init__(self):
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def from_findings(self, capsule: ThreadCapsule, analysis: ConversationAnalysis) -> List[SuggestedAction]:
        actions: List[SuggestedAction] = []

        for question in analysis.unanswered_questions or []:
            days = question.days_unanswered
            priority = Priority.HIGH if days >= 2 or question.times_asked > 1 else Priority.MEDIUM
            actions.append(SuggestedAction(
                action=f"Answer {question.asked_by}'s question: \"{question.question}\"",
                priority=priority,
                reasoning=f"Open for {days:.1f} day(s), asked {question.times_asked} time(s)",
                evidence=[question.question],
                message_ids=[question.message_id],
            ))

        for point in analysis.tension_points or []:
            if point.severity == Severity.LOW:
                continue
            actions.append(SuggestedAction(
                action=f"Address the {point.type.lower()} tension with {', '.join(point.participants)}",
                priority=Priority.HIGH if point.severity == Severity.HIGH else Priority.MEDIUM,
                reasoning=point.description,
                evidence=[point.description],
                message_ids=list(point.message_ids),
            ))

        for item in analysis.misalignments or []:
            actions.append(SuggestedAction(
                action=item.suggested_resolution or f"Clarify: {item.description}",
                priority=Priority.HIGH if item.severity == Severity.HIGH else Priority.MEDIUM,
                reasoning=item.description,
                evidence=[item.description],
                message_ids=list(item.message_ids),
            ))

        for item in analysis.action_items or []:
            if item.status != "Pending" or item.assigned_to == "Unassigned":
                continue
            actions.append(SuggestedAction(
                action=f"Follow up with {item.assigned_to} on: {item.action}",
                priority=item.priority,
                reasoning=f"Requested by {item.requested_by} and still pending",
                message_ids=[item.message_id],
            ))

        health = analysis.conversation_health
        if health is not None and health.risk_level != RiskLevel.UNKNOWN:
            priority = Priority.HIGH if health.risk_level in (RiskLevel.HIGH, RiskLevel.CRITICAL) else Priority.LOW
            for recommendation in health.recommendations:
                actions.append(SuggestedAction(
                    action=recommendation,
                    priority=priority,
                    reasoning=f"Conversation health is {health.health_score:.2f} ({health.risk_level.value} risk)",
                ))
        return actions

    async def generate(self, capsule: ThreadCapsule, analysis: ConversationAnalysis,
                       context: "AnalysisContext") -> List[SuggestedAction]:
        actions = self.from_findings(capsule, analysis)

        if context.strategy.uses_ai:
            findings = [a.reasoning or a.action for a in actions]
            view = await context.strategy.ask_json(build_suggestions_prompt(capsule, findings), SLOT, context)
            if view is not None:
                valid = set(capsule.message_ids())
                for item in view.get_views("suggestions"):
                    text = item.get_str("action").strip()
                    if not text:
                        continue
                    actions.append(SuggestedAction(
                        action=text,
                        priority=parse_priority(item.get_str("priority")),
                        reasoning=item.get_str("reasoning") or None,
                        evidence=item.get_str_list("evidence"),
                        message_ids=[i for i in item.get_str_list("message_ids") if i in valid],
                    ))

        return self.finalize(actions, context.detectors.max_suggested_actions)

    def finalize(self, actions: List[SuggestedAction], limit: int) -> List[SuggestedAction]:
        """Deduplicate, order by priority (stable) and cap"""
        unique: List[SuggestedAction] = []
        for action in actions:
            if any(same_text(action.action, kept.action) for kept in unique):
                continue
            unique.append(action)
        unique.sort(key=lambda a: a.priority.rank)
        if len(unique) > limit:
            self.logger.debug(f"Capping {len(unique)} suggested actions at {limit}")
        return unique[:limit]
