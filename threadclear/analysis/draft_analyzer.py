"""
Draft Analyzer

Reviews a reply the user is about to send against the conversation and its
outstanding questions. Tone and coverage need semantic judgment, so the
review is provider-backed; without a usable completion the result is the
conservative default (nothing covered, neutral tone, not ready to send).

The completion's coverage list is mapped back onto the outstanding questions
with a fuzzy match, so an outstanding question the completion paraphrases
still counts, and one it forgets is listed as ignored.
"""

import logging
from typing import TYPE_CHECKING, List, Optional

from rapidfuzz import fuzz, process, utils

from .models import (
    DraftAnalysis,
    QuestionCoverage,
    RiskFlag,
    ThreadCapsule,
    ToneAssessment,
)
from .prompts import build_draft_prompt
from .sanitizer import JsonView

if TYPE_CHECKING:
    from ..core.context import AnalysisContext

logger = logging.getLogger(__name__)

SLOT = "draft_analysis"
MIN_COMPLETENESS = 0
MAX_COMPLETENESS = 10


def conservative_default(outstanding: List[str], reason: str = "") -> DraftAnalysis:
    """Nothing is assumed covered and the draft is never ready to send"""
    return DraftAnalysis(
        tone=ToneAssessment(),
        questions_covered=[QuestionCoverage(question=q, addressed=False) for q in outstanding],
        questions_ignored=list(outstanding),
        completeness_score=0,
        overall_assessment=reason,
        ready_to_send=False,
    )


class DraftAnalyzer:
    """Provider-backed review of a draft reply"""

    def __init__(self):
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    async def analyze_draft(self, capsule: ThreadCapsule, draft_text: str, context: "AnalysisContext",
                            outstanding: Optional[List[str]] = None, author: Optional[str] = None) -> DraftAnalysis:
        """
        Review a draft reply.

        Args:
            capsule: The analyzed conversation
            draft_text: Reply text to review
            context: Request context; its strategy decides whether the provider is consulted
            outstanding: Questions the reply should address; defaults to the
                capsule's unanswered questions
            author: Optional name of the person writing the draft

        Returns:
            DraftAnalysis; never raises on provider failure
        """
        if outstanding is None:
            outstanding = [q.question for q in capsule.analysis.unanswered_questions or []]

        if not draft_text or not draft_text.strip():
            return conservative_default(outstanding, "The draft is empty")

        if not context.strategy.uses_ai:
            return conservative_default(outstanding, "Draft review requires an AI provider")

        prompt = build_draft_prompt(capsule, draft_text, outstanding, author)
        view = await context.strategy.ask_json(prompt, SLOT, context)
        if view is None:
            return conservative_default(outstanding, "Draft review is unavailable right now")

        try:
            return self.from_completion(view, outstanding, context.detectors.draft_question_similarity)
        except Exception as e:
            context.mark_degraded(SLOT, f"{type(e).__name__}: {e}")
            return conservative_default(outstanding, "Draft review is unavailable right now")

    def from_completion(self, view: JsonView, outstanding: List[str], similarity: int = 80) -> DraftAnalysis:
        """Normalize a completion into DraftAnalysis, applying the readiness rules"""
        tone_view = view.get_view("tone")
        tone = ToneAssessment(
            tone=tone_view.get_str("tone", "neutral") or "neutral",
            matches_conversation_tone=tone_view.get_bool("matches_conversation_tone", False),
            escalation_risk=tone_view.get_str("escalation_risk", "none") or "none",
            explanation=tone_view.get_str("explanation"),
        )
        if isinstance(view.raw, dict) and isinstance(view.raw.get("tone"), str):
            tone = tone.model_copy(update={"tone": view.get_str("tone") or "neutral"})

        reported = []
        for item in view.get_views("questions_covered"):
            question = item.get_str("question").strip()
            if question:
                reported.append((question, item.get_bool("addressed", False), item.get_str("how_addressed") or None))
        reported_texts = [question for question, _, _ in reported]

        covered: List[QuestionCoverage] = []
        ignored: List[str] = []
        for question in outstanding:
            match = process.extractOne(question, reported_texts, scorer=fuzz.ratio,
                                       processor=utils.default_process, score_cutoff=similarity)
            if match is None:
                covered.append(QuestionCoverage(question=question, addressed=False))
                ignored.append(question)
                continue
            _, addressed, how = reported[match[2]]
            covered.append(QuestionCoverage(question=question, addressed=addressed, how_addressed=how))
            if not addressed:
                ignored.append(question)

        risk_flags = [
            RiskFlag(
                type=item.get_str("type"),
                description=item.get_str("description"),
                severity=item.get_str("severity", "low") or "low",
                suggestion=item.get_str("suggestion"),
            )
            for item in view.get_views("risk_flags")
        ]

        score = max(MIN_COMPLETENESS, min(MAX_COMPLETENESS, view.get_int("completeness_score", 0)))
        says_ready = view.get_bool("ready_to_send", False)
        ready = says_ready and not ignored and not any(flag.is_high for flag in risk_flags)
        if says_ready and not ready:
            self.logger.debug(f"Draft not ready: {len(ignored)} question(s) ignored, "
                              f"{sum(1 for f in risk_flags if f.is_high)} high-severity flag(s)")

        return DraftAnalysis(
            tone=tone,
            questions_covered=covered,
            questions_ignored=ignored,
            new_questions_introduced=view.get_str_list("new_questions_introduced"),
            risk_flags=risk_flags,
            completeness_score=score,
            suggestions=view.get_str_list("suggestions"),
            overall_assessment=view.get_str("overall_assessment"),
            ready_to_send=ready,
        )
