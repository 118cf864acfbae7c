"""
Unanswered-Question Detector

A question counts as answered when a later message from another participant
either replies to it explicitly, replies to it through an inferred edge and
carries a lexical signal (shared content words or an answer lead such as
"yes"/"will do"), or repeats enough of the question's content words to read
as an answer on its own.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, List, Set

from .base import BaseDetector
from .models import Message, ThreadCapsule, UnansweredQuestion
from .similarity import same_text, token_overlap

if TYPE_CHECKING:
    from ..core.context import AnalysisContext

# A strong overlap needs at least this many shared content words
_MIN_STRONG_TOKENS = 2


@dataclass
class _Ask:
    message: Message
    question: str
    answered: bool


class UnansweredQuestionDetector(BaseDetector):
    """Finds questions nobody else has answered yet"""

    slot = "unanswered_questions"

    async def detect(self, capsule: ThreadCapsule, context: "AnalysisContext") -> List[UnansweredQuestion]:
        return self.find_unanswered(capsule, context)

    def find_unanswered(self, capsule: ThreadCapsule, context: "AnalysisContext") -> List[UnansweredQuestion]:
        tuning = context.detectors
        explicit: Dict[str, Set[str]] = {}
        inferred: Dict[str, Set[str]] = {}
        for edge in capsule.conversation_graph.edges:
            bucket = inferred if edge.inferred else explicit
            bucket.setdefault(edge.target, set()).add(edge.source)

        asks: List[_Ask] = []
        messages = capsule.messages
        for index, message in enumerate(messages):
            questions = message.linguistic_features.questions
            if not message.linguistic_features.contains_question or not questions:
                continue

            later = [m for m in messages[index + 1:] if m.participant_id != message.participant_id]
            direct = explicit.get(message.id, set())
            linked = direct | inferred.get(message.id, set())

            flags = [
                self._is_answered(question, len(questions), later, direct, linked, context)
                for question in questions
            ]
            # A direct reply that addresses none of the questions specifically answers all of them
            if any(m.id in direct for m in later) and not any(flags):
                flags = [True] * len(questions)

            asks.extend(_Ask(message, q, answered) for q, answered in zip(questions, flags))

        findings: List[UnansweredQuestion] = []
        for group in self._group_repeats(asks):
            if group[-1].answered:
                continue
            first = group[0]
            age_days = (context.now - first.message.timestamp).total_seconds() / 86400
            findings.append(UnansweredQuestion(
                question=first.question,
                asked_by=capsule.participant_name(first.message.participant_id),
                asked_at=first.message.timestamp,
                days_unanswered=round(max(0.0, age_days), 4),
                message_id=first.message.id,
                times_asked=len(group),
            ))

        self.logger.debug(
            f"{len(asks)} question(s) inspected, {len(findings)} unanswered "
            f"(strong overlap >= {tuning.strong_overlap_ratio})"
        )
        return findings

    def _is_answered(self, question: str, question_count: int, later: List[Message],
                     direct: Set[str], linked: Set[str], context: "AnalysisContext") -> bool:
        tuning = context.detectors
        for candidate in later:
            if question_count == 1 and candidate.id in direct:
                return True
            # A counter-question is not an answer
            features = candidate.linguistic_features
            if features.questions and len(features.questions) >= features.sentence_count:
                continue
            overlap = token_overlap(question, candidate.content, tuning.token_similarity)
            if overlap.share >= tuning.strong_overlap_ratio and overlap.matched >= _MIN_STRONG_TOKENS:
                return True
            if candidate.id not in linked:
                continue
            if overlap.matched >= 1 and overlap.share >= tuning.weak_overlap_ratio:
                return True
            if question_count == 1 and context.patterns.starts_with(candidate.content, "answer_lead_indicators"):
                return True
        return False

    @staticmethod
    def _group_repeats(asks: List[_Ask]) -> List[List[_Ask]]:
        """Group repeated asks of the same question by the same participant"""
        groups: List[List[_Ask]] = []
        for ask in asks:
            for group in groups:
                head = group[0]
                if (head.message.participant_id == ask.message.participant_id
                        and head.message.id != ask.message.id
                        and same_text(head.question, ask.question)):
                    group.append(ask)
                    break
            else:
                groups.append([ask])
        return groups
