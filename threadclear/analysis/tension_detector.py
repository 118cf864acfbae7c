"""
Tension-Point Detector

Severity per message:

    High      negative with intensity >= 0.7, or two or more urgency markers
    Moderate  negative with intensity >= 0.4, or exactly one urgency marker
    Low       any other negative signal (negative tone, escalation,
              dismissive or repetition language)

Messages without any negative signal produce no tension point. Descriptions
are assembled from the detected markers only.
"""

from typing import TYPE_CHECKING, List, Optional

from .base import BaseDetector
from .models import Message, Sentiment, Severity, TensionPoint, ThreadCapsule
from .similarity import same_text

if TYPE_CHECKING:
    from ..core.context import AnalysisContext

HIGH_INTENSITY = 0.7
MODERATE_INTENSITY = 0.4


def classify_severity(sentiment: Sentiment, urgency_markers: int, other_signal: bool) -> Optional[Severity]:
    negative = sentiment.is_negative
    if (negative and sentiment.intensity >= HIGH_INTENSITY) or urgency_markers >= 2:
        return Severity.HIGH
    if (negative and sentiment.intensity >= MODERATE_INTENSITY) or urgency_markers == 1:
        return Severity.MODERATE
    if negative or other_signal:
        return Severity.LOW
    return None


class TensionDetector(BaseDetector):
    """Flags messages carrying urgency, frustration or escalation"""

    slot = "tension_points"

    async def detect(self, capsule: ThreadCapsule, context: "AnalysisContext") -> List[TensionPoint]:
        points: List[TensionPoint] = []
        for index, message in enumerate(capsule.messages):
            point = self._inspect(capsule, message, capsule.messages[:index], context)
            if point is not None:
                points.append(point)
        return points

    def _inspect(self, capsule: ThreadCapsule, message: Message, earlier: List[Message],
                 context: "AnalysisContext") -> Optional[TensionPoint]:
        patterns = context.patterns
        features = message.linguistic_features
        sentiment = message.sentiment or Sentiment(polarity=features.sentiment, intensity=0.0)
        markers = list(features.urgency_markers)

        escalation = patterns.find(message.content, "escalation_indicators")
        dismissive = patterns.find(message.content, "dismissive_indicators")
        repetition = patterns.find(message.content, "repetition_indicators")
        repeated_question = any(
            same_text(question, previous_question)
            for question in features.questions
            for previous in earlier if previous.participant_id == message.participant_id
            for previous_question in previous.linguistic_features.questions
        )

        other_signal = bool(escalation or dismissive or repetition or repeated_question)
        severity = classify_severity(sentiment, len(markers), other_signal)
        if severity is None:
            return None

        if escalation:
            tension_type = "Escalation"
        elif repetition or repeated_question:
            tension_type = "RepeatedQuestion"
        elif dismissive:
            tension_type = "Dismissive"
        elif markers:
            tension_type = "Urgent"
        else:
            tension_type = "Emotional"

        parts: List[str] = []
        if sentiment.is_negative:
            parts.append(f"negative tone (intensity {sentiment.intensity:.2f})")
        if markers:
            parts.append(f"urgency markers: {', '.join(markers)}")
        if escalation:
            parts.append(f"escalation language: {', '.join(escalation)}")
        if dismissive:
            parts.append(f"dismissive language: {', '.join(dismissive)}")
        if repetition:
            parts.append(f"repetition language: {', '.join(repetition)}")
        if repeated_question:
            parts.append("question asked again")

        sender = capsule.participant_name(message.participant_id)
        participants = [sender]
        message_ids = [message.id]
        for edge in capsule.conversation_graph.edges:
            if edge.source == message.id and not edge.inferred:
                target = capsule.get_message(edge.target)
                if target is not None:
                    message_ids.append(target.id)
                    name = capsule.participant_name(target.participant_id)
                    if name not in participants:
                        participants.append(name)

        return TensionPoint(
            type=tension_type,
            severity=severity,
            description=f"{sender}: " + "; ".join(parts),
            message_ids=self.known_ids(capsule, message_ids),
            participants=participants,
        )
