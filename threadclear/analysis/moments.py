"""
Key moments: the turning points of a thread, collected from the other findings
"""

import logging
from typing import List, Optional, Set, Tuple

from .models import (
    ConversationAnalysis,
    KeyMoment,
    Severity,
    ThreadCapsule,
)

logger = logging.getLogger(__name__)


class KeyMomentCollector:
    """Turns merged findings into a chronological list of key moments"""

    def collect(self, capsule: ThreadCapsule, analysis: ConversationAnalysis) -> List[KeyMoment]:
        moments: List[KeyMoment] = []
        seen: Set[Tuple[str, str]] = set()

        def add(message_id: str, moment_type: str, description: str) -> None:
            message = capsule.get_message(message_id)
            if message is None or (message_id, moment_type) in seen:
                return
            seen.add((message_id, moment_type))
            moments.append(KeyMoment(
                message_id=message_id,
                type=moment_type,
                description=description,
                timestamp=message.timestamp,
            ))

        if capsule.messages:
            first = capsule.messages[0]
            add(first.id, "ThreadStart",
                f"{capsule.participant_name(first.participant_id)} started the conversation")

        for decision in analysis.decisions or []:
            add(decision.message_id, "Decision", f"{decision.decided_by}: {decision.decision}")

        for point in analysis.tension_points or []:
            if point.severity == Severity.HIGH or point.type == "Escalation":
                anchor = self._first(point.message_ids)
                if anchor:
                    add(anchor, "Escalation" if point.type == "Escalation" else "Tension", point.description)

        for item in analysis.misalignments or []:
            anchor = self._first(item.message_ids)
            if anchor:
                add(anchor, "Misalignment", item.description)

        for question in analysis.unanswered_questions or []:
            if question.times_asked > 1:
                add(question.message_id, "RepeatedQuestion",
                    f"{question.asked_by} asked {question.times_asked} times: {question.question}")

        moments.sort(key=lambda m: m.timestamp)
        logger.debug(f"{len(moments)} key moment(s) for capsule {capsule.capsule_id}")
        return moments

    @staticmethod
    def _first(ids: List[str]) -> Optional[str]:
        return ids[0] if ids else None
