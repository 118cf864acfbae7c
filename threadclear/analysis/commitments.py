"""
Decision and action-item tracking

Both trackers work sentence by sentence on indicator phrases:

- decisions: sentences carrying decision language ("we agreed", "let's go
  with"), attributed to the sender
- action items: requests ("can you", "please") assigned to the addressee,
  and commitments ("I will", "let me") assigned to the sender

An action item is marked completed when its assignee later replies to the
requesting message with completion language ("done", "attached"), or posts
a later status update with completion language about the same work.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, List, Optional, Set

from .base import BaseDetector
from .features import split_sentences
from .similarity import token_overlap
from .models import (
    ActionItem,
    DecisionPoint,
    Message,
    Priority,
    ThreadCapsule,
    UrgencyLevel,
)

if TYPE_CHECKING:
    from ..core.context import AnalysisContext

UNASSIGNED = "Unassigned"


@dataclass
class CommitmentReport:
    decisions: List[DecisionPoint]
    action_items: List[ActionItem]


class CommitmentTracker(BaseDetector):
    """Tracks decisions and the action items people asked for or took on"""

    slot = "decisions"

    async def detect(self, capsule: ThreadCapsule, context: "AnalysisContext") -> List[DecisionPoint]:
        return self.analyze(capsule, context).decisions

    def analyze(self, capsule: ThreadCapsule, context: "AnalysisContext") -> CommitmentReport:
        decisions: List[DecisionPoint] = []
        action_items: List[ActionItem] = []
        replies = self._reply_map(capsule)

        for message in capsule.messages:
            sender = capsule.participant_name(message.participant_id)
            for sentence in split_sentences(message.content):
                if context.patterns.contains(sentence, "decision_indicators") and not sentence.endswith("?"):
                    decisions.append(DecisionPoint(
                        decision=sentence,
                        decided_by=sender,
                        message_id=message.id,
                        timestamp=message.timestamp,
                    ))
                    continue

                item = self._action_from(capsule, message, sentence, context)
                if item is None:
                    continue
                reply_ids = replies.get(message.id, set())
                if self._completed(capsule, message, item.action, item.assigned_to, reply_ids, context):
                    item = item.model_copy(update={"status": "Completed"})
                action_items.append(item)

        self.logger.debug(f"{len(decisions)} decision(s), {len(action_items)} action item(s)")
        return CommitmentReport(decisions=decisions, action_items=action_items)

    @staticmethod
    def _reply_map(capsule: ThreadCapsule) -> Dict[str, Set[str]]:
        replies: Dict[str, Set[str]] = {}
        for edge in capsule.conversation_graph.edges:
            replies.setdefault(edge.target, set()).add(edge.source)
        return replies

    def _action_from(self, capsule: ThreadCapsule, message: Message, sentence: str,
                     context: "AnalysisContext") -> Optional[ActionItem]:
        patterns = context.patterns
        sender = capsule.participant_name(message.participant_id)
        priority = self._priority(message)

        if patterns.contains(sentence, "action_request_indicators"):
            return ActionItem(
                action=sentence,
                assigned_to=self._addressee(capsule, message) or UNASSIGNED,
                requested_by=sender,
                message_id=message.id,
                priority=priority,
            )

        if patterns.contains(sentence, "commitment_indicators") and not sentence.endswith("?"):
            requester = self._addressee(capsule, message) or sender
            return ActionItem(
                action=sentence,
                assigned_to=sender,
                requested_by=requester,
                message_id=message.id,
                priority=priority,
            )
        return None

    @staticmethod
    def _priority(message: Message) -> Priority:
        urgency = message.linguistic_features.urgency
        if urgency == UrgencyLevel.HIGH:
            return Priority.HIGH
        if urgency == UrgencyLevel.MEDIUM:
            return Priority.MEDIUM
        return Priority.LOW if not message.linguistic_features.urgency_markers else Priority.MEDIUM

    @staticmethod
    def _addressee(capsule: ThreadCapsule, message: Message) -> Optional[str]:
        """Sender of the first message this one replies to or mentions"""
        for edge in capsule.conversation_graph.edges:
            if edge.source != message.id:
                continue
            target = capsule.get_message(edge.target)
            if target is not None and target.participant_id != message.participant_id:
                return capsule.participant_name(target.participant_id)

        # Two-party threads have an obvious addressee
        others = [p for p in capsule.participants if p.id != message.participant_id]
        if len(others) == 1:
            return others[0].name
        return None

    @staticmethod
    def _completed(capsule: ThreadCapsule, message: Message, action: str, assignee: str,
                   reply_ids: Set[str], context: "AnalysisContext") -> bool:
        if assignee == UNASSIGNED:
            return False
        for reply_id in reply_ids:
            reply = capsule.get_message(reply_id)
            if reply is None or reply.timestamp < message.timestamp:
                continue
            if capsule.participant_name(reply.participant_id) != assignee:
                continue
            if context.patterns.contains(reply.content, "completion_indicators"):
                return True

        # A later status update from the assignee about the same work also closes the item
        later = [m for m in capsule.messages if m.timestamp > message.timestamp and m.id not in reply_ids]
        for update in later:
            if capsule.participant_name(update.participant_id) != assignee:
                continue
            if context.patterns.contains(update.content, "completion_indicators") and \
                    token_overlap(action, update.content).matched >= 1:
                return True
        return False
