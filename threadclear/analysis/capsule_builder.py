"""
Capsule Builder

Pure structural inference over parser output: the reply graph, participant
roles, thread metadata and a templated summary. No provider calls.
"""

import logging
import re
import statistics
from collections import Counter
from datetime import timedelta
from typing import Dict, List, Optional

from .models import (
    UNKNOWN_PARTICIPANT_ID,
    ConversationGraph,
    EdgeType,
    GraphEdge,
    Message,
    Participant,
    ParticipantRole,
    SourceType,
    ThreadCapsule,
    ThreadMetadata,
    UrgencyLevel,
)
from .patterns import PatternLibrary

logger = logging.getLogger(__name__)

_SUBJECT_PREFIX_RE = re.compile(r"^\s*((re|fw|fwd)\s*:\s*)+", re.IGNORECASE)
_MENTION_RE = re.compile(r"@([A-Za-z][\w.\-]*)")

# Tie-break order when two roles score the same
_ROLE_PRECEDENCE = ("Executive", "Manager", "Support", "Vendor", "Customer", "Employee")

# Response gaps longer than this are not counted as response times
_MAX_RESPONSE_GAP = timedelta(days=30)


class CapsuleBuilder:
    """Builds a ThreadCapsule from parsed participants and messages"""

    def __init__(self, patterns: Optional[PatternLibrary] = None, reply_window_hours: Optional[float] = None):
        self.patterns = patterns or PatternLibrary()
        self.reply_window = timedelta(hours=reply_window_hours) if reply_window_hours else None
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def build(self, participants: List[Participant], messages: List[Message],
              source_type: SourceType = SourceType.UNKNOWN, parsing_mode: str = "Basic") -> ThreadCapsule:
        known_ids = {m.id for m in messages}
        for message in messages:
            if message.response_to and message.response_to not in known_ids:
                message.response_to = None

        graph = self.build_graph(participants, messages)
        participants = [
            p.model_copy(update={"inferred_role": self.infer_role(p, messages)}) for p in participants
        ]

        capsule = ThreadCapsule(
            source_type=source_type,
            parsing_mode=parsing_mode,
            participants=participants,
            messages=messages,
            conversation_graph=graph,
        )
        capsule.thread_metadata = self.calculate_metadata(capsule)
        capsule.summary = self.generate_summary(capsule)
        capsule.key_points = self.generate_key_points(capsule)

        self.logger.debug(
            f"Built capsule {capsule.capsule_id}: {len(messages)} messages, "
            f"{len(graph.edges)} edges ({sum(1 for e in graph.edges if e.inferred)} inferred)"
        )
        return capsule

    # ------------------------------------------------------------------
    # Graph
    # ------------------------------------------------------------------

    def build_graph(self, participants: List[Participant], messages: List[Message]) -> ConversationGraph:
        """
        Explicit reply markers become Response/Quote edges. Otherwise the
        message links to the nearest preceding message from a different
        participant (within the reply window, when one is configured).
        "@name" mentions add Reference edges.
        """
        graph = ConversationGraph(nodes=[m.id for m in messages])
        names = {
            p.name.split()[0].lower(): p.id for p in participants
            if p.id != UNKNOWN_PARTICIPANT_ID and p.name.strip()
        }

        for index, message in enumerate(messages):
            earlier = messages[:index]
            target_id: Optional[str] = None

            if message.response_to:
                edge_type = EdgeType.QUOTE if message.metadata.get("reply_marker") == "quote" else EdgeType.RESPONSE
                graph.edges.append(GraphEdge(source=message.id, target=message.response_to, type=edge_type))
                target_id = message.response_to
            else:
                previous = self._nearest_other_sender(message, earlier)
                if previous is not None:
                    graph.edges.append(GraphEdge(source=message.id, target=previous.id, inferred=True))
                    target_id = previous.id

            for mention in _MENTION_RE.findall(message.content):
                mentioned = names.get(mention.lower())
                if not mentioned or mentioned == message.participant_id:
                    continue
                referenced = next((m for m in reversed(earlier) if m.participant_id == mentioned), None)
                if referenced is not None and referenced.id != target_id:
                    graph.edges.append(GraphEdge(source=message.id, target=referenced.id,
                                                 type=EdgeType.REFERENCE, inferred=True))
        return graph

    def _nearest_other_sender(self, message: Message, earlier: List[Message]) -> Optional[Message]:
        for candidate in reversed(earlier):
            if candidate.participant_id == message.participant_id:
                continue
            if self.reply_window is not None and message.timestamp - candidate.timestamp > self.reply_window:
                return None
            return candidate
        return None

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    def infer_role(self, participant: Participant, messages: List[Message]) -> ParticipantRole:
        """Keyword/title scoring over content, signature lines and sender address"""
        if participant.id == UNKNOWN_PARTICIPANT_ID:
            return ParticipantRole.UNKNOWN

        own = [m.content for m in messages if m.participant_id == participant.id]
        if not own and not participant.email:
            return ParticipantRole.UNKNOWN

        body = "\n".join(own)
        signature = "\n".join(self._signature_lines(content) for content in own)
        scores: Counter = Counter()

        for role, keywords in self.patterns.role_keywords.items():
            for keyword in keywords:
                if self.patterns.contains_phrase(body, keyword):
                    scores[role] += 1
                if signature and self.patterns.contains_phrase(signature, keyword):
                    scores[role] += 2

        if participant.email and "@" in participant.email:
            local_part = participant.email.split("@", 1)[0].lower()
            mailbox = re.split(r"[._+\-]", local_part)[0]
            for role, prefixes in self.patterns.role_addresses.items():
                if mailbox in prefixes:
                    scores[role] += 3

        if not scores:
            return ParticipantRole.UNKNOWN
        best = max(scores.values())
        for role in _ROLE_PRECEDENCE:
            if scores.get(role) == best:
                return ParticipantRole(role)
        return ParticipantRole.UNKNOWN

    @staticmethod
    def _signature_lines(content: str) -> str:
        """Short trailing lines, where names and titles usually sit"""
        lines = [line.strip() for line in content.split("\n") if line.strip()]
        if len(lines) < 2:
            return ""
        return "\n".join(line for line in lines[-3:] if len(line) <= 60)

    # ------------------------------------------------------------------
    # Metadata and summaries
    # ------------------------------------------------------------------

    def calculate_metadata(self, capsule: ThreadCapsule) -> ThreadMetadata:
        messages = capsule.messages
        metadata = ThreadMetadata(
            platform=capsule.source_type.value,
            message_count=len(messages),
            participant_count=len(capsule.participants),
        )
        if not messages:
            return metadata

        subject = next((m.metadata["subject"] for m in messages if m.metadata.get("subject")), "")
        metadata.subject = _SUBJECT_PREFIX_RE.sub("", subject).strip()

        ordered = sorted(messages, key=lambda m: m.timestamp)
        metadata.start_date = ordered[0].timestamp
        metadata.end_date = ordered[-1].timestamp
        metadata.duration_days = round((ordered[-1].timestamp - ordered[0].timestamp).total_seconds() / 86400, 2)
        metadata.thread_initiator = messages[0].participant_id
        metadata.participant_activity = dict(Counter(m.participant_id for m in messages))

        gaps = self._response_times_hours(ordered)
        if gaps:
            metadata.average_response_time_hours = round(statistics.mean(gaps), 2)
            metadata.median_response_time_hours = round(statistics.median(gaps), 2)
        return metadata

    @staticmethod
    def _response_times_hours(ordered: List[Message]) -> List[float]:
        gaps: List[float] = []
        for previous, current in zip(ordered, ordered[1:]):
            if current.participant_id == previous.participant_id:
                continue
            gap = current.timestamp - previous.timestamp
            if timedelta(0) <= gap < _MAX_RESPONSE_GAP:
                gaps.append(gap.total_seconds() / 3600)
        return gaps

    def generate_summary(self, capsule: ThreadCapsule) -> str:
        participant_count = len(capsule.participants)
        message_count = len(capsule.messages)
        question_count = sum(len(m.linguistic_features.questions) for m in capsule.messages)

        summary = f"Conversation between {participant_count} participant(s) with {message_count} message(s)."
        if question_count:
            summary += f" Contains {question_count} question(s)."

        urgent = sum(1 for m in capsule.messages if m.linguistic_features.urgency == UrgencyLevel.HIGH)
        if urgent:
            summary += f" {urgent} message(s) marked as urgent."
        return summary

    def generate_key_points(self, capsule: ThreadCapsule) -> List[str]:
        key_points: List[str] = []
        meta = capsule.thread_metadata

        if len(capsule.messages) > 1:
            if meta.duration_days > 1:
                key_points.append(f"Conversation spanned {meta.duration_days:.1f} days")
            elif meta.duration_days * 24 > 1:
                key_points.append(f"Conversation lasted {meta.duration_days * 24:.1f} hours")

        if meta.participant_activity:
            most_active, count = max(meta.participant_activity.items(), key=lambda item: item[1])
            participant = capsule.get_participant(most_active)
            if participant is not None:
                key_points.append(f"Most active: {participant.name} ({count} messages)")

        total_questions = sum(len(m.linguistic_features.questions) for m in capsule.messages)
        if total_questions:
            key_points.append(f"{total_questions} question(s) asked")

        tones: Dict[str, int] = Counter(m.linguistic_features.sentiment.value for m in capsule.messages)
        if tones:
            key_points.append(f"Overall tone: {max(tones.items(), key=lambda item: item[1])[0]}")
        return key_points
