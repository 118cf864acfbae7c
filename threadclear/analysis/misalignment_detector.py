"""
Misalignment Detector

Regex signals:
- assumption phrasing ("I thought", "I assumed", "my understanding was")
  checked against nearby messages from other participants; a nearby message
  that contradicts it (or touches the same subject) yields a misalignment,
  otherwise the assumption is reported as silent
- divergent timeline claims (different dates/days for the same subject)
- divergent ownership claims (different owners for the same deliverable)

In hybrid mode the ambiguous assumption cases (same subject, no explicit
contradiction) are sent to the provider with their surrounding messages.
Provider findings are merged with the regex ones; findings whose message-id
sets overlap are kept once, and ids unknown to the capsule are dropped.
"""

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Optional, Tuple

from .base import BaseDetector
from .features import split_sentences
from .models import EdgeType, Message, Misalignment, Severity, SilentAssumption, ThreadCapsule
from .prompts import build_misalignment_prompt
from .similarity import content_tokens, token_overlap

if TYPE_CHECKING:
    from ..core.context import AnalysisContext

_MONTHS = r"(?:jan|feb|mar|apr|may|jun|jul|aug|sep|sept|oct|nov|dec)[a-z]*\.?"
_WHEN_RE = re.compile(
    r"\b(monday|tuesday|wednesday|thursday|friday|saturday|sunday|tomorrow|tonight|today|"
    r"next week|this week|next month|end of (?:the )?(?:day|week|month|quarter)|eod|eow|eom|q[1-4]|"
    rf"{_MONTHS} \d{{1,2}}(?:st|nd|rd|th)?|\d{{1,2}}/\d{{1,2}})\b",
    re.IGNORECASE)
_OWNER_RE = re.compile(
    r"\b(i|we|you|he|she|they|[A-Z][a-z]+)\s*(?:will|'ll|is going to|are going to|am going to|is handling|"
    r"am handling|are handling|owns|own)\s+(?P<action>handle|take care of|own|do|send|prepare|write|fix|deliver|"
    r"review|draft|set up|organize|book|update|finish)?\s*(?P<object>[^.!?\n]{3,80})",
    re.IGNORECASE)
_TIME_WORDS = {
    "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday", "tomorrow",
    "tonight", "today", "next", "week", "month", "end", "day", "quarter", "eod", "eow", "eom",
}


def parse_severity(value: str, default: Severity = Severity.MODERATE) -> Severity:
    """Map loose severity labels ("medium", "HIGH", "critical") onto Severity"""
    lowered = (value or "").strip().lower()
    if lowered in ("high", "critical", "severe"):
        return Severity.HIGH
    if lowered in ("moderate", "medium"):
        return Severity.MODERATE
    if lowered in ("low", "minor"):
        return Severity.LOW
    return default


@dataclass
class _Claim:
    message: Message
    sentence: str
    value: str
    subject: List[str] = field(default_factory=list)
    action: str = ""


@dataclass
class MisalignmentReport:
    misalignments: List[Misalignment]
    silent_assumptions: List[SilentAssumption]


class MisalignmentDetector(BaseDetector):
    """Finds divergent expectations and unchallenged assumptions"""

    slot = "misalignments"

    async def detect(self, capsule: ThreadCapsule, context: "AnalysisContext") -> List[Misalignment]:
        report = await self.analyze(capsule, context)
        return report.misalignments

    async def analyze(self, capsule: ThreadCapsule, context: "AnalysisContext") -> MisalignmentReport:
        confident, ambiguous, silent = self._assumption_findings(capsule, context)
        confident.extend(self._timeline_findings(capsule, context))
        confident.extend(self._ownership_findings(capsule, context))

        resolved: List[Misalignment] = []
        if ambiguous and context.strategy.uses_ai:
            ai_findings = await self._ask_provider(capsule, ambiguous, context)
            if ai_findings is None:
                resolved = [finding for finding, _ in ambiguous]
            else:
                resolved = ai_findings
        else:
            resolved = [finding for finding, _ in ambiguous]

        merged = self.merge(capsule, confident + resolved)
        return MisalignmentReport(misalignments=merged, silent_assumptions=silent)

    # ------------------------------------------------------------------
    # Assumptions
    # ------------------------------------------------------------------

    def _assumption_findings(self, capsule: ThreadCapsule, context: "AnalysisContext") -> Tuple[
            List[Misalignment], List[Tuple[Misalignment, List[Message]]], List[SilentAssumption]]:
        patterns = context.patterns
        window = context.detectors.misalignment_window
        confident: List[Misalignment] = []
        ambiguous: List[Tuple[Misalignment, List[Message]]] = []
        silent: List[SilentAssumption] = []
        messages = capsule.messages

        for index, message in enumerate(messages):
            phrases = patterns.find(message.content, "assumption_indicators")
            if not phrases:
                continue
            sentence = self._sentence_with(message.content, phrases[0])
            holder = capsule.participant_name(message.participant_id)

            nearby = [
                m for m in messages[max(0, index - window):index + window + 1]
                if m.participant_id != message.participant_id
            ]
            contradicting: Optional[Message] = None
            related: Optional[Message] = None
            for other in nearby:
                if patterns.contains(other.content, "disagreement_indicators") or \
                        patterns.contains(other.content, "confusion_indicators"):
                    contradicting = other
                    break
                if related is None and token_overlap(sentence, other.content, context.detectors.token_similarity).matched >= 1:
                    related = other

            if contradicting is not None:
                other_name = capsule.participant_name(contradicting.participant_id)
                shared = token_overlap(sentence, contradicting.content).matched >= 1
                confident.append(Misalignment(
                    type="Assumption",
                    severity=Severity.HIGH if shared else Severity.MODERATE,
                    description=f"{holder} acted on an assumption (\"{sentence}\") that {other_name} contradicts",
                    participants_involved=[holder, other_name],
                    message_ids=self.known_ids(capsule, self._in_order(capsule, [message.id, contradicting.id])),
                    suggested_resolution="Restate the expectation explicitly and confirm it with everyone involved",
                ))
            elif related is not None:
                other_name = capsule.participant_name(related.participant_id)
                ids = self._in_order(capsule, [message.id, related.id])
                first = min(capsule.message_ids().index(i) for i in ids)
                last = max(capsule.message_ids().index(i) for i in ids)
                span = context.detectors.ai_context_messages
                excerpt = messages[max(0, first - span):last + span + 1]
                ambiguous.append((Misalignment(
                    type="Understanding",
                    severity=Severity.LOW,
                    description=f"{holder} stated an assumption (\"{sentence}\") that {other_name} may see differently",
                    participants_involved=[holder, other_name],
                    message_ids=self.known_ids(capsule, ids),
                    suggested_resolution="Check whether both sides share the same understanding",
                ), excerpt))
            else:
                silent.append(SilentAssumption(assumption=sentence, held_by=holder, message_id=message.id))

        return confident, ambiguous, silent

    @staticmethod
    def _in_order(capsule: ThreadCapsule, ids: List[str]) -> List[str]:
        positions = capsule.message_ids()
        return sorted(ids, key=positions.index)

    @staticmethod
    def _sentence_with(content: str, phrase: str) -> str:
        for sentence in split_sentences(content):
            if phrase.lower() in sentence.lower():
                return sentence
        return content.strip()

    # ------------------------------------------------------------------
    # Timeline and ownership claims
    # ------------------------------------------------------------------

    def _timeline_findings(self, capsule: ThreadCapsule, context: "AnalysisContext") -> List[Misalignment]:
        claims: List[_Claim] = []
        for message in capsule.messages:
            for sentence in split_sentences(message.content):
                found = _WHEN_RE.findall(sentence)
                if not found:
                    continue
                subject = [t for t in content_tokens(sentence) if t not in _TIME_WORDS and not t.isdigit()]
                if subject:
                    claims.append(_Claim(message, sentence, found[0].lower(), subject))
        return self._divergent(capsule, claims, "Timeline", context,
                               "Agree on a single date for {subject} and confirm it in writing")

    def _ownership_findings(self, capsule: ThreadCapsule, context: "AnalysisContext") -> List[Misalignment]:
        claims: List[_Claim] = []
        for message in capsule.messages:
            for sentence in split_sentences(message.content):
                if sentence.endswith("?"):
                    continue
                for match in _OWNER_RE.finditer(sentence):
                    owner = self._resolve_owner(capsule, message, match.group(1))
                    subject = content_tokens(match.group("object"))
                    if owner and subject:
                        claims.append(_Claim(message, sentence, owner, subject,
                                              (match.group("action") or "").lower()))
                        break
        return self._divergent(capsule, claims, "Ownership", context,
                               "Name one owner for {subject} and confirm the handoff")

    @staticmethod
    def _resolve_owner(capsule: ThreadCapsule, message: Message, word: str) -> Optional[str]:
        lowered = word.lower()
        if lowered in ("i", "we"):
            return message.participant_id
        if lowered == "you":
            for edge in capsule.conversation_graph.edges:
                if edge.source == message.id and edge.type != EdgeType.REFERENCE:
                    target = capsule.get_message(edge.target)
                    if target is not None:
                        return target.participant_id
            return None
        if lowered in ("he", "she", "they"):
            return None
        for participant in capsule.participants:
            if participant.name.split() and participant.name.split()[0].lower() == lowered:
                return participant.id
        return None

    def _divergent(self, capsule: ThreadCapsule, claims: List[_Claim], kind: str,
                   context: "AnalysisContext", resolution: str) -> List[Misalignment]:
        findings: List[Misalignment] = []
        seen_pairs = set()
        for i, first in enumerate(claims):
            for second in claims[i + 1:]:
                if first.message.participant_id == second.message.participant_id:
                    continue
                if first.value == second.value or first.action != second.action:
                    continue
                pair = (first.message.id, second.message.id)
                if pair in seen_pairs:
                    continue
                shared = [t for t in first.subject if t in second.subject]
                if not shared:
                    overlap = token_overlap(" ".join(first.subject), " ".join(second.subject),
                                            context.detectors.token_similarity)
                    if overlap.matched < 1:
                        continue
                    shared = first.subject[:1]
                seen_pairs.add(pair)
                a = capsule.participant_name(first.message.participant_id)
                b = capsule.participant_name(second.message.participant_id)
                value_a = first.value if kind == "Timeline" else capsule.participant_name(first.value)
                value_b = second.value if kind == "Timeline" else capsule.participant_name(second.value)
                tentative = first.sentence.endswith("?") or second.sentence.endswith("?")
                subject = " ".join(shared[:3])
                findings.append(Misalignment(
                    type=kind,
                    severity=Severity.LOW if tentative else Severity.MODERATE,
                    description=f"{a} and {b} disagree on {kind.lower()} for '{subject}': {value_a} vs {value_b}",
                    participants_involved=[a, b],
                    message_ids=self.known_ids(capsule, [first.message.id, second.message.id]),
                    suggested_resolution=resolution.format(subject=subject),
                ))
        return findings

    # ------------------------------------------------------------------
    # Provider review and merge
    # ------------------------------------------------------------------

    async def _ask_provider(self, capsule: ThreadCapsule, ambiguous: List[Tuple[Misalignment, List[Message]]],
                            context: "AnalysisContext") -> Optional[List[Misalignment]]:
        prompt = build_misalignment_prompt(capsule, [excerpt for _, excerpt in ambiguous])
        view = await context.strategy.ask_json(prompt, self.slot, context)
        if view is None:
            return None

        findings: List[Misalignment] = []
        for item in view.get_views("misalignments"):
            description = item.get_str("description").strip()
            ids = self.known_ids(capsule, item.get_str_list("message_ids"))
            if not description or not ids:
                continue
            findings.append(Misalignment(
                type=item.get_str("type", "Understanding") or "Understanding",
                severity=parse_severity(item.get_str("severity")),
                description=description,
                participants_involved=item.get_str_list("participants_involved") or item.get_str_list("participants"),
                message_ids=ids,
                suggested_resolution=item.get_str("suggested_resolution") or None,
            ))
        self.logger.debug(f"Provider confirmed {len(findings)} of {len(ambiguous)} ambiguous case(s)")
        return findings

    def merge(self, capsule: ThreadCapsule, findings: List[Misalignment]) -> List[Misalignment]:
        """Drop dangling ids and keep one finding per overlapping message-id set"""
        merged: List[Misalignment] = []
        for finding in findings:
            ids = self.known_ids(capsule, finding.message_ids)
            if not ids:
                continue
            finding = finding.model_copy(update={"message_ids": ids})
            duplicate: Optional[int] = None
            for position, existing in enumerate(merged):
                if set(existing.message_ids) & set(ids):
                    duplicate = position
                    break
            if duplicate is None:
                merged.append(finding)
            elif finding.severity.weight > merged[duplicate].severity.weight:
                merged[duplicate] = finding
        return merged

