"""
Conversation Parser

Turns raw conversation text into participants and messages.

Regex mode segments on speaker prefixes:

    Alice: message                      (simple chat)
    [2024-03-12 10:32] Alice: message   (bracketed timestamp)
    12/03/2024, 10:32 - Alice: message  (WhatsApp-style export)
    Alice [10:32 AM]: message           (Slack copy/paste)
    From: Alice <alice@example.com>     (email header blocks)

Hybrid mode consults the completion provider when the regex segmentation
looks ambiguous (or when AI-first parsing was requested) and falls back to the
regex result whenever the completion is missing or unusable.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from email.utils import parseaddr, parsedate_to_datetime
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple, Union

from ..config.models import ParsingConfig
from ..core.errors import ParseAmbiguousError
from .features import analyze_text
from .models import UNKNOWN_PARTICIPANT_ID, Message, Participant, SourceType, utc_now
from .patterns import PatternLibrary
from .prompts import build_parse_prompt
from .sanitizer import JsonView

if TYPE_CHECKING:
    from ..core.context import AnalysisContext

logger = logging.getLogger(__name__)

_NAME = r"[A-Za-z][\w.'\-]*(?: [A-Za-z][\w.'\-]*){0,3}"
_TIME = r"\d{1,2}:\d{2}(?::\d{2})?\s*(?:[AaPp]\.?[Mm]\.?)?"
_DATE = r"\d{1,4}[-/.]\d{1,2}[-/.]\d{1,4}"

_BRACKET_RE = re.compile(rf"^\[(?P<ts>[^\]]{{1,40}})\]\s*(?P<name>{_NAME})\s*:\s*(?P<body>.*)$")
_DASH_RE = re.compile(rf"^(?P<ts>(?:{_DATE}[,\sT]+)?{_TIME})\s*[-–]\s*(?P<name>{_NAME})\s*:\s*(?P<body>.*)$")
_SLACK_RE = re.compile(rf"^(?P<name>{_NAME})\s+\[(?P<ts>{_TIME})\]\s*:?\s*(?P<body>.*)$")
_SIMPLE_RE = re.compile(rf"^(?P<name>{_NAME})\s*:\s*(?P<body>.*)$")

_EMAIL_FROM_RE = re.compile(r"^\s*From\s*:\s*\S", re.IGNORECASE)
_EMAIL_HEADER_RE = re.compile(
    r"^\s*(?P<key>From|To|Cc|Bcc|Subject|Date|Sent|Message-ID|In-Reply-To|References|Reply-To)\s*:\s*(?P<value>.*)$",
    re.IGNORECASE)
_EMAIL_ADDRESS_RE = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")
_WROTE_RE = re.compile(r"^\s*On .+ wrote:\s*$", re.IGNORECASE)
_SEPARATOR_RE = re.compile(r"^\s*-{2,}\s*(Original Message|Forwarded message)?\s*-*\s*$", re.IGNORECASE)
_WHITESPACE_RE = re.compile(r"\s+")

# Words that look like "Name:" but label content instead of a speaker
_NON_SPEAKER_WORDS = {
    "from", "to", "cc", "bcc", "subject", "date", "sent", "re", "fw", "fwd",
    "http", "https", "ftp", "mailto", "note", "notes", "ps", "p.s", "fyi",
    "update", "edit", "question", "answer", "deadline", "summary", "action",
    "todo", "agenda", "location", "time", "where", "when", "why", "what", "how",
    "example", "options", "step", "warning", "error", "reply-to", "message-id",
    "in-reply-to", "references", "importance", "attachments", "tel", "phone",
    "email", "re-cap", "recap",
}

_DATETIME_FORMATS = (
    "%Y-%m-%d %H:%M:%S", "%Y-%m-%d %H:%M", "%Y-%m-%d %I:%M %p",
    "%m/%d/%Y %H:%M:%S", "%m/%d/%Y %H:%M", "%m/%d/%Y %I:%M %p", "%m/%d/%Y %I:%M:%S %p",
    "%m/%d/%y %H:%M", "%m/%d/%y %I:%M %p", "%d.%m.%Y %H:%M", "%d.%m.%Y %H:%M:%S",
    "%B %d %Y %I:%M %p", "%b %d %Y %I:%M %p", "%A %B %d %Y %I:%M %p", "%a %b %d %Y %I:%M %p",
    "%B %d %Y %H:%M", "%Y-%m-%d", "%m/%d/%Y",
)
_TIME_FORMATS = ("%I:%M %p", "%I:%M:%S %p", "%H:%M", "%H:%M:%S")


@dataclass
class ParseReport:
    """How well regex segmentation covered the input"""
    format: str = "chat"
    boundaries: int = 0
    non_blank_lines: int = 0
    confidence: float = 1.0
    complexity: float = 0.0
    used_ai: bool = False


@dataclass
class ParseResult:
    participants: List[Participant]
    messages: List[Message]
    report: ParseReport


@dataclass
class _RawMessage:
    sender: Optional[str] = None
    email: Optional[str] = None
    timestamp: Optional[datetime] = None
    lines: List[str] = field(default_factory=list)
    quoted: List[str] = field(default_factory=list)
    metadata: Dict[str, str] = field(default_factory=dict)
    reply_index: Optional[int] = None

    @property
    def content(self) -> str:
        return "\n".join(self.lines).strip()


def normalize_name(name: str) -> str:
    return _WHITESPACE_RE.sub(" ", name).strip().casefold()


def _normalize_text(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text).strip().lower()


def parse_timestamp(text: Optional[str], reference: datetime) -> Optional[datetime]:
    """
    Parse a timestamp found in conversation text.

    Tries ISO 8601, common chat export formats, then RFC 2822 (email Date
    headers). Time-only values take the reference date. Naive values are UTC.
    """
    if not text or not text.strip():
        return None
    text = text.strip()

    parsed: Optional[datetime] = None
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        parsed = None

    if parsed is None:
        normalized = _WHITESPACE_RE.sub(" ", text.replace(",", " ")).strip()
        normalized = re.sub(r"(?i)\b([ap])\.?m\.?(?=\s|$)", lambda m: m.group(1).upper() + "M", normalized)
        normalized = re.sub(r"(\d)([AP]M)\b", r"\1 \2", normalized)
        for fmt in _DATETIME_FORMATS:
            try:
                parsed = datetime.strptime(normalized, fmt)
                break
            except ValueError:
                continue
        else:
            for fmt in _TIME_FORMATS:
                try:
                    clock = datetime.strptime(normalized, fmt).time()
                except ValueError:
                    continue
                parsed = datetime.combine(reference.date(), clock)
                break

    if parsed is None:
        # RFC 2822, as found in email Date headers
        try:
            parsed = parsedate_to_datetime(text)
        except (TypeError, ValueError, IndexError):
            parsed = None

    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class _ParticipantRegistry:
    """Assigns p1..pN in order of first appearance; email and name both key a sender"""

    def __init__(self):
        self.participants: List[Participant] = []
        self._by_key: Dict[str, str] = {}
        self._unknown_added = False

    def resolve(self, name: Optional[str], email: Optional[str] = None) -> str:
        name = (name or "").strip()
        email = (email or "").strip() or None
        if not name and not email:
            if not self._unknown_added:
                self.participants.append(Participant.unknown())
                self._unknown_added = True
            return UNKNOWN_PARTICIPANT_ID

        email_key = f"email:{email.lower()}" if email else None
        name_key = f"name:{normalize_name(name)}" if name else None

        for key in (email_key, name_key):
            if key and key in self._by_key:
                participant_id = self._by_key[key]
                if email_key:
                    self._by_key.setdefault(email_key, participant_id)
                return participant_id

        participant_id = f"p{sum(1 for p in self.participants if p.id != UNKNOWN_PARTICIPANT_ID) + 1}"
        self.participants.append(Participant(id=participant_id, name=name or email, email=email))
        for key in (email_key, name_key):
            if key:
                self._by_key[key] = participant_id
        return participant_id


class ConversationParser:
    """
    Regex and hybrid conversation parser.

    The regex path is synchronous and deterministic for a fixed reference
    time; the hybrid path is async because it may call the provider.
    """

    def __init__(self, patterns: Optional[PatternLibrary] = None, config: Optional[ParsingConfig] = None):
        self.patterns = patterns or PatternLibrary()
        self.config = config or ParsingConfig()
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def parse(self, raw_text: str, source_type: Union[SourceType, str] = SourceType.UNKNOWN,
              reference_time: Optional[datetime] = None) -> Tuple[List[Participant], List[Message]]:
        """Regex parse; empty input yields empty lists"""
        result = self.parse_with_report(raw_text, source_type, reference_time)
        return result.participants, result.messages

    def parse_with_report(self, raw_text: str, source_type: Union[SourceType, str] = SourceType.UNKNOWN,
                          reference_time: Optional[datetime] = None) -> ParseResult:
        source = source_type if isinstance(source_type, SourceType) else SourceType.from_label(source_type)
        reference = reference_time or utc_now()
        text = (raw_text or "").replace("\r\n", "\n").replace("\r", "\n")
        lines = text.split("\n")
        non_blank = sum(1 for line in lines if line.strip())

        if non_blank == 0:
            return ParseResult([], [], ParseReport(format="empty", confidence=1.0))

        if self._looks_like_email(lines, source):
            raws, covered = self._segment_email(lines, reference)
            report = ParseReport(format="email", boundaries=sum(1 for r in raws if r.sender or r.email),
                                 non_blank_lines=non_blank)
            report.confidence = round(min(1.0, covered / non_blank), 3)
        else:
            raws, boundaries = self._segment_chat(lines, reference)
            report = ParseReport(format="chat", boundaries=boundaries, non_blank_lines=non_blank)
            report.confidence = round(min(1.0, boundaries / non_blank), 3)

        report.complexity = self.complexity_score(text, source)
        participants, messages = self._finalize(raws, reference)
        self.logger.debug(
            f"Regex parse: format={report.format} participants={len(participants)} "
            f"messages={len(messages)} confidence={report.confidence} complexity={report.complexity}"
        )
        return ParseResult(participants, messages, report)

    async def parse_async(self, raw_text: str, source_type: Union[SourceType, str],
                          context: "AnalysisContext") -> ParseResult:
        """Regex parse, escalating to the provider when the strategy allows it"""
        source = source_type if isinstance(source_type, SourceType) else SourceType.from_label(source_type)
        result = self.parse_with_report(raw_text, source, context.now)
        if result.report.format == "empty":
            return result

        try:
            self.ensure_unambiguous(result.report, force=context.strategy.prefer_ai)
        except ParseAmbiguousError as e:
            if not context.strategy.uses_ai:
                self.logger.info(f"Keeping regex segmentation without a provider: {e}")
                return result
            self.logger.info(f"Escalating parse to provider: {e}")
            try:
                view = await context.strategy.ask_json(
                    build_parse_prompt(raw_text, source.value), "parsing", context)
                if view is None:
                    return result
                ai_result = self._from_ai(view, context.now, result.report)
            except Exception as error:
                context.mark_degraded("parsing", f"{type(error).__name__}: {error}")
                return result
            if ai_result is None:
                context.mark_degraded("parsing", "provider returned no messages, kept regex segmentation")
                return result
            return ai_result
        return result

    def ensure_unambiguous(self, report: ParseReport, force: bool = False) -> None:
        """Raise ParseAmbiguousError when the regex segmentation should not be trusted alone"""
        if force:
            raise ParseAmbiguousError(report.confidence, "AI-first parsing requested")
        if report.confidence < self.config.confidence_threshold:
            raise ParseAmbiguousError(report.confidence, "too few speaker boundaries")
        if report.complexity > self.config.complexity_threshold:
            raise ParseAmbiguousError(report.confidence, f"complexity {report.complexity:.2f}")

    def complexity_score(self, text: str, source: SourceType) -> float:
        """Heuristic complexity of the input format, 0..1"""
        score = 0.0
        has_email_headers = any(_EMAIL_HEADER_RE.match(line) for line in text.split("\n"))
        has_chat_format = any(_SLACK_RE.match(line.strip()) for line in text.split("\n"))

        if source == SourceType.EMAIL and not has_email_headers:
            score += 0.3
        if "..." in text or "[unclear]" in text.lower():
            score += 0.2
        if has_email_headers and has_chat_format:
            score += 0.3
        if any(ord(char) > 127 for char in text):
            score += 0.2
        if len(text) < 200:
            score -= 0.2
        return round(max(0.0, min(1.0, score)), 2)

    # ------------------------------------------------------------------
    # Regex segmentation
    # ------------------------------------------------------------------

    def _looks_like_email(self, lines: List[str], source: SourceType) -> bool:
        if not any(_EMAIL_FROM_RE.match(line) for line in lines):
            return False
        if source == SourceType.EMAIL:
            return True
        header_keys = {
            m.group("key").lower() for m in (_EMAIL_HEADER_RE.match(line) for line in lines) if m
        }
        return bool(header_keys & {"to", "subject", "date", "sent", "cc"})

    def _match_speaker(self, line: str) -> Optional[Tuple[str, Optional[str], str]]:
        for pattern in (_BRACKET_RE, _DASH_RE, _SLACK_RE, _SIMPLE_RE):
            match = pattern.match(line)
            if not match:
                continue
            name = match.group("name").strip()
            if not self._is_speaker_name(name):
                return None
            ts = match.groupdict().get("ts")
            return name, ts, match.group("body")
        return None

    @staticmethod
    def _is_speaker_name(name: str) -> bool:
        words = name.split()
        if not words or len(words) > 4:
            return False
        if name.lower() in _NON_SPEAKER_WORDS or words[0].lower() in ("re", "fw", "fwd"):
            return False
        if len(words) > 1 and not all(word[0].isupper() for word in words):
            return False
        return True

    @staticmethod
    def _add_body_line(raw: _RawMessage, line: str) -> None:
        stripped = line.lstrip()
        if stripped.startswith(">"):
            quoted = stripped.lstrip(">").strip()
            if quoted:
                raw.quoted.append(quoted)
            return
        if _WROTE_RE.match(line) or _SEPARATOR_RE.match(line):
            return
        raw.lines.append(line.rstrip())

    def _segment_chat(self, lines: List[str], reference: datetime) -> Tuple[List[_RawMessage], int]:
        raws: List[_RawMessage] = []
        boundaries = 0
        current: Optional[_RawMessage] = None

        for line in lines:
            stripped = line.strip()
            speaker = self._match_speaker(stripped) if stripped else None
            if speaker:
                name, ts_text, body = speaker
                boundaries += 1
                current = _RawMessage(sender=name, timestamp=parse_timestamp(ts_text, reference))
                raws.append(current)
                self._add_body_line(current, body)
                continue
            if current is None:
                if not stripped:
                    continue
                current = _RawMessage()
                raws.append(current)
            self._add_body_line(current, line)

        return raws, boundaries

    def _segment_email(self, lines: List[str], reference: datetime) -> Tuple[List[_RawMessage], int]:
        raws: List[_RawMessage] = []
        covered = 0
        preamble = _RawMessage()
        current: Optional[_RawMessage] = None
        in_headers = False

        for line in lines:
            if _EMAIL_FROM_RE.match(line):
                current = _RawMessage()
                raws.append(current)
                in_headers = True

            if current is None:
                self._add_body_line(preamble, line)
                continue

            if line.strip():
                covered += 1

            if in_headers:
                header = _EMAIL_HEADER_RE.match(line)
                if header:
                    self._apply_header(current, header.group("key").lower(), header.group("value").strip(), reference)
                    continue
                in_headers = False
                if not line.strip():
                    continue

            self._add_body_line(current, line)

        if preamble.content:
            raws.insert(0, preamble)

        # Reverse-chronological threads are reordered when every block carries a date
        if raws and not preamble.content and all(r.timestamp for r in raws):
            raws = sorted(raws, key=lambda r: r.timestamp)
        return raws, covered

    @staticmethod
    def _apply_header(raw: _RawMessage, key: str, value: str, reference: datetime) -> None:
        if key == "from":
            name, address = parseaddr(value)
            if not address or "@" not in address:
                found = _EMAIL_ADDRESS_RE.search(value)
                address = found.group(0) if found else ""
                name = name or _EMAIL_ADDRESS_RE.sub("", value).strip(" <>\"'")
            raw.sender = (name or address or value).strip().strip("\"'")
            raw.email = address.lower() or None
        elif key in ("date", "sent"):
            raw.timestamp = parse_timestamp(value, reference)
            raw.metadata["date"] = value
        elif key == "subject":
            raw.metadata["subject"] = value
        elif key in ("to", "cc", "bcc"):
            raw.metadata[key] = value
        elif key == "message-id":
            raw.metadata["message_id"] = value.strip("<> ")
        elif key == "in-reply-to":
            raw.metadata["in_reply_to"] = value.strip("<> ")

    # ------------------------------------------------------------------
    # AI segmentation
    # ------------------------------------------------------------------

    def _from_ai(self, view: JsonView, reference: datetime, regex_report: ParseReport) -> Optional[ParseResult]:
        emails: Dict[str, str] = {}
        for participant in view.get_views("participants"):
            name = participant.get_str("name").strip()
            email = participant.get_str("email").strip()
            if name and "@" in email:
                emails[normalize_name(name)] = email.lower()

        raws: List[_RawMessage] = []
        for entry in view.get_list("messages"):
            item = JsonView(entry if isinstance(entry, dict) else {})
            content = item.get_str("content").strip()
            if not content:
                # Placeholder keeps the provider's 1-based reply indexes aligned
                raws.append(_RawMessage())
                continue
            sender = (item.get_str("sender") or item.get_str("participant_identifier")
                      or item.get_str("participant") or item.get_str("from")).strip()
            if sender.lower() in ("", "unknown"):
                sender = ""
            raw = _RawMessage(
                sender=sender or None,
                email=emails.get(normalize_name(sender)) if sender else None,
                timestamp=item.get_datetime("timestamp"),
            )
            for line in content.split("\n"):
                self._add_body_line(raw, line)
            reply_index = item.get_int("in_reply_to", 0)
            raw.reply_index = reply_index if reply_index > 0 else None
            raws.append(raw)

        participants, messages = self._finalize(raws, reference)
        if not messages:
            return None
        report = ParseReport(
            format=regex_report.format,
            boundaries=regex_report.boundaries,
            non_blank_lines=regex_report.non_blank_lines,
            confidence=regex_report.confidence,
            complexity=regex_report.complexity,
            used_ai=True,
        )
        self.logger.info(f"AI parse produced {len(participants)} participants and {len(messages)} messages")
        return ParseResult(participants, messages, report)

    # ------------------------------------------------------------------
    # Assembly
    # ------------------------------------------------------------------

    def _finalize(self, raws: List[_RawMessage], reference: datetime) -> Tuple[List[Participant], List[Message]]:
        index_map: Dict[int, int] = {}
        kept: List[_RawMessage] = []
        for original_index, raw in enumerate(raws, start=1):
            if raw.content:
                index_map[original_index] = len(kept) + 1
                kept.append(raw)

        registry = _ParticipantRegistry()
        total = len(kept)
        previous: Optional[datetime] = None
        messages: List[Message] = []

        for position, raw in enumerate(kept, start=1):
            participant_id = registry.resolve(raw.sender, raw.email)
            timestamp = raw.timestamp
            inferred = timestamp is None
            if timestamp is None:
                if previous is not None:
                    timestamp = previous + timedelta(minutes=1)
                else:
                    timestamp = reference - timedelta(minutes=total - position + 1)
            previous = timestamp

            content = raw.content
            features, sentiment = analyze_text(content, self.patterns)
            messages.append(Message(
                id=f"msg{position}",
                participant_id=participant_id,
                timestamp=timestamp,
                timestamp_inferred=inferred,
                content=content,
                linguistic_features=features,
                sentiment=sentiment,
                metadata=dict(raw.metadata),
            ))

        self._resolve_replies(messages, kept, index_map)
        return registry.participants, messages

    @staticmethod
    def _resolve_replies(messages: List[Message], raws: List[_RawMessage], index_map: Dict[int, int]) -> None:
        by_header_id = {
            m.metadata["message_id"]: m.id for m in messages if m.metadata.get("message_id")
        }
        for position, (message, raw) in enumerate(zip(messages, raws)):
            earlier = messages[:position]
            if not earlier:
                continue

            in_reply_to = message.metadata.get("in_reply_to")
            if in_reply_to and in_reply_to in by_header_id and by_header_id[in_reply_to] != message.id:
                message.response_to = by_header_id[in_reply_to]
                message.metadata["reply_marker"] = "in_reply_to"
                continue

            if raw.reply_index and raw.reply_index in index_map:
                target = f"msg{index_map[raw.reply_index]}"
                if any(m.id == target for m in earlier):
                    message.response_to = target
                    message.metadata["reply_marker"] = "explicit"
                    continue

            if raw.quoted:
                quoted = _normalize_text(" ".join(raw.quoted))
                snippet = quoted[:60]
                target_id = None
                for candidate in reversed(earlier):
                    body = _normalize_text(candidate.content)
                    if snippet and (snippet in body or body[:60] in quoted):
                        target_id = candidate.id
                        break
                if target_id is None:
                    for candidate in reversed(earlier):
                        if candidate.participant_id != message.participant_id:
                            target_id = candidate.id
                            break
                if target_id:
                    message.response_to = target_id
                    message.metadata["reply_marker"] = "quote"
