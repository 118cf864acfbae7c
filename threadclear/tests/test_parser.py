"""Tests for regex and hybrid conversation parsing"""

from datetime import datetime, timedelta, timezone

import pytest

from threadclear.analysis.models import UNKNOWN_PARTICIPANT_ID, SourceType
from threadclear.analysis.parser import ConversationParser, ParseReport, parse_timestamp
from threadclear.core.errors import ParseAmbiguousError

REFERENCE = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)

EMAIL_THREAD = """From: Alice Smith <alice@example.com>
To: bob@example.com
Subject: Proposal
Date: Tue, 12 Mar 2024 10:00:00 +0000
Message-ID: <m1@example.com>

Can you send the proposal by Friday?

From: Bob Jones <bob@example.com>
To: alice@example.com
Subject: Re: Proposal
Date: Tue, 12 Mar 2024 11:00:00 +0000
In-Reply-To: <m1@example.com>

Yes, I will send it Thursday.
"""

UNSTRUCTURED = "hey can you check the numbers\nsure will do\nthanks"


@pytest.fixture
def parser(patterns):
    return ConversationParser(patterns)


class TestChatSegmentation:
    """Speaker-prefixed chat formats"""

    def test_simple_chat(self, parser):
        participants, messages = parser.parse(
            "Alice: Can you send the proposal by Friday?\n"
            "Bob: Sure, I will send it tomorrow.\n"
            "Alice: Thanks!",
            SourceType.CHAT, REFERENCE,
        )
        assert [p.name for p in participants] == ["Alice", "Bob"]
        assert [p.id for p in participants] == ["p1", "p2"]
        assert [m.id for m in messages] == ["msg1", "msg2", "msg3"]
        assert [m.participant_id for m in messages] == ["p1", "p2", "p1"]
        assert messages[0].linguistic_features.contains_question

    def test_missing_timestamps_are_synthesized_in_order(self, parser):
        _, messages = parser.parse("Alice: one\nBob: two\nAlice: three", SourceType.CHAT, REFERENCE)
        assert all(m.timestamp_inferred for m in messages)
        assert messages[0].timestamp == REFERENCE - timedelta(minutes=3)
        assert messages[1].timestamp == messages[0].timestamp + timedelta(minutes=1)
        assert messages[2].timestamp == REFERENCE - timedelta(minutes=1)

    def test_bracketed_timestamps(self, parser):
        _, messages = parser.parse(
            "[2024-03-12 10:32] Alice: Morning\n[2024-03-12 10:40] Bob: Hi Alice",
            SourceType.CHAT, REFERENCE,
        )
        assert messages[0].timestamp == datetime(2024, 3, 12, 10, 32, tzinfo=timezone.utc)
        assert not messages[0].timestamp_inferred
        assert messages[1].timestamp == datetime(2024, 3, 12, 10, 40, tzinfo=timezone.utc)

    def test_whatsapp_export_line(self, parser):
        _, messages = parser.parse("12/03/2024, 10:32 - Alice: Hello", SourceType.CHAT, REFERENCE)
        assert len(messages) == 1
        assert messages[0].content == "Hello"
        assert messages[0].timestamp == datetime(2024, 12, 3, 10, 32, tzinfo=timezone.utc)

    def test_slack_copy_paste_uses_reference_date(self, parser):
        _, messages = parser.parse("Alice [10:32 AM]: Deploy is done", SourceType.CHAT, REFERENCE)
        assert messages[0].timestamp == datetime(2024, 3, 15, 10, 32, tzinfo=timezone.utc)

    def test_label_lines_are_not_speakers(self, parser):
        participants, messages = parser.parse(
            "Alice: Here is the plan\nNote: the deadline moved", SourceType.CHAT, REFERENCE)
        assert len(participants) == 1
        assert len(messages) == 1
        assert "Note: the deadline moved" in messages[0].content

    def test_leading_text_without_speaker(self, parser):
        participants, messages = parser.parse("hello there\nAlice: hi", SourceType.CHAT, REFERENCE)
        assert participants[0].id == UNKNOWN_PARTICIPANT_ID
        assert messages[0].participant_id == UNKNOWN_PARTICIPANT_ID
        assert messages[1].participant_id == "p1"

    def test_quoted_reply_links_to_quoted_message(self, parser):
        _, messages = parser.parse(
            "Alice: The budget is 5000 dollars for the launch.\n"
            "Bob: Sounds fine to me.\n"
            "Carol: That seems low.\n"
            "> The budget is 5000 dollars for the launch.",
            SourceType.CHAT, REFERENCE,
        )
        carol = messages[2]
        assert carol.content == "That seems low."
        assert carol.response_to == "msg1"
        assert carol.metadata["reply_marker"] == "quote"

    def test_empty_input(self, parser):
        result = parser.parse_with_report("  \n\n ", SourceType.CHAT, REFERENCE)
        assert result.participants == [] and result.messages == []
        assert result.report.format == "empty"


class TestEmailSegmentation:
    """Header-block email threads"""

    def test_headers_and_reply_chain(self, parser):
        result = parser.parse_with_report(EMAIL_THREAD, SourceType.EMAIL, REFERENCE)
        participants, messages = result.participants, result.messages

        assert result.report.format == "email"
        assert [p.name for p in participants] == ["Alice Smith", "Bob Jones"]
        assert participants[0].email == "alice@example.com"
        assert messages[0].timestamp == datetime(2024, 3, 12, 10, 0, tzinfo=timezone.utc)
        assert messages[0].content == "Can you send the proposal by Friday?"
        assert messages[0].metadata["subject"] == "Proposal"
        assert messages[1].response_to == "msg1"
        assert messages[1].metadata["reply_marker"] == "in_reply_to"

    def test_detected_without_source_hint(self, parser):
        result = parser.parse_with_report(EMAIL_THREAD, SourceType.UNKNOWN, REFERENCE)
        assert result.report.format == "email"
        assert len(result.messages) == 2


class TestConfidenceAndComplexity:
    """Signals used to decide escalation to the provider"""

    def test_confidence_counts_speaker_lines(self, parser):
        report = parser.parse_with_report(
            "Alice: Here is the plan\nit has two lines", SourceType.CHAT, REFERENCE).report
        assert report.confidence == 0.5

    def test_short_plain_text_is_simple(self, parser):
        assert parser.complexity_score("Alice: hi", SourceType.CHAT) == 0.0

    def test_non_ascii_and_ellipsis_add_complexity(self, parser):
        text = "Zoë: well... " + "x" * 250
        assert parser.complexity_score(text, SourceType.CHAT) == 0.4

    def test_ambiguity_checks(self, parser):
        with pytest.raises(ParseAmbiguousError):
            parser.ensure_unambiguous(ParseReport(confidence=0.2))
        with pytest.raises(ParseAmbiguousError):
            parser.ensure_unambiguous(ParseReport(confidence=1.0), force=True)
        parser.ensure_unambiguous(ParseReport(confidence=0.9, complexity=0.1))


class TestTimestamps:
    """Free-form timestamp parsing"""

    def test_formats(self):
        assert parse_timestamp("2024-03-12T10:00:00Z", REFERENCE) == datetime(2024, 3, 12, 10, tzinfo=timezone.utc)
        assert parse_timestamp("03/12/2024 2:30 PM", REFERENCE) == datetime(2024, 3, 12, 14, 30, tzinfo=timezone.utc)
        assert parse_timestamp("9:05 am", REFERENCE) == datetime(2024, 3, 15, 9, 5, tzinfo=timezone.utc)

    def test_unparseable(self):
        assert parse_timestamp("sometime last week", REFERENCE) is None
        assert parse_timestamp("", REFERENCE) is None


class TestHybridParsing:
    """Provider escalation and fallback"""

    @pytest.mark.asyncio
    async def test_low_confidence_uses_provider_segmentation(self, parser, make_provider, hybrid_context):
        provider = make_provider({"Parse the following": """```json
{"participants": [{"name": "Dana"}, {"name": "Eli", "email": "eli@example.com"}],
 "messages": [
   {"sender": "Dana", "content": "hey can you check the numbers"},
   {"sender": "Eli", "content": "sure will do", "inReplyTo": 1}
 ]}
```"""})
        context = hybrid_context(provider)

        result = await parser.parse_async(UNSTRUCTURED, SourceType.CHAT, context)

        assert result.report.used_ai
        assert [p.name for p in result.participants] == ["Dana", "Eli"]
        assert result.participants[1].email == "eli@example.com"
        assert result.messages[1].response_to == "msg1"
        assert not context.degraded

    @pytest.mark.asyncio
    async def test_malformed_completion_keeps_regex_result(self, parser, make_provider, hybrid_context):
        provider = make_provider({"Parse the following": "Sorry, I can't parse that."})
        context = hybrid_context(provider)

        result = await parser.parse_async(UNSTRUCTURED, SourceType.CHAT, context)

        assert not result.report.used_ai
        assert len(result.messages) == 1
        assert result.messages[0].participant_id == UNKNOWN_PARTICIPANT_ID
        assert context.is_degraded("parsing")

    @pytest.mark.asyncio
    async def test_regex_only_never_escalates(self, parser, regex_context):
        result = await parser.parse_async(UNSTRUCTURED, SourceType.CHAT, regex_context)
        assert len(result.messages) == 1
        assert not regex_context.degraded

    @pytest.mark.asyncio
    async def test_confident_regex_skips_provider(self, parser, make_provider, hybrid_context):
        provider = make_provider({})
        context = hybrid_context(provider)

        result = await parser.parse_async("Alice: hi\nBob: hello", SourceType.CHAT, context)

        assert len(result.messages) == 2
        assert provider.prompts == []

    @pytest.mark.asyncio
    async def test_empty_provider_messages_keep_reply_indexes_aligned(self, parser, make_provider,
                                                                      hybrid_context):
        provider = make_provider({"Parse the following": """{"messages": [
   {"sender": "Alice", "content": ""},
   {"sender": "Alice", "content": "Can you send the deck?"},
   {"sender": "Carol", "content": "Lunch at noon?"},
   {"sender": "Bob", "content": "Yes", "inReplyTo": 2}
 ]}"""})
        context = hybrid_context(provider)

        result = await parser.parse_async(UNSTRUCTURED, SourceType.CHAT, context)

        assert result.report.used_ai
        assert [m.content for m in result.messages] == ["Can you send the deck?", "Lunch at noon?", "Yes"]
        assert result.messages[2].response_to == "msg1"

    @pytest.mark.asyncio
    async def test_non_finite_reply_index_is_ignored(self, parser, make_provider, hybrid_context):
        provider = make_provider({"Parse the following": """{"messages": [
   {"sender": "Dana", "content": "hey can you check the numbers"},
   {"sender": "Eli", "content": "sure will do", "inReplyTo": "inf"},
   {"sender": "Dana", "content": "thanks", "inReplyTo": 1e999}
 ]}"""})
        context = hybrid_context(provider)

        result = await parser.parse_async(UNSTRUCTURED, SourceType.CHAT, context)

        assert result.report.used_ai
        assert len(result.messages) == 3
        assert result.messages[1].metadata.get("reply_marker") != "explicit"
        assert result.messages[2].metadata.get("reply_marker") != "explicit"
        assert not context.degraded

    @pytest.mark.asyncio
    async def test_failure_mapping_completion_keeps_regex_result(self, parser, make_provider, hybrid_context,
                                                               monkeypatch):
        provider = make_provider({"Parse the following": '{"messages": [{"sender": "Dana", "content": "hi"}]}'})
        context = hybrid_context(provider)

        def broken(*args, **kwargs):
            raise OverflowError("cannot convert float infinity to integer")
        monkeypatch.setattr(parser, "_from_ai", broken)

        result = await parser.parse_async(UNSTRUCTURED, SourceType.CHAT, context)

        assert not result.report.used_ai
        assert len(result.messages) == 1
        assert context.is_degraded("parsing")
