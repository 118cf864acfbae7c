"""Tests for reply graph construction, role inference and thread metadata"""

from datetime import datetime, timezone

from threadclear.analysis.capsule_builder import CapsuleBuilder
from threadclear.analysis.models import EdgeType, Participant, ParticipantRole, SourceType
from threadclear.analysis.parser import ConversationParser

REFERENCE = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)

EMAIL_REPLY = """From: Alice Smith <alice@example.com>
To: bob@example.com
Subject: RE: Re: Budget review
Date: Tue, 12 Mar 2024 10:00:00 +0000
Message-ID: <a1@example.com>

Could you review the budget?

From: Bob Jones <bob@example.com>
To: alice@example.com
Date: Tue, 12 Mar 2024 12:00:00 +0000
In-Reply-To: <a1@example.com>

Reviewed, looks fine.
"""


class TestReplyGraph:
    """Explicit, inferred and mention edges"""

    def test_inferred_edges_point_to_previous_other_sender(self, build_capsule):
        capsule = build_capsule(
            "Alice: Can you send the proposal?\n"
            "Alice: It is for the client meeting.\n"
            "Bob: Working on it."
        )
        edges = capsule.conversation_graph.edges
        assert capsule.conversation_graph.nodes == ["msg1", "msg2", "msg3"]
        assert len(edges) == 1
        assert edges[0].source == "msg3" and edges[0].target == "msg2"
        assert edges[0].inferred and edges[0].type == EdgeType.RESPONSE

    def test_explicit_reply_header(self, build_capsule):
        capsule = build_capsule(EMAIL_REPLY, SourceType.EMAIL)
        edge = capsule.conversation_graph.edges[0]
        assert (edge.source, edge.target) == ("msg2", "msg1")
        assert edge.type == EdgeType.RESPONSE
        assert not edge.inferred

    def test_quote_reply_becomes_quote_edge(self, build_capsule):
        capsule = build_capsule(
            "Alice: The budget is 5000 dollars for the launch.\n"
            "Bob: Sounds fine to me.\n"
            "Carol: That seems low.\n"
            "> The budget is 5000 dollars for the launch."
        )
        quote_edges = [e for e in capsule.conversation_graph.edges if e.type == EdgeType.QUOTE]
        assert len(quote_edges) == 1
        assert (quote_edges[0].source, quote_edges[0].target) == ("msg3", "msg1")

    def test_mentions_add_reference_edges(self, build_capsule):
        capsule = build_capsule(
            "Alice: Can you send the proposal?\n"
            "Bob: Working on it.\n"
            "Carol: @Alice the draft is in the shared folder."
        )
        references = [e for e in capsule.conversation_graph.edges if e.type == EdgeType.REFERENCE]
        assert len(references) == 1
        assert (references[0].source, references[0].target) == ("msg3", "msg1")
        assert references[0].inferred

    def test_reply_window_limits_inferred_edges(self, patterns):
        parser = ConversationParser(patterns)
        participants, messages = parser.parse(
            "[2024-03-10 09:00] Alice: Any news on the contract?\n"
            "[2024-03-12 09:00] Bob: Contract signed.",
            SourceType.CHAT, REFERENCE,
        )
        capsule = CapsuleBuilder(patterns, reply_window_hours=24).build(participants, messages)
        assert capsule.conversation_graph.edges == []

    def test_dangling_reply_markers_are_cleared(self, patterns, build_capsule):
        capsule = build_capsule("Alice: first\nBob: second")
        messages = [m.model_copy(update={"response_to": "msg99"}) if m.id == "msg2" else m
                    for m in capsule.messages]
        rebuilt = CapsuleBuilder(patterns).build(capsule.participants, messages)
        assert rebuilt.get_message("msg2").response_to is None
        assert all(e.target in rebuilt.message_ids() for e in rebuilt.conversation_graph.edges)


class TestRoleInference:
    """Keyword and mailbox scoring"""

    def test_support_mailbox(self, patterns):
        builder = CapsuleBuilder(patterns)
        participant = Participant(id="p1", name="Acme Help", email="support@acme.com")
        assert builder.infer_role(participant, []) == ParticipantRole.SUPPORT

    def test_manager_language(self, build_capsule):
        capsule = build_capsule(
            "Dana: I'll assign this to my team today.\n"
            "Eli: Great, thanks."
        )
        assert capsule.get_participant("p1").inferred_role == ParticipantRole.MANAGER
        assert capsule.get_participant("p2").inferred_role == ParticipantRole.UNKNOWN


class TestMetadata:
    """Thread metadata, summary and key points"""

    def test_timing_and_activity(self, build_capsule):
        capsule = build_capsule(
            "[2024-03-12 10:00] Alice: Is the report ready?\n"
            "[2024-03-12 10:30] Bob: Almost, give me an hour.\n"
            "[2024-03-12 11:30] Alice: Thanks, I see it now."
        )
        meta = capsule.thread_metadata
        assert meta.message_count == 3
        assert meta.participant_count == 2
        assert meta.thread_initiator == "p1"
        assert meta.participant_activity == {"p1": 2, "p2": 1}
        assert meta.average_response_time_hours == 0.75
        assert meta.median_response_time_hours == 0.75
        assert meta.start_date == datetime(2024, 3, 12, 10, 0, tzinfo=timezone.utc)
        assert meta.end_date == datetime(2024, 3, 12, 11, 30, tzinfo=timezone.utc)

        assert capsule.summary.startswith("Conversation between 2 participant(s) with 3 message(s).")
        assert "Contains 1 question(s)." in capsule.summary
        assert "Most active: Alice (2 messages)" in capsule.key_points
        assert any(point.startswith("Conversation lasted") for point in capsule.key_points)

    def test_subject_prefixes_are_stripped(self, build_capsule):
        capsule = build_capsule(EMAIL_REPLY, SourceType.EMAIL)
        assert capsule.thread_metadata.subject == "Budget review"
        assert capsule.thread_metadata.platform == "Email"
