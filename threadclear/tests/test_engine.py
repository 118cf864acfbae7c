"""Tests for request orchestration in the analysis engine"""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from threadclear.analysis.models import RiskLevel, Severity, SourceType, UnansweredQuestion
from threadclear.config.models import AnalysisOptions, CoreConfig, DetectorConfig
from threadclear.core.engine import AnalysisStage, ConversationAnalysisEngine, create_engine
from threadclear.core.errors import InvalidRequestError, ProviderUnavailableError

THREAD = (
    "[2024-03-13 12:00] Alice: Can you send the proposal by Friday?\n"
    "[2024-03-13 12:30] Bob: This is unacceptable and terrible, I am frustrated. Fix this ASAP, it is urgent!"
)

UNSTRUCTURED = "hey can you check the numbers\nsure will do\nthanks"


def all_ids_valid(capsule) -> bool:
    valid = set(capsule.message_ids())
    return all(message_id in valid for message_id in capsule.analysis.referenced_message_ids())


class TestAnalyze:
    """Full regex pipeline"""

    @pytest.mark.asyncio
    async def test_pipeline(self, engine, reference_time):
        result = await engine.analyze(THREAD, source_type="chat", reference_time=reference_time)
        capsule = result.capsule
        analysis = capsule.analysis

        assert result.stages == [
            AnalysisStage.PARSED, AnalysisStage.GRAPH_BUILT, AnalysisStage.DETECTING,
            AnalysisStage.MERGED, AnalysisStage.DONE,
        ]
        assert capsule.source_type == SourceType.CHAT
        assert capsule.parsing_mode == "Auto"
        assert len(capsule.messages) == 2

        assert len(analysis.unanswered_questions) == 1
        assert analysis.unanswered_questions[0].days_unanswered >= 2
        assert analysis.tension_points[0].severity == Severity.HIGH
        assert analysis.conversation_health.risk_level != RiskLevel.UNKNOWN
        assert analysis.conversation_health.responsiveness_score < 1.0
        assert analysis.action_items[0].assigned_to == "Bob"
        assert [m.type for m in analysis.key_moments][:1] == ["ThreadStart"]
        assert capsule.suggested_actions
        assert analysis.degraded == []
        assert all_ids_valid(capsule)

    @pytest.mark.asyncio
    async def test_wire_format_is_camel_case(self, engine, reference_time):
        result = await engine.analyze(THREAD, reference_time=reference_time)
        wire = result.to_wire()

        assert "requestId" in wire
        assert "threadMetadata" in wire["capsule"]
        assert "participantId" in wire["capsule"]["messages"][0]
        assert "unansweredQuestions" in wire["capsule"]["analysis"]
        assert wire["stages"][-1] == "Done"

    @pytest.mark.asyncio
    async def test_deterministic_for_fixed_reference_time(self, engine, reference_time):
        first = await engine.analyze(THREAD, reference_time=reference_time)
        second = await engine.analyze(THREAD, reference_time=reference_time)
        assert first.capsule.analysis == second.capsule.analysis
        assert first.capsule.suggested_actions == second.capsule.suggested_actions

    @pytest.mark.asyncio
    async def test_invalid_requests(self, engine):
        with pytest.raises(InvalidRequestError):
            await engine.analyze("   ")
        small = ConversationAnalysisEngine(CoreConfig(parsing={"max_input_chars": 10}))
        with pytest.raises(InvalidRequestError):
            await small.analyze("Alice: this is longer than ten characters")


class TestToggles:
    """Disabled detectors leave explicitly empty slots"""

    @pytest.mark.asyncio
    async def test_disabled_slots(self, engine, reference_time):
        options = AnalysisOptions(
            enable_unanswered_questions=False,
            enable_conversation_health=False,
            enable_suggested_actions=False,
            enable_key_moments=False,
        )

        result = await engine.analyze(THREAD, options=options, reference_time=reference_time)
        analysis = result.capsule.analysis

        assert analysis.unanswered_questions == []
        assert analysis.conversation_health.risk_level == RiskLevel.UNKNOWN
        assert analysis.conversation_health.health_score == 0.0
        assert result.capsule.suggested_actions == []
        assert analysis.key_moments == []
        assert analysis.tension_points

    @pytest.mark.asyncio
    async def test_health_still_sees_disabled_inputs(self, engine, reference_time):
        options = AnalysisOptions(enable_unanswered_questions=False)

        result = await engine.analyze(THREAD, options=options, reference_time=reference_time)
        analysis = result.capsule.analysis

        assert analysis.unanswered_questions == []
        assert analysis.conversation_health.responsiveness_score < 1.0


class TestDegradedSlots:
    """A failing detector never aborts the request"""

    @pytest.mark.asyncio
    async def test_detector_exception(self, engine, reference_time, monkeypatch):
        async def broken(capsule, context):
            raise RuntimeError("boom")

        monkeypatch.setattr(engine.tension_detector, "run", broken)

        result = await engine.analyze(THREAD, reference_time=reference_time)
        analysis = result.capsule.analysis

        assert analysis.tension_points == []
        assert "tension_points" in analysis.degraded
        assert len(analysis.unanswered_questions) == 1
        # Health recomputes the failed input with the regex detector
        assert analysis.conversation_health.alignment_score < 1.0

    @pytest.mark.asyncio
    async def test_detector_timeout(self, patterns, reference_time, monkeypatch):
        engine = ConversationAnalysisEngine(CoreConfig(detectors=DetectorConfig(timeout_seconds=0.05)),
                                            patterns=patterns)

        async def slow(capsule, context):
            await asyncio.sleep(1)

        monkeypatch.setattr(engine.misalignment_detector, "analyze", slow)

        result = await engine.analyze(THREAD, reference_time=reference_time)

        assert result.capsule.analysis.misalignments == []
        assert result.capsule.analysis.silent_assumptions == []
        assert "misalignments" in result.capsule.analysis.degraded
        assert result.stages[-1] == AnalysisStage.DONE

    @pytest.mark.asyncio
    async def test_dangling_ids_are_dropped(self, engine, reference_time, monkeypatch):
        async def fabricated(capsule, context):
            return [UnansweredQuestion(question="Ghost?", asked_by="Nobody", asked_at=reference_time,
                                       message_id="msg99")]

        monkeypatch.setattr(engine.unanswered_detector, "run", fabricated)

        result = await engine.analyze(THREAD, reference_time=reference_time)

        assert result.capsule.analysis.unanswered_questions == []
        assert all_ids_valid(result.capsule)


class TestHybrid:
    """Provider-backed requests fall back to regex results"""

    @pytest.mark.asyncio
    async def test_malformed_provider_output(self, patterns, make_provider, reference_time):
        provider = make_provider({
            "Parse the following": "```json\n{not valid\n```",
            "actionable next steps": "no idea",
        })
        engine = ConversationAnalysisEngine(CoreConfig(), provider=provider, patterns=patterns)

        result = await engine.analyze(UNSTRUCTURED, parsing_mode="advanced", reference_time=reference_time)

        assert result.capsule.parsing_mode == "Advanced"
        assert len(result.capsule.messages) == 1
        assert "parsing" in result.capsule.analysis.degraded
        assert "suggested_actions" in result.capsule.analysis.degraded
        assert result.capsule.suggested_actions is not None

    @pytest.mark.asyncio
    async def test_basic_mode_never_calls_provider(self, patterns, make_provider, reference_time):
        provider = make_provider({})
        engine = ConversationAnalysisEngine(CoreConfig(), provider=provider, patterns=patterns)

        result = await engine.analyze(UNSTRUCTURED, parsing_mode="basic", draft="Sure.",
                                      reference_time=reference_time)

        assert provider.prompts == []
        assert result.capsule.analysis.degraded == []
        assert result.draft_analysis.ready_to_send is False

    @pytest.mark.asyncio
    async def test_draft_stage(self, engine, reference_time):
        result = await engine.analyze(THREAD, draft="I'll send it Thursday.", reference_time=reference_time)

        assert AnalysisStage.DRAFT_EVALUATED in result.stages
        assert result.draft_analysis.ready_to_send is False
        assert result.draft_analysis.questions_ignored == ["Can you send the proposal by Friday?"]

    @pytest.mark.asyncio
    async def test_non_finite_reply_index_from_provider(self, patterns, make_provider, reference_time):
        provider = make_provider({"Parse the following": """{"messages": [
   {"sender": "Dana", "content": "hey can you check the numbers?"},
   {"sender": "Eli", "content": "sure will do", "inReplyTo": "inf"}
 ]}"""})
        engine = ConversationAnalysisEngine(CoreConfig(), provider=provider, patterns=patterns)

        result = await engine.analyze(UNSTRUCTURED, parsing_mode="advanced", reference_time=reference_time)

        assert result.stages[-1] == AnalysisStage.DONE
        assert [m.content for m in result.capsule.messages] == ["hey can you check the numbers?", "sure will do"]
        assert "parsing" not in result.capsule.analysis.degraded

    @pytest.mark.asyncio
    async def test_draft_review_with_non_finite_score(self, patterns, make_provider, reference_time):
        provider = make_provider({"Review a draft reply": '{"completenessScore": 1e999, "readyToSend": false}'})
        engine = ConversationAnalysisEngine(CoreConfig(), provider=provider, patterns=patterns)
        capsule = (await engine.analyze(THREAD, parsing_mode="basic", reference_time=reference_time)).capsule

        review = await engine.analyze_draft(capsule, "I'll send it Thursday.", parsing_mode="advanced")

        assert review.completeness_score == 0
        assert review.ready_to_send is False


class TestImages:

    @pytest.mark.asyncio
    async def test_requires_provider(self, engine):
        with pytest.raises(InvalidRequestError):
            await engine.analyze_image(b"\x89PNG")

    @pytest.mark.asyncio
    async def test_empty_image(self, engine):
        with pytest.raises(InvalidRequestError):
            await engine.analyze_image(b"")

    @pytest.mark.asyncio
    async def test_transcribed_screenshot(self, patterns, make_provider, reference_time):
        provider = make_provider({}, image_text="Alice: Is the build green?\nBob: Yes, all green.")
        engine = ConversationAnalysisEngine(CoreConfig(), provider=provider, patterns=patterns)

        result = await engine.analyze_image(b"\x89PNG", parsing_mode="basic", reference_time=reference_time)

        assert result.capsule.source_type == SourceType.IMAGE
        assert len(result.capsule.messages) == 2
        assert result.capsule.analysis.unanswered_questions == []

    @pytest.mark.asyncio
    async def test_transcription_failure_propagates(self, patterns, make_provider):
        provider = make_provider({}, image_text=ProviderUnavailableError("vision down", provider="fake"))
        engine = ConversationAnalysisEngine(CoreConfig(), provider=provider, patterns=patterns)
        with pytest.raises(ProviderUnavailableError):
            await engine.analyze_image(b"\x89PNG")


class TestCreateEngine:

    @pytest.mark.asyncio
    async def test_without_provider_configuration(self):
        engine = await create_engine(CoreConfig())
        assert engine.provider is None
        assert not engine.has_provider
        await engine.close()

    @pytest.mark.asyncio
    async def test_close_releases_provider(self, patterns, make_provider):
        provider = make_provider({})
        engine = ConversationAnalysisEngine(CoreConfig(), provider=provider, patterns=patterns)
        with patch.object(provider, "cleanup", new_callable=AsyncMock) as cleanup:
            await engine.close()
        cleanup.assert_awaited_once()
