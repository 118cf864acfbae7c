"""
ConversationAnalysisEngine - request orchestration

One request flows through:

    Parsed -> GraphBuilt -> Detecting -> Merged -> (DraftEvaluated) -> Done

Long-lived state (configuration, pattern library, provider client) is held on
the engine; everything derived from the conversation lives in a per-request
context and capsule and is dropped when the request returns. Detectors run
concurrently, each under its own timeout; a failing detector marks its slot
degraded and never aborts the others.
"""

import asyncio
import dataclasses
import logging
import time
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Dict, List, Optional, Union

from pydantic import Field

from ..analysis.capsule_builder import CapsuleBuilder
from ..analysis.commitments import CommitmentTracker
from ..analysis.draft_analyzer import DraftAnalyzer
from ..analysis.health_scorer import HealthScorer
from ..analysis.misalignment_detector import MisalignmentDetector
from ..analysis.models import (
    CapsuleModel,
    ConversationAnalysis,
    ConversationHealth,
    DraftAnalysis,
    SourceType,
    ThreadCapsule,
)
from ..analysis.moments import KeyMomentCollector
from ..analysis.parser import ConversationParser
from ..analysis.patterns import PatternLibrary
from ..analysis.strategy import RegexOnlyStrategy, select_strategy
from ..analysis.suggested_actions import SuggestedActionGenerator
from ..analysis.tension_detector import TensionDetector
from ..analysis.unanswered_questions import UnansweredQuestionDetector
from ..config.models import AnalysisOptions, CoreConfig, ParsingMode
from ..providers.llm import create_completion_provider
from ..providers.llm.base import CompletionProvider
from .context import AnalysisContext
from .errors import InvalidRequestError

logger = logging.getLogger(__name__)


class AnalysisStage(str, Enum):
    PARSED = "Parsed"
    GRAPH_BUILT = "GraphBuilt"
    DETECTING = "Detecting"
    MERGED = "Merged"
    DRAFT_EVALUATED = "DraftEvaluated"
    DONE = "Done"


class AnalysisResult(CapsuleModel):
    """Final result of one request: the capsule plus the optional draft review"""
    request_id: str
    capsule: ThreadCapsule
    draft_analysis: Optional[DraftAnalysis] = None
    stages: List[AnalysisStage] = Field(default_factory=list)
    elapsed_ms: float = 0.0


class ConversationAnalysisEngine:
    """
    Conversation analysis engine.

    Features:
    - Regex-first parsing with optional provider escalation
    - Concurrent detectors with per-detector timeouts
    - Per-request feature toggles with explicit empty slots
    - Degraded-slot reporting instead of request failure
    """

    def __init__(self, config: Optional[CoreConfig] = None, provider: Optional[CompletionProvider] = None,
                 patterns: Optional[PatternLibrary] = None):
        self.config = config or CoreConfig()
        self.provider = provider
        self.patterns = patterns or PatternLibrary.from_file(self.config.parsing.patterns_file)

        self.parser = ConversationParser(self.patterns, self.config.parsing)
        self.builder = CapsuleBuilder(self.patterns, self.config.detectors.reply_window_hours)
        self.unanswered_detector = UnansweredQuestionDetector()
        self.tension_detector = TensionDetector()
        self.misalignment_detector = MisalignmentDetector()
        self.commitment_tracker = CommitmentTracker()
        self.health_scorer = HealthScorer(self.config.health)
        self.moment_collector = KeyMomentCollector()
        self.action_generator = SuggestedActionGenerator()
        self.draft_analyzer = DraftAnalyzer()

    @property
    def has_provider(self) -> bool:
        return self.provider is not None

    async def close(self) -> None:
        """Release the provider client"""
        if self.provider is not None:
            await self.provider.cleanup()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def analyze(self, text: str,
                      source_type: Union[SourceType, str, None] = SourceType.UNKNOWN,
                      parsing_mode: Union[ParsingMode, str, None] = None,
                      options: Optional[AnalysisOptions] = None,
                      draft: Optional[str] = None,
                      reference_time: Optional[datetime] = None,
                      draft_author: Optional[str] = None) -> AnalysisResult:
        """
        Analyze one conversation.

        Args:
            text: Raw conversation text
            source_type: Email, Chat, ... or a loose label such as "slack"
            parsing_mode: basic, advanced or auto; defaults to configuration
            options: Detector toggles; defaults to configuration
            draft: Optional reply draft to review after the merge
            reference_time: "Now" for age computations; defaults to the current time
            draft_author: Optional name of the draft's author

        Returns:
            AnalysisResult with the capsule and optional draft review

        Raises:
            InvalidRequestError: Empty or oversized conversation text
        """
        if text is None or not text.strip():
            raise InvalidRequestError("Conversation text is empty")
        if len(text) > self.config.parsing.max_input_chars:
            raise InvalidRequestError(
                f"Conversation text exceeds {self.config.parsing.max_input_chars} characters"
            )

        started = time.perf_counter()
        source = source_type if isinstance(source_type, SourceType) else SourceType.from_label(source_type)
        mode = parsing_mode if isinstance(parsing_mode, ParsingMode) else ParsingMode.from_label(
            parsing_mode, self.config.parsing.default_mode)
        context = self._create_context(mode, options, reference_time)
        stages: List[AnalysisStage] = []
        logger.info(f"[{context.request_id}] Analyzing {source.value} conversation "
                    f"({len(text)} chars, mode={mode.value}, strategy={context.strategy.name})")

        parsed = await self.parser.parse_async(text, source, context)
        stages.append(AnalysisStage.PARSED)

        capsule = self.builder.build(parsed.participants, parsed.messages, source, mode.value.title())
        stages.append(AnalysisStage.GRAPH_BUILT)

        stages.append(AnalysisStage.DETECTING)
        await self._run_detectors(capsule, context)
        await self._merge(capsule, context)
        stages.append(AnalysisStage.MERGED)

        draft_analysis: Optional[DraftAnalysis] = None
        if draft is not None:
            draft_analysis = await self._guarded(
                "draft_analysis",
                self.draft_analyzer.analyze_draft(capsule, draft, context, author=draft_author),
                context,
            )
            if draft_analysis is None:
                draft_analysis = DraftAnalysis(overall_assessment="Draft review failed")
            stages.append(AnalysisStage.DRAFT_EVALUATED)

        capsule.analysis.degraded = list(context.degraded)
        stages.append(AnalysisStage.DONE)
        elapsed = round((time.perf_counter() - started) * 1000, 2)
        logger.info(
            f"[{context.request_id}] Done in {elapsed}ms: {len(capsule.messages)} messages, "
            f"{len(capsule.participants)} participants, degraded={context.degraded or 'none'}"
        )
        return AnalysisResult(
            request_id=context.request_id,
            capsule=capsule,
            draft_analysis=draft_analysis,
            stages=stages,
            elapsed_ms=elapsed,
        )

    async def analyze_image(self, image_bytes: bytes, mime_type: str = "image/png",
                            parsing_mode: Union[ParsingMode, str, None] = None,
                            options: Optional[AnalysisOptions] = None,
                            draft: Optional[str] = None,
                            reference_time: Optional[datetime] = None) -> AnalysisResult:
        """
        Transcribe a conversation screenshot with the provider, then analyze it.

        Raises:
            InvalidRequestError: No image data, no provider, or nothing readable in the image
            ProviderUnavailableError: Transcription failed
        """
        if not image_bytes:
            raise InvalidRequestError("Image data is empty")
        if self.provider is None:
            raise InvalidRequestError("Image analysis requires an AI provider")

        text = await self.provider.transcribe_image_to_text(image_bytes, mime_type)
        if not text or not text.strip():
            raise InvalidRequestError("No conversation text could be read from the image")
        logger.info(f"Transcribed {len(image_bytes)} image bytes into {len(text)} chars")
        return await self.analyze(text, SourceType.IMAGE, parsing_mode, options, draft, reference_time)

    async def analyze_draft(self, capsule: ThreadCapsule, draft_text: str,
                            parsing_mode: Union[ParsingMode, str, None] = None) -> DraftAnalysis:
        """Review a draft against an already analyzed capsule"""
        mode = parsing_mode if isinstance(parsing_mode, ParsingMode) else ParsingMode.from_label(
            parsing_mode, self.config.parsing.default_mode)
        context = self._create_context(mode, None, None)
        return await self.draft_analyzer.analyze_draft(capsule, draft_text, context)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _create_context(self, mode: ParsingMode, options: Optional[AnalysisOptions],
                        reference_time: Optional[datetime]) -> AnalysisContext:
        now = reference_time or datetime.now(timezone.utc)
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return AnalysisContext(
            strategy=select_strategy(mode, self.provider),
            now=now,
            options=options or self.config.analysis,
            patterns=self.patterns,
            parsing=self.config.parsing,
            detectors=self.config.detectors,
            health=self.config.health,
            request_id=uuid.uuid4().hex[:12],
        )

    async def _guarded(self, slot: str, call: Awaitable[Any], context: AnalysisContext) -> Optional[Any]:
        """Await a component under the detector timeout; failures mark the slot degraded"""
        try:
            return await asyncio.wait_for(call, timeout=self.config.detectors.timeout_seconds)
        except asyncio.TimeoutError:
            context.mark_degraded(slot, f"timed out after {self.config.detectors.timeout_seconds}s")
        except Exception as e:
            logger.debug(f"[{context.request_id}] {slot} failed", exc_info=True)
            context.mark_degraded(slot, f"{type(e).__name__}: {e}")
        return None

    async def _run_detectors(self, capsule: ThreadCapsule, context: AnalysisContext) -> None:
        """Run the enabled detectors concurrently and fill their slots"""
        enabled = context.options.enabled_detectors()
        analysis = ConversationAnalysis()

        async def commitments():
            return self.commitment_tracker.analyze(capsule, context)

        jobs: Dict[str, Awaitable[Any]] = {}
        if enabled["unanswered_questions"]:
            jobs["unanswered_questions"] = self.unanswered_detector.run(capsule, context)
        if enabled["tension_points"]:
            jobs["tension_points"] = self.tension_detector.run(capsule, context)
        if enabled["misalignments"]:
            jobs["misalignments"] = self.misalignment_detector.analyze(capsule, context)
        if enabled["decisions"]:
            jobs["decisions"] = commitments()

        slots = list(jobs.keys())
        outcomes = await asyncio.gather(*(self._guarded(slot, jobs[slot], context) for slot in slots))
        results = dict(zip(slots, outcomes))
        logger.debug(f"[{context.request_id}] Detector timings: {context.detector_stats}")

        # Disabled or failed detectors leave explicitly empty slots
        analysis.unanswered_questions = results.get("unanswered_questions") or []
        analysis.tension_points = results.get("tension_points") or []

        report = results.get("misalignments")
        analysis.misalignments = report.misalignments if report else []
        analysis.silent_assumptions = report.silent_assumptions if report else []

        commitment_report = results.get("decisions")
        analysis.decisions = commitment_report.decisions if commitment_report else []
        analysis.action_items = commitment_report.action_items if commitment_report else []

        analysis.key_moments = []
        analysis.conversation_health = ConversationHealth.not_computed()
        capsule.analysis = analysis

    async def _merge(self, capsule: ThreadCapsule, context: AnalysisContext) -> None:
        """Post-detector stage: health, key moments, suggested actions and the reference check"""
        enabled = context.options.enabled_detectors()
        analysis = capsule.analysis
        self._drop_dangling_references(capsule, context)

        if enabled["conversation_health"]:
            health = await self._guarded("conversation_health", self._score_health(capsule, context), context)
            if health is not None:
                analysis.conversation_health = health

        if enabled["key_moments"]:
            try:
                analysis.key_moments = self.moment_collector.collect(capsule, analysis)
            except Exception as e:
                context.mark_degraded("key_moments", f"{type(e).__name__}: {e}")
                analysis.key_moments = []

        if enabled["suggested_actions"]:
            actions = await self._guarded(
                "suggested_actions", self.action_generator.generate(capsule, analysis, context), context)
            capsule.suggested_actions = actions or []
        else:
            capsule.suggested_actions = []

    async def _score_health(self, capsule: ThreadCapsule, context: AnalysisContext) -> ConversationHealth:
        """Score health, computing any disabled or failed input with the regex detectors"""
        enabled = context.options.enabled_detectors()
        analysis = capsule.analysis
        regex_context = dataclasses.replace(context, strategy=RegexOnlyStrategy(), degraded=[])

        def usable(slot: str) -> bool:
            return enabled[slot] and not context.is_degraded(slot)

        unanswered = analysis.unanswered_questions if usable("unanswered_questions") else \
            await self.unanswered_detector.detect(capsule, regex_context)
        tension = analysis.tension_points if usable("tension_points") else \
            await self.tension_detector.detect(capsule, regex_context)
        misalignments = analysis.misalignments if usable("misalignments") else \
            await self.misalignment_detector.detect(capsule, regex_context)

        return self.health_scorer.score(capsule, unanswered or [], tension or [], misalignments or [])

    @staticmethod
    def _drop_dangling_references(capsule: ThreadCapsule, context: AnalysisContext) -> None:
        """Every message id a finding cites must exist in the capsule"""
        analysis = capsule.analysis
        valid = set(capsule.message_ids())
        dangling = [i for i in analysis.referenced_message_ids() if i not in valid]
        if not dangling:
            return

        logger.warning(f"[{context.request_id}] Dropping findings citing {len(dangling)} unknown message id(s)")
        for slot in ("unanswered_questions", "silent_assumptions", "key_moments", "decisions", "action_items"):
            items = getattr(analysis, slot) or []
            setattr(analysis, slot, [item for item in items if item.message_id in valid])
        for slot in ("tension_points", "misalignments"):
            kept = []
            for item in getattr(analysis, slot) or []:
                ids = [i for i in item.message_ids if i in valid]
                if ids:
                    kept.append(item.model_copy(update={"message_ids": ids}))
            setattr(analysis, slot, kept)


async def create_engine(config: CoreConfig) -> ConversationAnalysisEngine:
    """
    Build an engine from configuration: pattern library, provider (wrapped in
    the timeout/retry guard) and detector tuning.
    """
    provider = create_completion_provider(config.ai)
    if provider is not None:
        await provider.initialize()
        if not await provider.is_available():
            logger.warning(f"Provider '{provider.get_provider_name()}' is not available, using regex only")
            provider = None
    patterns = PatternLibrary.from_file(config.parsing.patterns_file)
    return ConversationAnalysisEngine(config, provider=provider, patterns=patterns)
