"""Shared fixtures: a scripted completion provider and capsule builders"""

from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Union

import pytest

from threadclear.analysis.capsule_builder import CapsuleBuilder
from threadclear.analysis.models import SourceType, ThreadCapsule
from threadclear.analysis.parser import ConversationParser
from threadclear.analysis.patterns import PatternLibrary
from threadclear.analysis.strategy import HybridStrategy, RegexOnlyStrategy
from threadclear.config.models import CoreConfig
from threadclear.core.context import AnalysisContext
from threadclear.core.engine import ConversationAnalysisEngine
from threadclear.core.errors import ProviderUnavailableError
from threadclear.providers.llm.base import CompletionProvider

REFERENCE_TIME = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)

# Prompt openings used to route scripted answers
PARSE = "Parse the following"
MISALIGNMENT = "may reveal a misalignment"
SUGGESTIONS = "actionable next steps"
DRAFT = "Review a draft reply"

Scripted = Union[str, Exception]


class FakeCompletionProvider(CompletionProvider):
    """Answers each prompt with the scripted reply whose marker it contains"""

    def __init__(self, routes: Optional[Dict[str, Scripted]] = None, image_text: Scripted = "",
                 available: bool = True):
        super().__init__({"default_model": "fake-model"})
        self.routes = dict(routes or {})
        self.image_text = image_text
        self.available = available
        self.prompts: List[str] = []

    def get_provider_name(self) -> str:
        return "fake"

    async def is_available(self) -> bool:
        return self.available

    async def complete(self, prompt: str, system: Optional[str] = None, **kwargs) -> str:
        return self._answer(prompt)

    async def complete_structured(self, prompt: str, **kwargs) -> str:
        return self._answer(prompt)

    async def transcribe_image_to_text(self, image_bytes: bytes, mime_type: str = "image/png") -> str:
        if isinstance(self.image_text, Exception):
            raise self.image_text
        return self.image_text

    def _answer(self, prompt: str) -> str:
        self.prompts.append(prompt)
        for marker, reply in self.routes.items():
            if marker in prompt:
                if isinstance(reply, Exception):
                    raise reply
                return reply
        raise ProviderUnavailableError("No scripted reply", provider="fake")

    def prompts_with(self, marker: str) -> List[str]:
        return [p for p in self.prompts if marker in p]


@pytest.fixture
def reference_time() -> datetime:
    return REFERENCE_TIME


@pytest.fixture
def patterns() -> PatternLibrary:
    return PatternLibrary()


@pytest.fixture
def regex_context(patterns) -> AnalysisContext:
    return AnalysisContext(strategy=RegexOnlyStrategy(), now=REFERENCE_TIME, patterns=patterns)


@pytest.fixture
def hybrid_context(patterns) -> Callable[[FakeCompletionProvider], AnalysisContext]:
    def _make(provider: FakeCompletionProvider) -> AnalysisContext:
        return AnalysisContext(strategy=HybridStrategy(provider), now=REFERENCE_TIME, patterns=patterns)
    return _make


@pytest.fixture
def build_capsule(patterns) -> Callable[..., ThreadCapsule]:
    """Regex-parse text and build its capsule against the fixed reference time"""
    parser = ConversationParser(patterns)
    builder = CapsuleBuilder(patterns)

    def _build(text: str, source: SourceType = SourceType.CHAT) -> ThreadCapsule:
        participants, messages = parser.parse(text, source, REFERENCE_TIME)
        return builder.build(participants, messages, source)
    return _build


@pytest.fixture
def make_provider() -> Callable[..., FakeCompletionProvider]:
    return FakeCompletionProvider


@pytest.fixture
def engine(patterns) -> ConversationAnalysisEngine:
    return ConversationAnalysisEngine(CoreConfig(), patterns=patterns)
