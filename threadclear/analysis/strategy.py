"""
Analysis strategies

The strategy is chosen once per request from the parsing mode and passed to
every component through the analysis context, so no component re-checks
provider availability on its own:

- RegexOnlyStrategy: never calls the provider
- HybridStrategy: regex first (or AI first when forced), provider output
  validated through the response sanitizer, regex result kept on any failure
"""

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Optional

from ..config.models import ParsingMode
from ..core.errors import MalformedProviderOutputError, ProviderUnavailableError
from ..providers.llm.base import CompletionProvider
from .sanitizer import JsonView, parse_json_response

if TYPE_CHECKING:
    from ..core.context import AnalysisContext

logger = logging.getLogger(__name__)


class AnalysisStrategy(ABC):
    """Decides whether and how components consult the completion provider"""

    name: str = "base"

    @property
    @abstractmethod
    def uses_ai(self) -> bool:
        pass

    @property
    def prefer_ai(self) -> bool:
        """True when the request asked for AI-first parsing"""
        return False

    @abstractmethod
    async def ask_json(self, prompt: str, slot: str, context: "AnalysisContext") -> Optional[JsonView]:
        """
        Ask the provider for structured output.

        Returns:
            Normalized JSON view, or None when no usable completion exists.
            Failures are recorded on the context as degraded events.
        """
        pass


class RegexOnlyStrategy(AnalysisStrategy):
    name = "regex"

    @property
    def uses_ai(self) -> bool:
        return False

    async def ask_json(self, prompt: str, slot: str, context: "AnalysisContext") -> Optional[JsonView]:
        return None


class HybridStrategy(AnalysisStrategy):
    name = "hybrid"

    def __init__(self, provider: CompletionProvider, force_ai: bool = False):
        self.provider = provider
        self.force_ai = force_ai

    @property
    def uses_ai(self) -> bool:
        return True

    @property
    def prefer_ai(self) -> bool:
        return self.force_ai

    async def ask_json(self, prompt: str, slot: str, context: "AnalysisContext") -> Optional[JsonView]:
        try:
            raw = await self.provider.complete_structured(prompt)
            view = parse_json_response(raw)
            if view.is_empty:
                raise MalformedProviderOutputError(f"No usable JSON in {slot} completion")
            return view
        except (ProviderUnavailableError, MalformedProviderOutputError) as e:
            context.mark_degraded(slot, f"{type(e).__name__}: {e}")
            return None


def select_strategy(mode: ParsingMode, provider: Optional[CompletionProvider]) -> AnalysisStrategy:
    """Basic -> regex only; Advanced/Auto -> hybrid when a provider exists"""
    if mode == ParsingMode.BASIC or provider is None:
        if mode != ParsingMode.BASIC:
            logger.info(f"Parsing mode '{mode.value}' requested without a provider, using regex only")
        return RegexOnlyStrategy()
    return HybridStrategy(provider, force_ai=(mode == ParsingMode.ADVANCED))
