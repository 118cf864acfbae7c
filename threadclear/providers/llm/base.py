"""
Completion Provider Base Class

Abstract capability used by the hybrid parser, the misalignment detector,
suggested actions and the draft analyzer. Implementations raise
ProviderUnavailableError on any transport or API failure; they never return
placeholder text.
"""

from abc import abstractmethod
from typing import Any, Dict, Optional

from ..base import ProviderBase

STRUCTURED_SYSTEM_PROMPT = (
    "You are a conversation analysis assistant. "
    "Respond with a single valid JSON value and nothing else."
)

DEFAULT_SYSTEM_PROMPT = "You are a careful conversation analysis assistant."

OCR_PROMPT = (
    "Transcribe every message visible in this screenshot as plain text, one "
    "message per line in the form 'Name: message'. Keep timestamps that are "
    "visible. Do not summarize or add commentary."
)


class CompletionProvider(ProviderBase):
    """
    Abstract base class for AI completion providers.
    """

    def __init__(self, config: Dict[str, Any]):
        """Initialize with provider-specific configuration

        Args:
            config: Provider-specific configuration dictionary
        """
        super().__init__(config)
        self.default_model: str = config.get("default_model", "")
        self.max_tokens: int = int(config.get("max_tokens", 4000))
        self.temperature: float = float(config.get("temperature", 0.2))

    @abstractmethod
    async def complete(self, prompt: str, system: Optional[str] = None, **kwargs) -> str:
        """Free-text completion

        Args:
            prompt: User prompt
            system: Optional system prompt

        Returns:
            Completion text

        Raises:
            ProviderUnavailableError: transport or API failure
        """
        pass

    @abstractmethod
    async def complete_structured(self, prompt: str, **kwargs) -> str:
        """Completion expected to contain a JSON value

        The raw text is returned unparsed; callers run it through the
        response sanitizer.
        """
        pass

    @abstractmethod
    async def transcribe_image_to_text(self, image_bytes: bytes, mime_type: str = "image/png") -> str:
        """OCR a conversation screenshot into speaker-prefixed plain text"""
        pass
