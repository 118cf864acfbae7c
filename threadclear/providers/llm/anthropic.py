"""
Anthropic Completion Provider

Messages API backed provider for Claude models. Claude has no JSON response
mode, so structured calls rely on the system prompt and the response
sanitizer downstream.
"""

import base64
import logging
import os
from typing import Any, Dict, List, Optional

import anthropic
from anthropic import AsyncAnthropic

from ...core.errors import ProviderTimeoutError, ProviderUnavailableError
from .base import DEFAULT_SYSTEM_PROMPT, OCR_PROMPT, STRUCTURED_SYSTEM_PROMPT, CompletionProvider

logger = logging.getLogger(__name__)

_TRANSIENT_ERRORS = (anthropic.APIConnectionError, anthropic.RateLimitError, anthropic.InternalServerError)


class AnthropicCompletionProvider(CompletionProvider):
    """Anthropic Claude completion provider"""

    def __init__(self, config: Dict[str, Any]):
        """Initialize Anthropic provider with configuration

        Args:
            config: Provider configuration containing:
                - api_key_env: Environment variable holding the API key (default ANTHROPIC_API_KEY)
                - default_model: Model to use
                - max_tokens: Maximum tokens in response
                - temperature: Temperature for generation
        """
        config = dict(config or {})
        config.setdefault("default_model", "claude-sonnet-4-20250514")
        config.setdefault("max_tokens", 4096)
        super().__init__(config)

        api_key_env = self.get_config_value("api_key_env", "ANTHROPIC_API_KEY")
        self.api_key = self.get_config_value("api_key") or os.getenv(api_key_env)
        self._client: Optional[AsyncAnthropic] = None

    @classmethod
    def required_credentials(cls) -> List[str]:
        return ["ANTHROPIC_API_KEY"]

    def get_provider_name(self) -> str:
        return "anthropic"

    def _get_client(self) -> AsyncAnthropic:
        if self._client is None:
            if not self.api_key:
                raise ProviderUnavailableError("Anthropic API key not configured", provider="anthropic")
            self._client = AsyncAnthropic(api_key=self.api_key)
        return self._client

    async def is_available(self) -> bool:
        if not self.api_key:
            logger.error("Anthropic API key not configured")
            return False
        return True

    async def _messages(self, content: Any, system: str, **kwargs) -> str:
        model = kwargs.get("model") or self.default_model
        try:
            response = await self._get_client().messages.create(
                model=model,
                max_tokens=kwargs.get("max_tokens", self.max_tokens),
                temperature=kwargs.get("temperature", self.temperature),
                system=system,
                messages=[{"role": "user", "content": content}],
            )
        except anthropic.APITimeoutError as e:
            raise ProviderTimeoutError(f"Anthropic request timed out: {e}", provider="anthropic") from e
        except _TRANSIENT_ERRORS as e:
            raise ProviderUnavailableError(f"Anthropic transient error: {e}", provider="anthropic", transient=True) from e
        except anthropic.AnthropicError as e:
            raise ProviderUnavailableError(f"Anthropic request failed: {e}", provider="anthropic") from e

        text = "".join(block.text for block in response.content if getattr(block, "type", "") == "text")
        logger.debug("Anthropic completion received from model '%s' (%d chars)", model, len(text))
        return text.strip()

    async def complete(self, prompt: str, system: Optional[str] = None, **kwargs) -> str:
        return await self._messages(prompt, system or DEFAULT_SYSTEM_PROMPT, **kwargs)

    async def complete_structured(self, prompt: str, **kwargs) -> str:
        return await self._messages(prompt, STRUCTURED_SYSTEM_PROMPT, **kwargs)

    async def transcribe_image_to_text(self, image_bytes: bytes, mime_type: str = "image/png") -> str:
        content = [
            {
                "type": "image",
                "source": {
                    "type": "base64",
                    "media_type": mime_type,
                    "data": base64.b64encode(image_bytes).decode("ascii"),
                },
            },
            {"type": "text", "text": OCR_PROMPT},
        ]
        return await self._messages(content, DEFAULT_SYSTEM_PROMPT)

    async def cleanup(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
