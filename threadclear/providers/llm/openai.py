"""
OpenAI Completion Provider

Chat Completions backed provider for GPT models. Structured calls use the
JSON response mode; screenshots go through the vision input as a base64
data URL.
"""

import base64
import logging
import os
from typing import Any, Dict, List, Optional

import openai
from openai import AsyncOpenAI

from ...core.errors import ProviderTimeoutError, ProviderUnavailableError
from .base import DEFAULT_SYSTEM_PROMPT, OCR_PROMPT, STRUCTURED_SYSTEM_PROMPT, CompletionProvider

logger = logging.getLogger(__name__)

_TRANSIENT_ERRORS = (openai.APIConnectionError, openai.RateLimitError, openai.InternalServerError)


class OpenAICompletionProvider(CompletionProvider):
    """OpenAI GPT completion provider"""

    def __init__(self, config: Dict[str, Any]):
        """Initialize OpenAI provider with configuration

        Args:
            config: Provider configuration containing:
                - api_key_env: Environment variable holding the API key (default OPENAI_API_KEY)
                - base_url: OpenAI API base URL
                - default_model: Model to use
                - max_tokens: Maximum tokens in response
                - temperature: Temperature for generation
        """
        config = dict(config or {})
        config.setdefault("default_model", "gpt-4o")
        config.setdefault("temperature", 0.1)
        super().__init__(config)

        api_key_env = self.get_config_value("api_key_env", "OPENAI_API_KEY")
        self.api_key = self.get_config_value("api_key") or os.getenv(api_key_env)
        self.base_url = self.get_config_value("base_url", "https://api.openai.com/v1")
        self._client: Optional[AsyncOpenAI] = None

    @classmethod
    def required_credentials(cls) -> List[str]:
        return ["OPENAI_API_KEY"]

    def get_provider_name(self) -> str:
        return "openai"

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self.api_key:
                raise ProviderUnavailableError("OpenAI API key not configured", provider="openai")
            self._client = AsyncOpenAI(api_key=self.api_key, base_url=self.base_url)
        return self._client

    async def is_available(self) -> bool:
        """A configured API key is treated as availability; no network round trip per request"""
        if not self.api_key:
            logger.error("OpenAI API key not configured")
            return False
        return True

    async def _chat(self, messages: List[Dict[str, Any]], json_mode: bool = False, **kwargs) -> str:
        model = kwargs.get("model") or self.default_model
        params: Dict[str, Any] = {
            "model": model,
            "messages": messages,
            "max_tokens": kwargs.get("max_tokens", self.max_tokens),
            "temperature": kwargs.get("temperature", self.temperature),
        }
        if json_mode:
            params["response_format"] = {"type": "json_object"}

        try:
            response = await self._get_client().chat.completions.create(**params)
        except openai.APITimeoutError as e:
            raise ProviderTimeoutError(f"OpenAI request timed out: {e}", provider="openai") from e
        except _TRANSIENT_ERRORS as e:
            raise ProviderUnavailableError(f"OpenAI transient error: {e}", provider="openai", transient=True) from e
        except openai.OpenAIError as e:
            raise ProviderUnavailableError(f"OpenAI request failed: {e}", provider="openai") from e

        if not response.choices:
            raise ProviderUnavailableError("OpenAI returned no choices", provider="openai")
        content = response.choices[0].message.content
        logger.debug("OpenAI completion received from model '%s' (%d chars)", model, len(content or ""))
        return (content or "").strip()

    async def complete(self, prompt: str, system: Optional[str] = None, **kwargs) -> str:
        return await self._chat(
            [
                {"role": "system", "content": system or DEFAULT_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            **kwargs,
        )

    async def complete_structured(self, prompt: str, **kwargs) -> str:
        return await self._chat(
            [
                {"role": "system", "content": STRUCTURED_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            json_mode=True,
            **kwargs,
        )

    async def transcribe_image_to_text(self, image_bytes: bytes, mime_type: str = "image/png") -> str:
        encoded = base64.b64encode(image_bytes).decode("ascii")
        return await self._chat(
            [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": OCR_PROMPT},
                        {"type": "image_url", "image_url": {"url": f"data:{mime_type};base64,{encoded}"}},
                    ],
                }
            ]
        )

    async def cleanup(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
