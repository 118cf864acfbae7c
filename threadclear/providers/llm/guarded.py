"""
Guarded Completion Provider

Wraps any CompletionProvider with a per-call timeout and at most one retry on
transient transport errors. Every provider call made by the engine goes
through this wrapper.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from ...core.errors import ProviderTimeoutError, ProviderUnavailableError
from .base import CompletionProvider

logger = logging.getLogger(__name__)


class GuardedCompletionProvider(CompletionProvider):
    """Timeout and single-retry guard around another completion provider"""

    def __init__(self, inner: CompletionProvider, timeout_seconds: float = 30.0,
                 retry_transient: bool = True):
        super().__init__(inner.config)
        self.inner = inner
        self.timeout_seconds = timeout_seconds
        self.retry_transient = retry_transient
        self.calls = 0

    def get_provider_name(self) -> str:
        return self.inner.get_provider_name()

    async def is_available(self) -> bool:
        return await self.inner.is_available()

    async def _guard(self, operation: str, call: Callable[[], Awaitable[str]]) -> str:
        attempts = 2 if self.retry_transient else 1
        name = self.get_provider_name()
        for attempt in range(1, attempts + 1):
            self.calls += 1
            try:
                return await asyncio.wait_for(call(), timeout=self.timeout_seconds)
            except asyncio.TimeoutError as e:
                error: ProviderUnavailableError = ProviderTimeoutError(
                    f"{name} {operation} exceeded {self.timeout_seconds}s", provider=name)
                cause: Exception = e
            except ProviderUnavailableError as e:
                error = e
                cause = e
            if not error.transient or attempt == attempts:
                raise error from cause
            logger.warning(f"Provider '{name}' {operation} failed transiently (attempt {attempt}), retrying")
        raise ProviderUnavailableError(f"{name} {operation} failed", provider=name)

    async def complete(self, prompt: str, system: Optional[str] = None, **kwargs) -> str:
        return await self._guard("complete", lambda: self.inner.complete(prompt, system=system, **kwargs))

    async def complete_structured(self, prompt: str, **kwargs) -> str:
        return await self._guard("complete_structured", lambda: self.inner.complete_structured(prompt, **kwargs))

    async def transcribe_image_to_text(self, image_bytes: bytes, mime_type: str = "image/png") -> str:
        return await self._guard("transcribe", lambda: self.inner.transcribe_image_to_text(image_bytes, mime_type))

    async def cleanup(self) -> None:
        await self.inner.cleanup()

    def describe(self) -> Dict[str, Any]:
        return {
            "provider": self.get_provider_name(),
            "timeout_seconds": self.timeout_seconds,
            "retry_transient": self.retry_transient,
        }
