"""Tests for the provider timeout/retry guard and provider selection"""

import asyncio
from typing import List, Optional
from unittest.mock import MagicMock

import pytest

from threadclear.config.models import AIConfig
from threadclear.core.errors import ProviderTimeoutError, ProviderUnavailableError
from threadclear.providers.llm import (
    AnthropicCompletionProvider,
    GuardedCompletionProvider,
    OpenAICompletionProvider,
    create_completion_provider,
)
from threadclear.providers.llm.base import CompletionProvider


class ScriptedProvider(CompletionProvider):
    """Raises or returns the next scripted outcome on every call"""

    def __init__(self, outcomes: List, delay: float = 0.0):
        super().__init__({})
        self.outcomes = list(outcomes)
        self.delay = delay
        self.call_count = 0

    def get_provider_name(self) -> str:
        return "scripted"

    async def is_available(self) -> bool:
        return True

    async def _next(self) -> str:
        self.call_count += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def complete(self, prompt: str, system: Optional[str] = None, **kwargs) -> str:
        return await self._next()

    async def complete_structured(self, prompt: str, **kwargs) -> str:
        return await self._next()

    async def transcribe_image_to_text(self, image_bytes: bytes, mime_type: str = "image/png") -> str:
        return await self._next()


class TestGuardedCompletionProvider:

    @pytest.mark.asyncio
    async def test_passes_through(self):
        guarded = GuardedCompletionProvider(ScriptedProvider(['{"ok": true}']))
        assert await guarded.complete_structured("prompt") == '{"ok": true}'
        assert guarded.get_provider_name() == "scripted"

    @pytest.mark.asyncio
    async def test_retries_once_on_transient_error(self):
        inner = ScriptedProvider([
            ProviderUnavailableError("reset", provider="scripted", transient=True),
            "second try",
        ])
        guarded = GuardedCompletionProvider(inner)

        assert await guarded.complete("prompt") == "second try"
        assert inner.call_count == 2

    @pytest.mark.asyncio
    async def test_permanent_error_is_not_retried(self):
        inner = ScriptedProvider([ProviderUnavailableError("bad key", provider="scripted"), "unused"])
        guarded = GuardedCompletionProvider(inner)

        with pytest.raises(ProviderUnavailableError):
            await guarded.complete("prompt")
        assert inner.call_count == 1

    @pytest.mark.asyncio
    async def test_gives_up_after_second_transient_error(self):
        inner = ScriptedProvider([
            ProviderUnavailableError("reset", transient=True),
            ProviderUnavailableError("reset again", transient=True),
        ])
        with pytest.raises(ProviderUnavailableError):
            await GuardedCompletionProvider(inner).complete("prompt")
        assert inner.call_count == 2

    @pytest.mark.asyncio
    async def test_timeout(self):
        inner = ScriptedProvider(["late", "late"], delay=0.5)
        guarded = GuardedCompletionProvider(inner, timeout_seconds=0.05, retry_transient=False)

        with pytest.raises(ProviderTimeoutError):
            await guarded.transcribe_image_to_text(b"png")
        assert inner.call_count == 1


class TestProviderSelection:

    def test_disabled_or_unnamed(self):
        assert create_completion_provider(AIConfig()) is None
        assert create_completion_provider(AIConfig(enabled=False, default_provider="openai")) is None

    def test_unknown_provider(self):
        assert create_completion_provider(AIConfig(default_provider="mystery")) is None

    @pytest.mark.parametrize("name,expected", [
        ("openai", OpenAICompletionProvider),
        ("Anthropic", AnthropicCompletionProvider),
    ])
    def test_registry(self, name, expected):
        provider = create_completion_provider(AIConfig(default_provider=name, timeout_seconds=5))
        assert isinstance(provider, GuardedCompletionProvider)
        assert isinstance(provider.inner, expected)
        assert provider.describe()["timeout_seconds"] == 5


class TestDelegation:

    @pytest.mark.asyncio
    async def test_availability_and_cleanup(self):
        inner = MagicMock(spec=CompletionProvider)
        inner.config = {}
        inner.get_provider_name.return_value = "mock"
        inner.is_available.return_value = False

        guarded = GuardedCompletionProvider(inner)

        assert await guarded.is_available() is False
        await guarded.cleanup()
        inner.cleanup.assert_awaited_once()
