"""
AI Completion Providers

Provider implementations follow the ABC inheritance pattern: every provider
inherits from CompletionProvider. The concrete class is chosen once at
startup from configuration through a name -> class registry.
"""

import logging
import os
from typing import Dict, Optional, Type

from ...config.models import AIConfig
from .anthropic import AnthropicCompletionProvider
from .base import CompletionProvider
from .guarded import GuardedCompletionProvider
from .openai import OpenAICompletionProvider

logger = logging.getLogger(__name__)

PROVIDER_REGISTRY: Dict[str, Type[CompletionProvider]] = {
    "openai": OpenAICompletionProvider,
    "anthropic": AnthropicCompletionProvider,
}


def create_completion_provider(config: AIConfig) -> Optional[GuardedCompletionProvider]:
    """
    Build the configured provider wrapped in the timeout/retry guard.

    Returns:
        Guarded provider, or None when AI is disabled, no provider is named,
        or the named provider is unknown
    """
    if not config.enabled or not config.default_provider:
        logger.info("No AI provider configured, analysis runs in regex-only mode")
        return None

    name = config.default_provider.strip().lower()
    provider_class = PROVIDER_REGISTRY.get(name)
    if provider_class is None:
        logger.error(f"Unknown AI provider '{name}'. Available: {sorted(PROVIDER_REGISTRY)}")
        return None

    provider_config = config.providers.get(name, {})
    missing = [env for env in provider_class.required_credentials() if not os.getenv(env)]
    if missing and not provider_config.get("api_key") and not provider_config.get("api_key_env"):
        logger.warning(f"Provider '{name}' credentials not set: {', '.join(missing)}")

    provider = provider_class(provider_config)
    logger.info(f"Using AI provider '{name}' (timeout {config.timeout_seconds}s)")
    return GuardedCompletionProvider(
        provider,
        timeout_seconds=config.timeout_seconds,
        retry_transient=config.retry_transient,
    )


__all__ = [
    "AnthropicCompletionProvider",
    "CompletionProvider",
    "GuardedCompletionProvider",
    "OpenAICompletionProvider",
    "PROVIDER_REGISTRY",
    "create_completion_provider",
]
