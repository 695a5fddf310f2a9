"""
Provider selection by provider type.
"""

from enum import Enum
from typing import Dict, Optional, Type

import httpx

from nswot.core.exceptions import ConfigurationError
from nswot.llm.anthropic import AnthropicProvider
from nswot.llm.base import DEFAULT_CONNECT_TIMEOUT, DEFAULT_STREAM_IDLE_TIMEOUT, LLMProvider
from nswot.llm.openai import OpenAIProvider
from nswot.llm.openrouter import OpenRouterProvider


class ProviderType(str, Enum):
    ANTHROPIC = "anthropic"
    OPENAI = "openai"
    OPENROUTER = "openrouter"


PROVIDERS: Dict[ProviderType, Type[LLMProvider]] = {
    ProviderType.ANTHROPIC: AnthropicProvider,
    ProviderType.OPENAI: OpenAIProvider,
    ProviderType.OPENROUTER: OpenRouterProvider,
}


def create_llm_provider(
    provider_type,
    client: Optional[httpx.Client] = None,
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
    stream_idle_timeout: float = DEFAULT_STREAM_IDLE_TIMEOUT,
) -> LLMProvider:
    """
    Create the provider for ``provider_type`` (a ProviderType or its value).

    Raises:
        ConfigurationError: For an unknown provider type
    """
    try:
        key = ProviderType(provider_type)
    except ValueError as e:
        raise ConfigurationError(
            f"Unknown LLM provider: {provider_type}",
            details={"supported": [p.value for p in ProviderType]},
        ) from e

    return PROVIDERS[key](
        client=client,
        connect_timeout=connect_timeout,
        stream_idle_timeout=stream_idle_timeout,
    )
