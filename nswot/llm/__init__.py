"""
LLM provider clients for nswot.

Normalizes the Anthropic, OpenAI and OpenRouter streaming protocols into one
response shape.
"""

from nswot.llm.base import LLMProvider
from nswot.llm.caller import ProviderLLMCaller
from nswot.llm.factory import ProviderType, create_llm_provider
from nswot.llm.types import (
    ChatMessage,
    CompletionRequest,
    CompletionResponse,
    FinishReason,
    LlmModel,
    ModelPricing,
    ToolCall,
    ToolCallRef,
    ToolDefinition,
    Usage,
)

__all__ = [
    "ChatMessage",
    "CompletionRequest",
    "CompletionResponse",
    "FinishReason",
    "LLMProvider",
    "LlmModel",
    "ModelPricing",
    "ProviderLLMCaller",
    "ProviderType",
    "ToolCall",
    "ToolCallRef",
    "ToolDefinition",
    "Usage",
    "create_llm_provider",
]
