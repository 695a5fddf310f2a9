"""
Vendor-agnostic request and response types for chat completions.
"""

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional


class FinishReason(str, Enum):
    """Normalized terminal state of a completion."""

    STOP = "stop"
    LENGTH = "length"
    TOOL_CALLS = "tool_calls"
    ERROR = "error"


@dataclass(frozen=True)
class ToolCallRef:
    """A tool call made by a previous assistant turn."""

    id: str
    name: str
    arguments: str = ""


@dataclass(frozen=True)
class ChatMessage:
    role: str  # system | user | assistant | tool
    content: str = ""
    tool_calls: List[ToolCallRef] = field(default_factory=list)
    tool_call_id: Optional[str] = None

    @classmethod
    def system(cls, content: str) -> "ChatMessage":
        return cls("system", content)

    @classmethod
    def user(cls, content: str) -> "ChatMessage":
        return cls("user", content)

    @classmethod
    def assistant(cls, content: str) -> "ChatMessage":
        return cls("assistant", content)


@dataclass(frozen=True)
class ToolDefinition:
    name: str
    description: str = ""
    parameters: Dict[str, Any] = field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )


@dataclass(frozen=True)
class CompletionRequest:
    """
    One chat completion call.

    ``on_chunk`` receives every text fragment as it arrives; ``on_token``
    receives the running token count roughly every 50 tokens. Setting
    ``cancel_event`` aborts the stream between events.
    """

    model_id: str
    api_key: str
    messages: List[ChatMessage]
    tools: List[ToolDefinition] = field(default_factory=list)
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    thinking_budget: Optional[int] = None
    on_chunk: Optional[Callable[[str], None]] = None
    on_token: Optional[Callable[[int], None]] = None
    cancel_event: Optional[threading.Event] = None


@dataclass(frozen=True)
class ToolCall:
    """A completed tool call. ``arguments`` is the raw string and may be truncated JSON."""

    id: str
    name: str
    arguments: str


@dataclass(frozen=True)
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass(frozen=True)
class CompletionResponse:
    content: str
    finish_reason: Optional[FinishReason] = None
    tool_calls: List[ToolCall] = field(default_factory=list)
    thinking: Optional[str] = None
    usage: Optional[Usage] = None


@dataclass(frozen=True)
class ModelPricing:
    """Vendor-reported USD prices for prompt and completion tokens."""

    prompt: float
    completion: float


@dataclass(frozen=True)
class LlmModel:
    id: str
    name: str
    context_length: int
    pricing: ModelPricing
