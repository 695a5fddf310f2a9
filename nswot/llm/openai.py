"""
OpenAI Chat Completions provider, plus the shared OpenAI-compatible wire.
"""

from typing import Any, Dict, List, Optional, Tuple

from nswot.core.exceptions import ErrorCode, LLMRequestError
from nswot.llm.base import DEFAULT_MAX_TOKENS, StreamingHTTPProvider
from nswot.llm.streaming import StreamAccumulator, map_openai_finish_reason
from nswot.llm.types import (
    ChatMessage,
    CompletionRequest,
    CompletionResponse,
    LlmModel,
    ModelPricing,
    ToolDefinition,
)

OPENAI_BASE_URL = "https://api.openai.com/v1"

OPENAI_MODELS: List[LlmModel] = [
    LlmModel(
        id="gpt-4o",
        name="GPT-4o",
        context_length=128000,
        pricing=ModelPricing(prompt=0.0025, completion=0.01),
    ),
    LlmModel(
        id="gpt-4o-mini",
        name="GPT-4o Mini",
        context_length=128000,
        pricing=ModelPricing(prompt=0.00015, completion=0.0006),
    ),
    LlmModel(
        id="o3-mini",
        name="o3-mini",
        context_length=200000,
        pricing=ModelPricing(prompt=0.0011, completion=0.0044),
    ),
    LlmModel(
        id="o4-mini",
        name="o4-mini",
        context_length=200000,
        pricing=ModelPricing(prompt=0.0011, completion=0.0044),
    ),
]

# Thinking budget (tokens) upper bounds for each reasoning effort level
REASONING_EFFORT_LEVELS: Tuple[Tuple[int, str], ...] = ((2048, "low"), (8192, "medium"))


def reasoning_effort_for(budget: int) -> str:
    for ceiling, effort in REASONING_EFFORT_LEVELS:
        if budget <= ceiling:
            return effort
    return "high"


def to_openai_messages(messages: List[ChatMessage]) -> List[Dict[str, Any]]:
    wire: List[Dict[str, Any]] = []
    for message in messages:
        if message.role == "tool":
            wire.append(
                {
                    "role": "tool",
                    "tool_call_id": message.tool_call_id or "",
                    "content": message.content,
                }
            )
        elif message.role == "assistant" and message.tool_calls:
            wire.append(
                {
                    "role": "assistant",
                    "content": message.content or None,
                    "tool_calls": [
                        {
                            "id": call.id,
                            "type": "function",
                            "function": {"name": call.name, "arguments": call.arguments},
                        }
                        for call in message.tool_calls
                    ],
                }
            )
        else:
            wire.append({"role": message.role, "content": message.content})
    return wire


def to_openai_tools(tools: List[ToolDefinition]) -> List[Dict[str, Any]]:
    return [
        {
            "type": "function",
            "function": {
                "name": t.name,
                "description": t.description,
                "parameters": t.parameters,
            },
        }
        for t in tools
    ]


class OpenAICompatibleProvider(StreamingHTTPProvider):
    """
    Streams from any endpoint speaking the OpenAI chat-completions wire.

    Tool-call deltas arrive as ``function.arguments`` fragments keyed by
    ``index``; they are accumulated into whole calls. Subclasses set the base
    URL, headers and how a thinking budget is expressed.
    """

    base_url = OPENAI_BASE_URL
    reasoning_fields: Tuple[str, ...] = ("reasoning_content",)

    def build_headers(self, request: CompletionRequest) -> Dict[str, str]:
        return {
            "content-type": "application/json",
            "accept": "text/event-stream",
            "authorization": f"Bearer {request.api_key}",
        }

    def build_body(self, request: CompletionRequest) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "model": request.model_id,
            "messages": to_openai_messages(request.messages),
            "stream": True,
        }
        if request.tools:
            body["tools"] = to_openai_tools(request.tools)
        self.apply_generation_options(body, request)
        return body

    def apply_generation_options(self, body: Dict[str, Any], request: CompletionRequest) -> None:
        body["max_tokens"] = request.max_tokens or DEFAULT_MAX_TOKENS
        if request.temperature is not None:
            body["temperature"] = request.temperature

    def create_chat_completion(self, request: CompletionRequest) -> CompletionResponse:
        return self._stream_completion(
            f"{self.base_url}/chat/completions",
            self.build_headers(request),
            self.build_body(request),
            request,
            self._handle_event,
        )

    def _handle_event(self, event: Dict[str, Any], acc: StreamAccumulator) -> None:
        error = event.get("error")
        if error:
            raise LLMRequestError(self._error_message(error), provider=self.name)

        usage = event.get("usage")
        if isinstance(usage, dict):
            acc.set_usage(
                input_tokens=usage.get("prompt_tokens"),
                output_tokens=usage.get("completion_tokens"),
            )

        for choice in event.get("choices") or []:
            delta = choice.get("delta") or {}

            content = delta.get("content")
            if isinstance(content, str):
                acc.append_text(content)

            for field_name in self.reasoning_fields:
                reasoning = delta.get(field_name)
                if isinstance(reasoning, str):
                    acc.append_thinking(reasoning)

            for tool_delta in delta.get("tool_calls") or []:
                function = tool_delta.get("function") or {}
                key = tool_delta.get("index", tool_delta.get("id"))
                acc.append_tool_arguments(
                    key,
                    function.get("arguments") or "",
                    call_id=tool_delta.get("id"),
                    name=function.get("name"),
                )

            finish_reason = choice.get("finish_reason")
            if finish_reason:
                acc.set_finish_reason(map_openai_finish_reason(finish_reason))

    def _error_message(self, error: Any) -> str:
        if isinstance(error, dict):
            message = error.get("message")
            if isinstance(message, str) and message:
                return message
        elif isinstance(error, str) and error:
            return error
        return f"{self.name} stream error"


class OpenAIProvider(OpenAICompatibleProvider):
    """Streams completions from the OpenAI API."""

    name = "openai"
    auth_error_code = ErrorCode.OPENAI_AUTH_FAILED
    rate_limit_error_code = ErrorCode.OPENAI_RATE_LIMITED

    def __init__(self, *args, base_url: Optional[str] = None, **kwargs):
        super().__init__(*args, **kwargs)
        if base_url:
            self.base_url = base_url

    def list_models(self, api_key: str) -> List[LlmModel]:
        return list(OPENAI_MODELS)

    def apply_generation_options(self, body: Dict[str, Any], request: CompletionRequest) -> None:
        body["stream_options"] = {"include_usage": True}
        body["max_completion_tokens"] = request.max_tokens or DEFAULT_MAX_TOKENS

        if request.thinking_budget and request.thinking_budget > 0:
            # Reasoning models reject sampling temperature
            body["reasoning_effort"] = reasoning_effort_for(request.thinking_budget)
        elif request.temperature is not None:
            body["temperature"] = request.temperature
