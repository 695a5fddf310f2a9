"""
Anthropic Messages API provider.
"""

import json
from typing import Any, Dict, List, Optional

from nswot.core.exceptions import ErrorCode, LLMRequestError
from nswot.llm.base import DEFAULT_MAX_TOKENS, StreamingHTTPProvider
from nswot.llm.streaming import StreamAccumulator
from nswot.llm.types import (
    ChatMessage,
    CompletionRequest,
    CompletionResponse,
    FinishReason,
    LlmModel,
    ModelPricing,
    ToolDefinition,
)

ANTHROPIC_MESSAGES_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_API_VERSION = "2023-06-01"
MIN_THINKING_BUDGET = 1024

# The /v1/models endpoint is not reliably available, so known models are listed here
ANTHROPIC_MODELS: List[LlmModel] = [
    LlmModel(
        id="claude-sonnet-4-5-20250929",
        name="Claude Sonnet 4.5",
        context_length=200000,
        pricing=ModelPricing(prompt=0.003, completion=0.015),
    ),
    LlmModel(
        id="claude-haiku-4-5-20251001",
        name="Claude Haiku 4.5",
        context_length=200000,
        pricing=ModelPricing(prompt=0.001, completion=0.005),
    ),
    LlmModel(
        id="claude-opus-4-6",
        name="Claude Opus 4.6",
        context_length=200000,
        pricing=ModelPricing(prompt=0.015, completion=0.075),
    ),
]

STOP_REASONS = {
    "end_turn": FinishReason.STOP,
    "stop_sequence": FinishReason.STOP,
    "tool_use": FinishReason.TOOL_CALLS,
    "max_tokens": FinishReason.LENGTH,
    "refusal": FinishReason.ERROR,
}


def map_stop_reason(stop_reason: Optional[str]) -> Optional[FinishReason]:
    if not stop_reason:
        return None
    return STOP_REASONS.get(stop_reason)


def split_system_messages(messages: List[ChatMessage]):
    """Hoist system messages out of the conversation into one system string."""
    system_parts = [m.content for m in messages if m.role == "system" and m.content]
    conversation = [m for m in messages if m.role != "system"]
    return ("\n\n".join(system_parts) or None), conversation


def _tool_input(arguments: str) -> Dict[str, Any]:
    try:
        parsed = json.loads(arguments) if arguments else {}
    except json.JSONDecodeError:
        return {}
    return parsed if isinstance(parsed, dict) else {}


def to_anthropic_messages(messages: List[ChatMessage]) -> List[Dict[str, Any]]:
    """Map the non-system conversation onto Messages API turns."""
    wire: List[Dict[str, Any]] = []
    for message in messages:
        if message.role == "tool":
            block = {
                "type": "tool_result",
                "tool_use_id": message.tool_call_id or "",
                "content": message.content,
            }
            # Consecutive tool results share one user turn
            previous = wire[-1] if wire else None
            if (
                previous is not None
                and previous["role"] == "user"
                and isinstance(previous["content"], list)
                and all(b.get("type") == "tool_result" for b in previous["content"])
            ):
                previous["content"].append(block)
            else:
                wire.append({"role": "user", "content": [block]})
        elif message.role == "assistant" and message.tool_calls:
            blocks: List[Dict[str, Any]] = []
            if message.content:
                blocks.append({"type": "text", "text": message.content})
            for call in message.tool_calls:
                blocks.append(
                    {
                        "type": "tool_use",
                        "id": call.id,
                        "name": call.name,
                        "input": _tool_input(call.arguments),
                    }
                )
            wire.append({"role": "assistant", "content": blocks})
        else:
            wire.append({"role": message.role, "content": message.content})
    return wire


def to_anthropic_tools(tools: List[ToolDefinition]) -> List[Dict[str, Any]]:
    return [
        {"name": t.name, "description": t.description, "input_schema": t.parameters}
        for t in tools
    ]


class AnthropicProvider(StreamingHTTPProvider):
    """Streams completions from the Anthropic Messages API."""

    name = "anthropic"
    auth_error_code = ErrorCode.ANTHROPIC_AUTH_FAILED
    rate_limit_error_code = ErrorCode.ANTHROPIC_RATE_LIMITED

    def __init__(self, *args, base_url: str = ANTHROPIC_MESSAGES_URL, **kwargs):
        super().__init__(*args, **kwargs)
        self.url = base_url

    def list_models(self, api_key: str) -> List[LlmModel]:
        return list(ANTHROPIC_MODELS)

    def build_body(self, request: CompletionRequest) -> Dict[str, Any]:
        system, conversation = split_system_messages(request.messages)
        max_tokens = request.max_tokens or DEFAULT_MAX_TOKENS

        body: Dict[str, Any] = {
            "model": request.model_id,
            "messages": to_anthropic_messages(conversation),
            "stream": True,
            "max_tokens": max_tokens,
        }
        if system:
            body["system"] = system
        if request.tools:
            body["tools"] = to_anthropic_tools(request.tools)

        if request.thinking_budget and request.thinking_budget > 0:
            budget = max(MIN_THINKING_BUDGET, request.thinking_budget)
            body["thinking"] = {"type": "enabled", "budget_tokens": budget}
            # max_tokens covers thinking plus the visible answer
            body["max_tokens"] = budget + max_tokens
        elif request.temperature is not None:
            body["temperature"] = request.temperature

        return body

    def create_chat_completion(self, request: CompletionRequest) -> CompletionResponse:
        headers = {
            "content-type": "application/json",
            "accept": "text/event-stream",
            "x-api-key": request.api_key,
            "anthropic-version": ANTHROPIC_API_VERSION,
        }
        return self._stream_completion(
            self.url, headers, self.build_body(request), request, self._handle_event
        )

    def _handle_event(self, event: Dict[str, Any], acc: StreamAccumulator) -> None:
        event_type = event.get("type")

        if event_type == "message_start":
            usage = (event.get("message") or {}).get("usage") or {}
            acc.set_usage(input_tokens=usage.get("input_tokens"))

        elif event_type == "content_block_start":
            block = event.get("content_block") or {}
            if block.get("type") == "tool_use":
                acc.start_tool_call(event.get("index"), block.get("id"), block.get("name"))

        elif event_type == "content_block_delta":
            delta = event.get("delta") or {}
            delta_type = delta.get("type")
            if delta_type == "text_delta":
                acc.append_text(delta.get("text") or "")
            elif delta_type == "thinking_delta":
                acc.append_thinking(delta.get("thinking") or "")
            elif delta_type == "input_json_delta":
                acc.append_tool_arguments(event.get("index"), delta.get("partial_json") or "")

        elif event_type == "message_delta":
            delta = event.get("delta") or {}
            if "stop_reason" in delta:
                acc.set_finish_reason(map_stop_reason(delta.get("stop_reason")))
            usage = event.get("usage") or {}
            acc.set_usage(output_tokens=usage.get("output_tokens"))

        elif event_type == "error":
            error = event.get("error") or {}
            message = error.get("message") if isinstance(error, dict) else None
            raise LLMRequestError(message or "Anthropic stream error", provider=self.name)
