"""
Tests for the vendor streaming providers.

Each vendor is exercised through ``httpx.MockTransport`` with synthetic
server-sent event bodies.
"""

import json
import threading

import httpx
import pytest

from nswot.core.exceptions import (
    AuthenticationError,
    ConfigurationError,
    EmptyResponseError,
    ErrorCode,
    LLMRequestError,
    RateLimitError,
    RequestCancelledError,
)
from nswot.llm import ProviderType, create_llm_provider
from nswot.llm.anthropic import AnthropicProvider, split_system_messages, to_anthropic_messages
from nswot.llm.openai import OpenAIProvider, reasoning_effort_for
from nswot.llm.openrouter import OpenRouterProvider
from nswot.llm.streaming import iter_sse_data, parse_retry_after
from nswot.llm.types import (
    ChatMessage,
    CompletionRequest,
    FinishReason,
    ToolCallRef,
)


def sse(*events, done=False):
    lines = [f"data: {json.dumps(e)}\n\n" for e in events]
    if done:
        lines.append("data: [DONE]\n\n")
    return "".join(lines)


def mock_client(handler):
    return httpx.Client(transport=httpx.MockTransport(handler))


def stream_response(body, status=200, headers=None):
    return httpx.Response(
        status,
        headers={"content-type": "text/event-stream", **(headers or {})},
        content=body.encode(),
    )


def make_request(**overrides):
    params = dict(
        model_id="test-model",
        api_key="sk-test",
        messages=[ChatMessage.system("Be terse."), ChatMessage.user("Hello")],
    )
    params.update(overrides)
    return CompletionRequest(**params)


class Recorder:
    """Transport handler that captures the request and replays a body."""

    def __init__(self, body, status=200, headers=None):
        self.body = body
        self.status = status
        self.headers = headers
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        if callable(self.body):
            return self.body(request)
        return stream_response(self.body, self.status, self.headers)

    @property
    def json(self):
        return json.loads(self.requests[-1].content)


def anthropic_text_stream(*chunks, stop_reason="end_turn"):
    events = [
        {"type": "message_start", "message": {"usage": {"input_tokens": 12}}},
        {"type": "content_block_start", "index": 0, "content_block": {"type": "text", "text": ""}},
    ]
    events += [
        {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": c}}
        for c in chunks
    ]
    events += [
        {"type": "content_block_stop", "index": 0},
        {"type": "message_delta", "delta": {"stop_reason": stop_reason}, "usage": {"output_tokens": 5}},
        {"type": "message_stop"},
    ]
    return sse(*events)


def openai_text_stream(*chunks, finish_reason="stop"):
    events = [{"choices": [{"index": 0, "delta": {"content": c}}]} for c in chunks]
    events.append({"choices": [{"index": 0, "delta": {}, "finish_reason": finish_reason}]})
    return sse(*events, done=True)


class TestSSEFraming:
    """Test server-sent event line handling."""

    def test_skips_comments_fields_and_done(self):
        lines = [
            ": keep-alive",
            "event: message",
            'data: {"a": 1}',
            "",
            "id: 7",
            "data: [DONE]",
            'data:{"b": 2}',
        ]
        assert list(iter_sse_data(lines)) == ['{"a": 1}', '{"b": 2}']

    def test_parse_retry_after(self):
        assert parse_retry_after("12") == 12.0
        assert parse_retry_after("0") is None
        assert parse_retry_after(None) is None
        assert parse_retry_after("garbage") is None
        assert parse_retry_after("Wed, 21 Oct 2015 07:28:30 GMT", now=1445412500.0) == 10.0


class TestAnthropicProvider:
    """Test Anthropic Messages API streaming."""

    def test_two_text_deltas_then_stop(self):
        recorder = Recorder(anthropic_text_stream("Hel", "lo"))
        provider = AnthropicProvider(client=mock_client(recorder))

        response = provider.create_chat_completion(make_request())

        assert response.content == "Hello"
        assert response.finish_reason == FinishReason.STOP
        assert response.usage.input_tokens == 12
        assert response.usage.output_tokens == 5

    def test_system_message_hoisted_and_headers(self):
        recorder = Recorder(anthropic_text_stream("ok"))
        provider = AnthropicProvider(client=mock_client(recorder))

        provider.create_chat_completion(make_request(temperature=0.3))

        body = recorder.json
        assert body["system"] == "Be terse."
        assert body["messages"] == [{"role": "user", "content": "Hello"}]
        assert body["stream"] is True
        assert body["temperature"] == 0.3
        headers = recorder.requests[-1].headers
        assert headers["x-api-key"] == "sk-test"
        assert headers["anthropic-version"] == "2023-06-01"

    def test_thinking_budget_extends_max_tokens(self):
        recorder = Recorder(anthropic_text_stream("ok"))
        provider = AnthropicProvider(client=mock_client(recorder))

        provider.create_chat_completion(
            make_request(max_tokens=2000, thinking_budget=500, temperature=0.5)
        )

        body = recorder.json
        assert body["thinking"] == {"type": "enabled", "budget_tokens": 1024}
        assert body["max_tokens"] == 3024
        assert "temperature" not in body

    def test_thinking_and_tool_use(self):
        body = sse(
            {"type": "content_block_start", "index": 0, "content_block": {"type": "thinking"}},
            {"type": "content_block_delta", "index": 0, "delta": {"type": "thinking_delta", "thinking": "Hmm"}},
            {
                "type": "content_block_start",
                "index": 1,
                "content_block": {"type": "tool_use", "id": "toolu_1", "name": "lookup"},
            },
            {"type": "content_block_delta", "index": 1, "delta": {"type": "input_json_delta", "partial_json": '{"q": '}},
            {"type": "content_block_delta", "index": 1, "delta": {"type": "input_json_delta", "partial_json": '"x"}'}},
            {"type": "message_delta", "delta": {"stop_reason": "tool_use"}},
        )
        provider = AnthropicProvider(client=mock_client(Recorder(body)))

        response = provider.create_chat_completion(make_request())

        assert response.content == ""
        assert response.thinking == "Hmm"
        assert response.finish_reason == FinishReason.TOOL_CALLS
        assert len(response.tool_calls) == 1
        call = response.tool_calls[0]
        assert (call.id, call.name, call.arguments) == ("toolu_1", "lookup", '{"q": "x"}')

    def test_max_tokens_maps_to_length(self):
        provider = AnthropicProvider(
            client=mock_client(Recorder(anthropic_text_stream("cut", stop_reason="max_tokens")))
        )
        assert provider.create_chat_completion(make_request()).finish_reason == FinishReason.LENGTH

    def test_terminal_event_only_is_empty_response(self):
        body = sse({"type": "message_delta", "delta": {"stop_reason": "end_turn"}}, {"type": "message_stop"})
        provider = AnthropicProvider(client=mock_client(Recorder(body)))

        with pytest.raises(EmptyResponseError) as exc_info:
            provider.create_chat_completion(make_request())
        assert exc_info.value.code == ErrorCode.LLM_EMPTY_RESPONSE

    def test_in_band_error_event(self):
        body = sse(
            {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "par"}},
            {"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}},
        )
        provider = AnthropicProvider(client=mock_client(Recorder(body)))

        with pytest.raises(LLMRequestError, match="Overloaded"):
            provider.create_chat_completion(make_request())

    def test_auth_and_rate_limit_codes(self):
        error_body = json.dumps({"error": {"message": "invalid x-api-key"}})
        provider = AnthropicProvider(client=mock_client(Recorder(error_body, status=401)))
        with pytest.raises(AuthenticationError) as auth:
            provider.create_chat_completion(make_request())
        assert auth.value.code == ErrorCode.ANTHROPIC_AUTH_FAILED
        assert auth.value.status_code == 401
        assert auth.value.message == "invalid x-api-key"

        provider = AnthropicProvider(
            client=mock_client(Recorder("{}", status=429, headers={"retry-after": "3"}))
        )
        with pytest.raises(RateLimitError) as limited:
            provider.create_chat_completion(make_request())
        assert limited.value.code == ErrorCode.ANTHROPIC_RATE_LIMITED
        assert limited.value.retry_after == 3.0

    def test_tool_results_merge_into_one_user_turn(self):
        messages = [
            ChatMessage.user("Find it"),
            ChatMessage(
                role="assistant",
                tool_calls=[ToolCallRef(id="a", name="f", arguments='{"x": 1}'), ToolCallRef(id="b", name="f")],
            ),
            ChatMessage(role="tool", content="one", tool_call_id="a"),
            ChatMessage(role="tool", content="two", tool_call_id="b"),
        ]
        wire = to_anthropic_messages(messages)

        assert wire[1]["content"][0] == {"type": "tool_use", "id": "a", "name": "f", "input": {"x": 1}}
        assert wire[1]["content"][1]["input"] == {}
        assert len(wire) == 3
        assert [b["tool_use_id"] for b in wire[2]["content"]] == ["a", "b"]

    def test_multiple_system_messages_joined(self):
        system, rest = split_system_messages(
            [ChatMessage.system("one"), ChatMessage.user("hi"), ChatMessage.system("two")]
        )
        assert system == "one\n\ntwo"
        assert [m.role for m in rest] == ["user"]


class TestOpenAIProvider:
    """Test OpenAI chat-completions streaming."""

    def test_two_text_deltas_then_stop(self):
        recorder = Recorder(openai_text_stream("Hel", "lo"))
        provider = OpenAIProvider(client=mock_client(recorder))

        response = provider.create_chat_completion(make_request(max_tokens=100))

        assert response.content == "Hello"
        assert response.finish_reason == FinishReason.STOP
        body = recorder.json
        assert body["messages"][0] == {"role": "system", "content": "Be terse."}
        assert body["max_completion_tokens"] == 100
        assert body["stream_options"] == {"include_usage": True}
        assert recorder.requests[-1].headers["authorization"] == "Bearer sk-test"
        assert str(recorder.requests[-1].url) == "https://api.openai.com/v1/chat/completions"

    def test_fragmented_tool_call_arguments(self):
        body = sse(
            {"choices": [{"delta": {"tool_calls": [{"index": 0, "id": "call_1", "function": {"name": "search", "arguments": ""}}]}}]},
            {"choices": [{"delta": {"tool_calls": [{"index": 0, "function": {"arguments": '{"term":'}}]}}]},
            {"choices": [{"delta": {"tool_calls": [{"index": 0, "function": {"arguments": ' "auth"}'}}]}}]},
            {"choices": [{"delta": {}, "finish_reason": "tool_calls"}]},
            {"choices": [], "usage": {"prompt_tokens": 30, "completion_tokens": 8}},
            done=True,
        )
        provider = OpenAIProvider(client=mock_client(Recorder(body)))

        response = provider.create_chat_completion(make_request())

        assert response.finish_reason == FinishReason.TOOL_CALLS
        assert [(c.id, c.name, c.arguments) for c in response.tool_calls] == [
            ("call_1", "search", '{"term": "auth"}')
        ]
        assert response.usage.total_tokens == 38

    def test_reasoning_effort_replaces_temperature(self):
        recorder = Recorder(openai_text_stream("ok"))
        provider = OpenAIProvider(client=mock_client(recorder))

        provider.create_chat_completion(make_request(thinking_budget=4000, temperature=0.7))

        assert recorder.json["reasoning_effort"] == "medium"
        assert "temperature" not in recorder.json

    @pytest.mark.parametrize(
        "budget,effort", [(1024, "low"), (2048, "low"), (2049, "medium"), (8192, "medium"), (16000, "high")]
    )
    def test_reasoning_effort_thresholds(self, budget, effort):
        assert reasoning_effort_for(budget) == effort

    def test_done_only_is_empty_response(self):
        provider = OpenAIProvider(
            client=mock_client(Recorder(sse({"choices": [{"delta": {}, "finish_reason": "stop"}]}, done=True)))
        )
        with pytest.raises(EmptyResponseError):
            provider.create_chat_completion(make_request())

    def test_server_error_is_request_failed(self):
        provider = OpenAIProvider(client=mock_client(Recorder("upstream exploded", status=502)))

        with pytest.raises(LLMRequestError) as exc_info:
            provider.create_chat_completion(make_request())

        assert exc_info.value.status_code == 502
        assert exc_info.value.code == ErrorCode.LLM_REQUEST_FAILED
        assert exc_info.value.is_transient

    def test_openai_auth_code(self):
        provider = OpenAIProvider(client=mock_client(Recorder("{}", status=403)))
        with pytest.raises(AuthenticationError) as exc_info:
            provider.create_chat_completion(make_request())
        assert exc_info.value.code == ErrorCode.OPENAI_AUTH_FAILED

    def test_read_timeout_reports_stalled_stream(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        provider = OpenAIProvider(client=mock_client(Recorder(handler)))

        with pytest.raises(LLMRequestError, match="stalled") as exc_info:
            provider.create_chat_completion(make_request())
        assert exc_info.value.network is True

    def test_token_callbacks(self):
        chunks = ["x"] * 120
        provider = OpenAIProvider(client=mock_client(Recorder(openai_text_stream(*chunks))))
        seen_chunks, token_reports = [], []

        provider.create_chat_completion(
            make_request(on_chunk=seen_chunks.append, on_token=token_reports.append)
        )

        assert len(seen_chunks) == 120
        assert token_reports == [50, 100, 120]

    def test_cancelled_before_send(self):
        recorder = Recorder(openai_text_stream("never"))
        provider = OpenAIProvider(client=mock_client(recorder))
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(RequestCancelledError):
            provider.create_chat_completion(make_request(cancel_event=cancel))
        assert recorder.requests == []


class TestOpenRouterProvider:
    """Test OpenRouter streaming and catalog."""

    def test_two_text_deltas_with_reasoning(self):
        body = sse(
            {"choices": [{"delta": {"reasoning": "thinking..."}}]},
            {"choices": [{"delta": {"content": "Hel"}}]},
            {"choices": [{"delta": {"content": "lo"}}]},
            {"choices": [{"delta": {}, "finish_reason": "stop"}]},
            done=True,
        )
        recorder = Recorder(body)
        provider = OpenRouterProvider(client=mock_client(recorder))

        response = provider.create_chat_completion(make_request(thinking_budget=2000))

        assert response.content == "Hello"
        assert response.thinking == "thinking..."
        assert response.finish_reason == FinishReason.STOP
        request = recorder.requests[-1]
        assert request.headers["x-title"] == "nswot"
        assert "http-referer" in request.headers
        assert recorder.json["reasoning"] == {"max_tokens": 2000}

    def test_terminal_event_only_is_empty_response(self):
        body = sse({"choices": [{"delta": {}, "finish_reason": "stop"}]}, done=True)
        provider = OpenRouterProvider(client=mock_client(Recorder(body)))

        with pytest.raises(EmptyResponseError) as exc_info:
            provider.create_chat_completion(make_request())
        assert exc_info.value.code == ErrorCode.LLM_EMPTY_RESPONSE
        assert exc_info.value.provider == "openrouter"

    def test_in_band_error(self):
        body = sse({"error": {"message": "Provider returned error", "code": 502}})
        provider = OpenRouterProvider(client=mock_client(Recorder(body)))

        with pytest.raises(LLMRequestError, match="Provider returned error"):
            provider.create_chat_completion(make_request())

    def test_list_models_parses_catalog(self):
        catalog = {
            "data": [
                {
                    "id": "anthropic/claude-sonnet-4.5",
                    "name": "Claude Sonnet 4.5",
                    "context_length": 200000,
                    "pricing": {"prompt": "0.000003", "completion": "0.000015"},
                },
                {"id": "", "name": "broken"},
                {"id": "meta/llama", "pricing": {"prompt": "n/a"}},
            ]
        }

        def handler(request):
            assert request.url.path.endswith("/models")
            assert request.headers["authorization"] == "Bearer sk-or"
            return httpx.Response(200, json=catalog)

        provider = OpenRouterProvider(client=mock_client(handler))
        models = provider.list_models("sk-or")

        assert [m.id for m in models] == ["anthropic/claude-sonnet-4.5", "meta/llama"]
        assert models[0].context_length == 200000
        assert models[0].pricing.prompt == pytest.approx(0.000003)
        assert models[1].name == "meta/llama"
        assert models[1].pricing.prompt == 0.0


class TestFactory:
    """Test provider construction by type."""

    @pytest.mark.parametrize(
        "provider_type,cls",
        [("anthropic", AnthropicProvider), ("openai", OpenAIProvider), (ProviderType.OPENROUTER, OpenRouterProvider)],
    )
    def test_creates_each_provider(self, provider_type, cls):
        provider = create_llm_provider(provider_type, client=mock_client(Recorder("")))
        assert isinstance(provider, cls)

    def test_unknown_provider(self):
        with pytest.raises(ConfigurationError):
            create_llm_provider("mistral")

    def test_static_catalogs(self):
        assert len(AnthropicProvider(client=mock_client(Recorder(""))).list_models("k")) == 3
        assert len(OpenAIProvider(client=mock_client(Recorder(""))).list_models("k")) == 4
