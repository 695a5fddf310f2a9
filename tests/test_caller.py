"""
Tests for the retry-wrapped LLM caller used by pipeline steps.
"""

from unittest.mock import Mock

import pytest

from nswot.core.exceptions import AuthenticationError, ErrorCode, LLMRequestError
from nswot.llm.caller import ProviderLLMCaller
from nswot.llm.types import ChatMessage, CompletionResponse, FinishReason
from nswot.utils.reliability import RetryPolicy

MESSAGES = [ChatMessage.system("rules"), ChatMessage.user("question")]


def streaming_provider(*fragments, failures=()):
    """Provider double that streams ``fragments`` through the request callbacks."""
    outcomes = list(failures)

    def create_chat_completion(request):
        if outcomes:
            raise outcomes.pop(0)
        for fragment in fragments:
            if request.on_chunk:
                request.on_chunk(fragment)
        if request.on_token:
            request.on_token(len(fragments))
        return CompletionResponse(content="".join(fragments), finish_reason=FinishReason.STOP)

    provider = Mock()
    provider.name = "openrouter"
    provider.create_chat_completion = Mock(side_effect=create_chat_completion)
    return provider


class TestProviderLLMCaller:
    """Test request building and callback wiring."""

    def test_builds_request_from_settings(self):
        provider = streaming_provider("ok")
        caller = ProviderLLMCaller(provider, "sk-test", max_tokens=512, temperature=0.3, thinking_budget=2048)

        response = caller.call(MESSAGES, "test-model")

        request = provider.create_chat_completion.call_args[0][0]
        assert response.content == "ok"
        assert request.model_id == "test-model"
        assert request.api_key == "sk-test"
        assert request.messages == MESSAGES
        assert (request.max_tokens, request.temperature, request.thinking_budget) == (512, 0.3, 2048)

    def test_default_chunk_listener_sees_fragments(self):
        chunks = []
        caller = ProviderLLMCaller(streaming_provider("Hel", "lo"), "sk-test", on_chunk=chunks.append)

        caller.call(MESSAGES, "m")

        assert chunks == ["Hel", "lo"]

    def test_per_call_chunk_listener_takes_precedence(self):
        default, own, tokens = [], [], []
        caller = ProviderLLMCaller(streaming_provider("a", "b"), "sk-test", on_chunk=default.append)

        caller.call(MESSAGES, "m", on_token=tokens.append, on_chunk=own.append)

        assert own == ["a", "b"]
        assert default == []
        assert tokens == [2]

    def test_transient_failure_retried(self):
        provider = streaming_provider("done", failures=[LLMRequestError("busy", status_code=503)])
        sleep = Mock()
        caller = ProviderLLMCaller(provider, "sk-test", retry_policy=RetryPolicy(jitter=False), sleep=sleep)

        assert caller.call(MESSAGES, "m").content == "done"
        assert provider.create_chat_completion.call_count == 2
        sleep.assert_called_once_with(1.0)

    def test_auth_failure_not_retried(self):
        error = AuthenticationError("bad key", code=ErrorCode.LLM_AUTH_FAILED, status_code=401)
        provider = streaming_provider("never", failures=[error])
        caller = ProviderLLMCaller(provider, "sk-test", sleep=Mock())

        with pytest.raises(AuthenticationError):
            caller.call(MESSAGES, "m")
        assert provider.create_chat_completion.call_count == 1
