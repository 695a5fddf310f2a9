"""
The LLM capability handed to pipeline steps.
"""

import threading
from typing import Callable, List, Optional

import structlog

from nswot.llm.base import LLMProvider
from nswot.llm.types import ChatMessage, CompletionRequest, CompletionResponse
from nswot.utils.reliability import RetryPolicy, call_with_retry

logger = structlog.get_logger(__name__)


class ProviderLLMCaller:
    """
    Calls one provider with a fixed credential and generation settings.

    Transient failures are retried inside; callers only see the final outcome.
    ``on_chunk`` given here receives every text fragment unless a call passes
    its own. Fragments from an attempt that is later retried are not recalled.
    """

    def __init__(
        self,
        provider: LLMProvider,
        api_key: str,
        retry_policy: Optional[RetryPolicy] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        thinking_budget: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
        on_chunk: Optional[Callable[[str], None]] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self.provider = provider
        self.api_key = api_key
        self.retry_policy = retry_policy or RetryPolicy()
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.thinking_budget = thinking_budget
        self.cancel_event = cancel_event
        self.on_chunk = on_chunk
        self._sleep = sleep

    def call(
        self,
        messages: List[ChatMessage],
        model_id: str,
        on_token: Optional[Callable[[int], None]] = None,
        on_chunk: Optional[Callable[[str], None]] = None,
    ) -> CompletionResponse:
        request = CompletionRequest(
            model_id=model_id,
            api_key=self.api_key,
            messages=list(messages),
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            thinking_budget=self.thinking_budget,
            on_chunk=on_chunk or self.on_chunk,
            on_token=on_token,
            cancel_event=self.cancel_event,
        )

        kwargs = {"sleep": self._sleep} if self._sleep else {}
        response = call_with_retry(
            lambda: self.provider.create_chat_completion(request), self.retry_policy, **kwargs
        )

        logger.info(
            "llm_call_completed",
            provider=self.provider.name,
            model=model_id,
            finish_reason=response.finish_reason.value if response.finish_reason else None,
            output_chars=len(response.content),
        )
        return response
