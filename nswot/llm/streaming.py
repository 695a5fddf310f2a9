"""
Server-sent event decoding and stream accumulation shared by every vendor.

Vendors emit different event vocabularies but the same framing: ``data:``
lines carrying small JSON envelopes, separated by blank lines, with ``:``
comment lines as keep-alives. Each provider turns its events into calls on a
:class:`StreamAccumulator`, which owns all mutable state for one stream read.
"""

import json
import time
from email.utils import parsedate_to_datetime
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional

import httpx
import structlog

from nswot.core.exceptions import (
    AuthenticationError,
    EmptyResponseError,
    ErrorCode,
    LLMRequestError,
    ProviderError,
    RateLimitError,
)
from nswot.llm.types import CompletionResponse, FinishReason, ToolCall, Usage

logger = structlog.get_logger(__name__)

TOKEN_REPORT_INTERVAL = 50
DONE_SENTINEL = "[DONE]"

OPENAI_FINISH_REASONS = {
    "stop": FinishReason.STOP,
    "length": FinishReason.LENGTH,
    "tool_calls": FinishReason.TOOL_CALLS,
    "tool-calls": FinishReason.TOOL_CALLS,
    "function_call": FinishReason.TOOL_CALLS,
    "content_filter": FinishReason.ERROR,
    "error": FinishReason.ERROR,
}


def iter_sse_data(lines: Iterable[str]) -> Iterator[str]:
    """
    Yield the payload of each ``data:`` line.

    Every vendor here sends one JSON envelope per data line, so lines are not
    joined across an event. Comments, ``event:``, ``id:`` and ``retry:``
    fields are ignored, as is the ``[DONE]`` sentinel.
    """
    for raw in lines:
        line = raw.strip()
        if not line or line.startswith(":"):
            continue
        name, _, value = line.partition(":")
        if name != "data":
            continue
        payload = value.strip()
        if payload and payload != DONE_SENTINEL:
            yield payload


def decode_event(payload: str, provider: str) -> Optional[Dict[str, Any]]:
    """Parse one event payload, or return None when it is not a JSON object."""
    try:
        event = json.loads(payload)
    except json.JSONDecodeError:
        logger.debug("stream_event_skipped", provider=provider, reason="invalid_json")
        return None
    if not isinstance(event, dict):
        logger.debug("stream_event_skipped", provider=provider, reason="not_an_object")
        return None
    return event


def map_openai_finish_reason(reason: Optional[str]) -> Optional[FinishReason]:
    if not reason:
        return None
    return OPENAI_FINISH_REASONS.get(reason)


class StreamAccumulator:
    """
    Collects the normalized outcome of one streamed completion.

    Tool calls are keyed by the vendor's block index (or call id) and their
    argument strings only ever grow. ``on_chunk`` fires for each text delta;
    ``on_token`` fires every ``TOKEN_REPORT_INTERVAL`` deltas and once more at
    the end if a count is still unreported.
    """

    def __init__(
        self,
        provider: str,
        on_chunk: Optional[Callable[[str], None]] = None,
        on_token: Optional[Callable[[int], None]] = None,
    ):
        self.provider = provider
        self.on_chunk = on_chunk
        self.on_token = on_token

        self.token_count = 0
        self.finish_reason: Optional[FinishReason] = None
        self._last_reported = 0
        self._content: List[str] = []
        self._thinking: List[str] = []
        self._tool_calls: Dict[Any, Dict[str, str]] = {}
        self._input_tokens: Optional[int] = None
        self._output_tokens: Optional[int] = None

    def append_text(self, text: str) -> None:
        if not text:
            return
        self._content.append(text)
        self.token_count += 1

        if self.on_chunk:
            self.on_chunk(text)
        if self.on_token and self.token_count - self._last_reported >= TOKEN_REPORT_INTERVAL:
            self._last_reported = self.token_count
            self.on_token(self.token_count)

    def append_thinking(self, text: str) -> None:
        if text:
            self._thinking.append(text)

    def start_tool_call(self, key: Any, call_id: Optional[str], name: Optional[str]) -> None:
        self._tool_calls[key] = {"id": call_id or "", "name": name or "", "arguments": ""}

    def append_tool_arguments(
        self,
        key: Any,
        fragment: str,
        call_id: Optional[str] = None,
        name: Optional[str] = None,
    ) -> None:
        entry = self._tool_calls.get(key)
        if entry is None:
            if call_id is None and name is None:
                # Fragment for a block that never started
                return
            self.start_tool_call(key, call_id, name)
            entry = self._tool_calls[key]
        else:
            if call_id and not entry["id"]:
                entry["id"] = call_id
            if name and not entry["name"]:
                entry["name"] = name
        entry["arguments"] += fragment or ""

    def set_finish_reason(self, reason: Optional[FinishReason]) -> None:
        self.finish_reason = reason

    def set_usage(self, input_tokens: Optional[int] = None, output_tokens: Optional[int] = None):
        if isinstance(input_tokens, int):
            self._input_tokens = input_tokens
        if isinstance(output_tokens, int):
            self._output_tokens = output_tokens

    def finish(self) -> CompletionResponse:
        """Build the response. Raises EmptyResponseError when nothing usable arrived."""
        if self.on_token and self.token_count > self._last_reported:
            self._last_reported = self.token_count
            self.on_token(self.token_count)

        content = "".join(self._content)
        thinking = "".join(self._thinking)
        tool_calls = [
            ToolCall(id=entry["id"], name=entry["name"], arguments=entry["arguments"])
            for entry in self._tool_calls.values()
        ]

        if not content and not thinking and not tool_calls:
            raise EmptyResponseError(
                f"Empty response from {self.provider}", provider=self.provider
            )

        usage = None
        if self._input_tokens is not None or self._output_tokens is not None:
            usage = Usage(
                input_tokens=self._input_tokens or 0, output_tokens=self._output_tokens or 0
            )

        logger.debug(
            "stream_completed",
            provider=self.provider,
            deltas=self.token_count,
            tool_calls=len(tool_calls),
            finish_reason=self.finish_reason.value if self.finish_reason else None,
        )
        return CompletionResponse(
            content=content,
            finish_reason=self.finish_reason,
            tool_calls=tool_calls,
            thinking=thinking or None,
            usage=usage,
        )


def parse_retry_after(value: Optional[str], now: Optional[float] = None) -> Optional[float]:
    """Seconds to wait from a Retry-After header given as seconds or an HTTP date."""
    if not value:
        return None
    value = value.strip()
    try:
        seconds = float(value)
    except ValueError:
        try:
            when = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            return None
        if when is None:
            return None
        seconds = when.timestamp() - (now if now is not None else time.time())
    return seconds if seconds > 0 else None


def extract_error_detail(response: httpx.Response) -> str:
    """Best-effort human readable message from a vendor error body."""
    try:
        body = response.json()
    except (json.JSONDecodeError, UnicodeDecodeError, httpx.ResponseNotRead):
        return ""
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and isinstance(error.get("message"), str):
            return error["message"]
        if isinstance(error, str):
            return error
        if isinstance(body.get("message"), str):
            return body["message"]
    return ""


def http_error(
    response: httpx.Response,
    provider: str,
    auth_code: ErrorCode = ErrorCode.LLM_AUTH_FAILED,
    rate_limit_code: ErrorCode = ErrorCode.LLM_RATE_LIMITED,
) -> ProviderError:
    """Map a failed HTTP response onto the error taxonomy."""
    status = response.status_code
    detail = extract_error_detail(response)
    retry_after = parse_retry_after(response.headers.get("retry-after"))

    logger.warning(
        "provider_http_error",
        provider=provider,
        status=status,
        retry_after=retry_after,
        detail=detail[:200],
    )

    if status in (401, 403):
        fallback = f"Invalid {provider} API key" if status == 401 else f"{provider} access denied"
        return AuthenticationError(
            detail or fallback, code=auth_code, status_code=status, provider=provider
        )
    if status == 429:
        return RateLimitError(
            detail or f"Rate limited by {provider}",
            code=rate_limit_code,
            status_code=status,
            retry_after=retry_after,
            provider=provider,
        )
    return LLMRequestError(
        detail or f"{provider} returned status {status}",
        status_code=status,
        retry_after=retry_after,
        provider=provider,
    )


def transport_error(error: httpx.TransportError, provider: str) -> LLMRequestError:
    """Map a connection, timeout or protocol failure onto the error taxonomy."""
    if isinstance(error, httpx.ReadTimeout):
        message = f"{provider} stream stalled: no data received before the inactivity timeout"
    elif isinstance(error, httpx.TimeoutException):
        message = f"{provider} request timed out: {error}"
    else:
        message = f"{provider} request failed: {error}"
    logger.warning("provider_transport_error", provider=provider, error_type=type(error).__name__)
    return LLMRequestError(message, network=True, provider=provider)
