"""
LLM provider interface and the shared streaming HTTP transport.
"""

import json
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

import httpx
import structlog

from nswot.core.exceptions import ErrorCode, LLMRequestError, RequestCancelledError
from nswot.llm.streaming import StreamAccumulator, decode_event, http_error, iter_sse_data, transport_error
from nswot.llm.types import CompletionRequest, CompletionResponse, LlmModel

logger = structlog.get_logger(__name__)

DEFAULT_CONNECT_TIMEOUT = 30.0
DEFAULT_STREAM_IDLE_TIMEOUT = 120.0
DEFAULT_MAX_TOKENS = 4096

EventHandler = Callable[[Dict[str, Any], StreamAccumulator], None]


class LLMProvider(ABC):
    """One chat-completion vendor behind a common contract."""

    name: str = ""

    @abstractmethod
    def list_models(self, api_key: str) -> List[LlmModel]:
        """Models this vendor offers to the given credential."""

    @abstractmethod
    def create_chat_completion(self, request: CompletionRequest) -> CompletionResponse:
        """Stream one completion and return its normalized result."""

    def close(self) -> None:
        pass


class StreamingHTTPProvider(LLMProvider):
    """
    Base for vendors reached over HTTP with server-sent event streams.

    The connect timeout bounds connection establishment; the read timeout is
    the inactivity limit between chunks once the stream is open.
    """

    auth_error_code = ErrorCode.LLM_AUTH_FAILED
    rate_limit_error_code = ErrorCode.LLM_RATE_LIMITED

    def __init__(
        self,
        client: Optional[httpx.Client] = None,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        stream_idle_timeout: float = DEFAULT_STREAM_IDLE_TIMEOUT,
    ):
        self._owns_client = client is None
        self.client = client or httpx.Client(
            timeout=httpx.Timeout(
                connect=connect_timeout,
                read=stream_idle_timeout,
                write=connect_timeout,
                pool=connect_timeout,
            )
        )

    def close(self) -> None:
        if self._owns_client:
            self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def _stream_completion(
        self,
        url: str,
        headers: Dict[str, str],
        body: Dict[str, Any],
        request: CompletionRequest,
        handle_event: EventHandler,
    ) -> CompletionResponse:
        """POST ``body`` and feed each decoded event to ``handle_event``."""
        accumulator = StreamAccumulator(self.name, request.on_chunk, request.on_token)
        self._check_cancelled(request)

        logger.debug(
            "provider_request_started",
            provider=self.name,
            model=request.model_id,
            messages=len(request.messages),
            tools=len(request.tools),
        )

        try:
            with self.client.stream("POST", url, headers=headers, json=body) as response:
                if response.status_code >= 400:
                    response.read()
                    raise http_error(
                        response,
                        self.name,
                        auth_code=self.auth_error_code,
                        rate_limit_code=self.rate_limit_error_code,
                    )

                for payload in iter_sse_data(response.iter_lines()):
                    self._check_cancelled(request)
                    event = decode_event(payload, self.name)
                    if event is not None:
                        handle_event(event, accumulator)
        except httpx.TransportError as e:
            raise transport_error(e, self.name) from e

        return accumulator.finish()

    def _get_json(self, url: str, headers: Dict[str, str], timeout: float) -> Any:
        """Non-streaming GET used for catalog calls."""
        try:
            response = self.client.get(url, headers=headers, timeout=timeout)
        except httpx.TransportError as e:
            raise transport_error(e, self.name) from e

        if response.status_code >= 400:
            raise http_error(
                response,
                self.name,
                auth_code=self.auth_error_code,
                rate_limit_code=self.rate_limit_error_code,
            )
        try:
            return response.json()
        except json.JSONDecodeError as e:
            raise LLMRequestError(
                f"{self.name} returned an invalid JSON body",
                status_code=response.status_code,
                provider=self.name,
            ) from e

    def _check_cancelled(self, request: CompletionRequest) -> None:
        if request.cancel_event is not None and request.cancel_event.is_set():
            raise RequestCancelledError(f"{self.name} request cancelled", provider=self.name)
