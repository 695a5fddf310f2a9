"""
Model catalog service.

Lists the active provider's models behind a shared circuit breaker, with retry
inside the breaker and a TTL cache in front of both.
"""

import time
from typing import Callable, List, Optional, Tuple

import structlog

from nswot.core.config import Settings, get_settings
from nswot.llm.base import LLMProvider
from nswot.llm.types import LlmModel
from nswot.services.credentials import CredentialStore, require_api_key
from nswot.utils.reliability import (
    CircuitBreaker,
    RetryPolicy,
    call_with_retry,
    get_circuit_breaker,
)

logger = structlog.get_logger(__name__)


class ModelCatalog:
    """Cached, breaker-guarded model listing for one provider at a time."""

    def __init__(
        self,
        provider: LLMProvider,
        credentials: CredentialStore,
        retry_policy: Optional[RetryPolicy] = None,
        breaker_threshold: int = 5,
        breaker_cooldown: float = 60.0,
        cache_ttl: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.credentials = credentials
        self.retry_policy = retry_policy or RetryPolicy()
        self.breaker_threshold = breaker_threshold
        self.breaker_cooldown = breaker_cooldown
        self.cache_ttl = cache_ttl
        self._clock = clock
        self._sleep = sleep
        self._cache: Optional[Tuple[float, List[LlmModel]]] = None
        self.provider = provider

    @classmethod
    def from_settings(
        cls, provider: LLMProvider, credentials: CredentialStore, settings: Optional[Settings] = None
    ) -> "ModelCatalog":
        config = (settings or get_settings()).resilience
        return cls(
            provider,
            credentials,
            retry_policy=RetryPolicy(
                max_retries=config.max_retries,
                base_delay=config.retry_base_delay,
                max_delay=config.retry_max_delay,
                jitter=config.retry_jitter,
            ),
            breaker_threshold=config.breaker_failure_threshold,
            breaker_cooldown=config.breaker_recovery_timeout,
            cache_ttl=config.model_cache_ttl,
        )

    @property
    def breaker(self) -> CircuitBreaker:
        return get_circuit_breaker(
            f"list_models:{self.provider.name}", self.breaker_threshold, self.breaker_cooldown
        )

    def set_provider(self, provider: LLMProvider) -> None:
        """Switch providers; cached models from the old one are dropped."""
        if provider.name != self.provider.name:
            self.invalidate()
        self.provider = provider

    def invalidate(self) -> None:
        self._cache = None

    def list_models(self, force_refresh: bool = False) -> List[LlmModel]:
        if not force_refresh and self._cache is not None:
            fetched_at, models = self._cache
            if self._clock() - fetched_at < self.cache_ttl:
                return list(models)

        api_key = require_api_key(self.credentials, self.provider.name)
        models = self.breaker.call(
            call_with_retry,
            lambda: self.provider.list_models(api_key),
            self.retry_policy,
            sleep=self._sleep,
        )

        self._cache = (self._clock(), list(models))
        logger.info("model_catalog_refreshed", provider=self.provider.name, models=len(models))
        return list(models)

    def find(self, model_id: str) -> Optional[LlmModel]:
        return next((m for m in self.list_models() if m.id == model_id), None)
