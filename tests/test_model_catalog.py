"""
Tests for the cached, breaker-guarded model catalog and credential lookup.
"""

from unittest.mock import Mock

import pytest

from nswot.core.exceptions import (
    AuthenticationError,
    CircuitOpenError,
    ConfigurationError,
    ErrorCode,
    LLMRequestError,
)
from nswot.llm.types import LlmModel, ModelPricing
from nswot.services.credentials import StaticCredentialStore, require_api_key
from nswot.services.model_catalog import ModelCatalog
from nswot.utils.reliability import RetryPolicy, get_circuit_breaker_status

MODELS = [
    LlmModel(id="m-1", name="Model One", context_length=8000, pricing=ModelPricing(0.001, 0.002)),
    LlmModel(id="m-2", name="Model Two", context_length=32000, pricing=ModelPricing(0.003, 0.006)),
]


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def make_provider(name="openrouter", **kwargs):
    provider = Mock(**kwargs)
    provider.name = name
    return provider


def make_catalog(provider, keys=None, **kwargs):
    params = dict(
        retry_policy=RetryPolicy(max_retries=1, jitter=False),
        breaker_threshold=2,
        breaker_cooldown=60.0,
        cache_ttl=300.0,
        clock=FakeClock(),
        sleep=Mock(),
    )
    params.update(kwargs)
    store = StaticCredentialStore(keys if keys is not None else {"openrouter": "sk-or", "openai": "sk-oa"})
    return ModelCatalog(provider, store, **params)


class TestCredentials:
    """Test API key lookup."""

    def test_require_api_key(self):
        store = StaticCredentialStore({"openai": "sk-1"})
        assert require_api_key(store, "openai") == "sk-1"

    def test_missing_key(self):
        with pytest.raises(ConfigurationError) as exc_info:
            require_api_key(StaticCredentialStore({}), "anthropic")

        assert exc_info.value.code == ErrorCode.SETTINGS_KEY_MISSING
        assert "ANTHROPIC_API_KEY" in exc_info.value.message


class TestModelCatalog:
    """Test caching, retry and the list_models breaker."""

    def test_lists_and_caches(self):
        provider = make_provider(list_models=Mock(return_value=MODELS))
        catalog = make_catalog(provider)

        assert [m.id for m in catalog.list_models()] == ["m-1", "m-2"]
        assert catalog.find("m-2").context_length == 32000
        assert catalog.find("missing") is None

        provider.list_models.assert_called_once_with("sk-or")

    def test_cache_expires(self):
        provider = make_provider(list_models=Mock(return_value=MODELS))
        clock = FakeClock()
        catalog = make_catalog(provider, clock=clock, cache_ttl=10.0)

        catalog.list_models()
        clock.now = 11.0
        catalog.list_models()

        assert provider.list_models.call_count == 2

    def test_force_refresh_bypasses_cache(self):
        provider = make_provider(list_models=Mock(return_value=MODELS))
        catalog = make_catalog(provider)

        catalog.list_models()
        catalog.list_models(force_refresh=True)

        assert provider.list_models.call_count == 2

    def test_switching_provider_drops_cache(self):
        first = make_provider("openrouter", list_models=Mock(return_value=MODELS))
        second = make_provider("openai", list_models=Mock(return_value=MODELS[:1]))
        catalog = make_catalog(first)

        catalog.list_models()
        catalog.set_provider(second)

        assert [m.id for m in catalog.list_models()] == ["m-1"]
        second.list_models.assert_called_once_with("sk-oa")

    def test_transient_failure_retried(self):
        provider = make_provider(
            list_models=Mock(side_effect=[LLMRequestError("busy", status_code=503), MODELS])
        )
        catalog = make_catalog(provider)

        assert len(catalog.list_models()) == 2
        assert provider.list_models.call_count == 2

    def test_auth_failure_not_retried_and_does_not_trip(self):
        provider = make_provider(
            list_models=Mock(
                side_effect=AuthenticationError("bad key", code=ErrorCode.LLM_AUTH_FAILED, status_code=401)
            )
        )
        catalog = make_catalog(provider)

        for _ in range(3):
            with pytest.raises(AuthenticationError):
                catalog.list_models()

        assert provider.list_models.call_count == 3
        assert catalog.breaker.state.value == "closed"

    def test_breaker_opens_after_repeated_outages(self):
        provider = make_provider(list_models=Mock(side_effect=LLMRequestError("down", status_code=500)))
        catalog = make_catalog(provider)

        for _ in range(2):
            with pytest.raises(LLMRequestError):
                catalog.list_models()

        with pytest.raises(CircuitOpenError):
            catalog.list_models()

        # 2 calls x (1 + 1 retry); the third never reached the provider
        assert provider.list_models.call_count == 4
        assert get_circuit_breaker_status()["list_models:openrouter"]["state"] == "open"

    def test_missing_key_raises_before_calling_provider(self):
        provider = make_provider(list_models=Mock(return_value=MODELS))
        catalog = make_catalog(provider, keys={})

        with pytest.raises(ConfigurationError):
            catalog.list_models()
        provider.list_models.assert_not_called()
