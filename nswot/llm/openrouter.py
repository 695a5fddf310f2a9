"""
OpenRouter provider: OpenAI-compatible wire with a live model catalog.
"""

from typing import Any, Dict, List, Optional

import structlog

from nswot.llm.base import DEFAULT_MAX_TOKENS
from nswot.llm.openai import OpenAICompatibleProvider
from nswot.llm.types import CompletionRequest, LlmModel, ModelPricing

logger = structlog.get_logger(__name__)

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
CATALOG_TIMEOUT = 30.0

ATTRIBUTION_HEADERS = {
    "HTTP-Referer": "https://nswot.app",
    "X-Title": "nswot",
}


def _price(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def parse_catalog_entry(entry: Dict[str, Any]) -> Optional[LlmModel]:
    model_id = entry.get("id")
    if not isinstance(model_id, str) or not model_id:
        return None
    pricing = entry.get("pricing") or {}
    try:
        context_length = int(entry.get("context_length") or 0)
    except (TypeError, ValueError):
        context_length = 0
    return LlmModel(
        id=model_id,
        name=entry.get("name") or model_id,
        context_length=context_length,
        pricing=ModelPricing(
            prompt=_price(pricing.get("prompt")),
            completion=_price(pricing.get("completion")),
        ),
    )


class OpenRouterProvider(OpenAICompatibleProvider):
    """Streams completions through OpenRouter."""

    name = "openrouter"
    reasoning_fields = ("reasoning",)

    def __init__(self, *args, base_url: str = OPENROUTER_BASE_URL, **kwargs):
        super().__init__(*args, **kwargs)
        self.base_url = base_url

    def list_models(self, api_key: str) -> List[LlmModel]:
        body = self._get_json(
            f"{self.base_url}/models",
            headers={"authorization": f"Bearer {api_key}"},
            timeout=CATALOG_TIMEOUT,
        )
        entries = body.get("data") if isinstance(body, dict) else None

        models = []
        for entry in entries or []:
            if isinstance(entry, dict):
                model = parse_catalog_entry(entry)
                if model is not None:
                    models.append(model)

        logger.info("openrouter_catalog_loaded", models=len(models))
        return models

    def build_headers(self, request: CompletionRequest) -> Dict[str, str]:
        headers = super().build_headers(request)
        headers.update(ATTRIBUTION_HEADERS)
        return headers

    def apply_generation_options(self, body: Dict[str, Any], request: CompletionRequest) -> None:
        body["max_tokens"] = request.max_tokens or DEFAULT_MAX_TOKENS
        if request.temperature is not None:
            body["temperature"] = request.temperature
        if request.thinking_budget and request.thinking_budget > 0:
            body["reasoning"] = {"max_tokens": request.thinking_budget}
