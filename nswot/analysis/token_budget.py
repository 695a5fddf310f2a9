"""
Token budget allocation for prompt sections.

All functions are pure. Budgets are recomputed for every request.
"""

import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, Mapping

from nswot.core.models import DATA_SOURCES

SYSTEM_PROMPT_OVERHEAD = 500
SCHEMA_OVERHEAD = 500
CHARS_PER_TOKEN = 4
OUTPUT_RESERVE_CAP = 4096
OUTPUT_RESERVE_RATIO = 0.1

PROFILES_SHARE = 0.4
SOURCES_SHARE = 0.5
BUFFER_SHARE = 0.1

TRUNCATION_MARKER = "\n[...truncated]"


@dataclass(frozen=True)
class TokenBudget:
    profiles: int
    buffer: int
    output_reserve: int
    total: int
    sources: Mapping[str, int] = field(default_factory=dict)

    def for_source(self, source: str) -> int:
        return self.sources.get(source, 0)

    @property
    def allocated(self) -> int:
        return self.profiles + sum(self.sources.values()) + self.buffer + self.output_reserve


def calculate_token_budget(context_window: int, connected_sources: Iterable[str] = ()) -> TokenBudget:
    """
    Split a context window into per-section token ceilings.

    Profiles get 40% of what remains after the output reserve and prompt
    overhead, a 10% buffer is held back, and the remaining half is shared
    evenly by the connected sources.
    """
    if context_window < 0:
        raise ValueError("context_window must not be negative")

    output_reserve = min(OUTPUT_RESERVE_CAP, math.floor(context_window * OUTPUT_RESERVE_RATIO))
    available = max(
        0, context_window - output_reserve - SYSTEM_PROMPT_OVERHEAD - SCHEMA_OVERHEAD
    )

    connected = []
    for source in connected_sources:
        if source not in DATA_SOURCES:
            raise ValueError(f"unknown data source: {source}")
        if source not in connected:
            connected.append(source)

    sources: Dict[str, int] = {}
    if connected:
        per_source = math.floor(math.floor(available * SOURCES_SHARE) / len(connected))
        sources = {source: per_source for source in connected}

    return TokenBudget(
        profiles=math.floor(available * PROFILES_SHARE),
        buffer=math.floor(available * BUFFER_SHARE),
        output_reserve=output_reserve,
        total=context_window,
        sources=sources,
    )


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def trim_to_token_budget(text: str, max_tokens: int) -> str:
    """Cut ``text`` to ``max_tokens`` worth of characters and mark the cut."""
    max_chars = max(0, max_tokens) * CHARS_PER_TOKEN
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + TRUNCATION_MARKER


def fit_section(text: str, budget: int) -> str:
    if estimate_tokens(text) > budget:
        return trim_to_token_budget(text, budget)
    return text


def is_truncated(text: str) -> bool:
    return text.endswith(TRUNCATION_MARKER)
