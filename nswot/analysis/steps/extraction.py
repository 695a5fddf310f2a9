"""
Signal extraction: the first stage of the multi-step pipeline.
"""

from typing import Mapping, Optional, Sequence

import structlog

from nswot.analysis.json_utils import coerce_json_payload, validate_payload
from nswot.analysis.pipeline import CorrectiveRetryStep, PipelineContext, ProgressFn
from nswot.analysis.prompt_builder import build_data_sections, build_source_reference, source_type_union
from nswot.analysis.token_budget import TokenBudget, calculate_token_budget
from nswot.core.models import AnonymizedProfile, ExtractionOutput

logger = structlog.get_logger(__name__)

STAGE = "extracting"


def build_extraction_system_prompt() -> str:
    return """You are an expert organizational analyst specializing in signal extraction. Your job is to systematically extract key signals, patterns, risks, strengths, concerns, and metrics from organizational data.

RULES:
1. Extract specific, concrete signals from the provided data. Each signal must cite a specific source with exact sourceId.
2. NEVER invent signals. Only extract patterns clearly present in the data.
3. Categorize each signal as one of: "theme" (recurring pattern), "risk" (potential problem), "strength" (positive finding), "concern" (stakeholder worry), or "metric" (quantitative observation).
4. Use the exact sourceId values provided. Do not modify or fabricate sourceIds.
5. Include a direct quote or specific data point as evidence for each signal.
6. Also identify high-level key patterns: brief phrases summarizing the most important cross-cutting observations.
7. Use only the data provided. Do not use external knowledge.
8. All stakeholder names have been anonymized. Refer to them only by their labels.

OUTPUT FORMAT:
Respond with a single JSON object wrapped in a ```json code fence. Do not include any text before or after the JSON block."""


def build_extraction_user_prompt(
    profiles: Sequence[AnonymizedProfile],
    data_sources: Mapping[str, Optional[str]],
    budget: TokenBudget,
) -> str:
    return f"""{build_data_sections(profiles, data_sources, budget, include_notes=False)}

{build_source_reference(profiles, data_sources, subject="signal you extract")}

## Task

Extract all key signals from the data above. A signal is a specific observation, pattern, risk, strength, concern, or metric found in the data. Be thorough and capture every meaningful data point.

## Output Schema

```json
{{
  "signals": [
    {{
      "sourceType": {source_type_union(data_sources)},
      "sourceId": "e.g. profile:Stakeholder A or jira:PROJ-123",
      "signal": "A concise statement of the extracted signal",
      "category": "theme" | "risk" | "strength" | "concern" | "metric",
      "quote": "Direct quote or specific data point supporting this signal"
    }}
  ],
  "keyPatterns": [
    "Brief phrase summarizing a cross-cutting pattern (e.g., 'delivery velocity declining', 'strong testing culture')"
  ]
}}
```

- Extract signals from ALL available data sources
- Each signal should be specific and grounded in evidence
- keyPatterns should summarize the 3-8 most important high-level observations
- Order signals by importance within each source type

Extract signals now."""


def parse_extraction_response(raw_response: str) -> ExtractionOutput:
    payload = coerce_json_payload(raw_response, label="extraction")
    return validate_payload(ExtractionOutput, payload, label="extraction")


def build_extraction_corrective_prompt(parse_error: str) -> str:
    return f"""Your previous response could not be parsed. The error was:

{parse_error}

Please respond again with ONLY a JSON object wrapped in a ```json code fence. The JSON must conform exactly to the extraction schema:

```json
{{
  "signals": [
    {{
      "sourceType": "profile" | "jira" | "confluence" | "github" | "codebase",
      "sourceId": "string",
      "signal": "string",
      "category": "theme" | "risk" | "strength" | "concern" | "metric",
      "quote": "string"
    }}
  ],
  "keyPatterns": ["string"]
}}
```

Do not include any explanatory text before or after the JSON block."""


class ExtractionStep(CorrectiveRetryStep):
    """Extracts categorized signals and key patterns from the raw data."""

    name = "extraction"

    def execute(self, context: PipelineContext, on_progress: ProgressFn) -> PipelineContext:
        on_progress(STAGE, "Extracting signals from data sources...")

        budget = calculate_token_budget(context.context_window, context.connected_sources)
        system_prompt = build_extraction_system_prompt()
        user_prompt = build_extraction_user_prompt(context.profiles, context.data_sources, budget)

        on_progress(STAGE, "Sending extraction request to LLM...")
        extraction, _ = self.complete_and_parse(
            context,
            on_progress,
            system_prompt,
            user_prompt,
            parse=parse_extraction_response,
            corrective_prompt=build_extraction_corrective_prompt,
            send_stage=STAGE,
            token_message="Extracting signals",
        )

        logger.info(
            "extraction_completed",
            signals=len(extraction.signals),
            key_patterns=len(extraction.key_patterns),
        )
        return context.with_outputs(extraction_output=extraction)
