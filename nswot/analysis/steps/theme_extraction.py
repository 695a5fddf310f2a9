"""
Recurring theme extraction, run ahead of generation in themes mode.
"""

from typing import List, Mapping, Optional, Sequence

import structlog

from nswot.analysis.json_utils import coerce_json_payload, validate_payload
from nswot.analysis.pipeline import CorrectiveRetryStep, PipelineContext, ProgressFn
from nswot.analysis.prompt_builder import build_data_sections, build_source_reference, source_type_union
from nswot.analysis.token_budget import TokenBudget, calculate_token_budget
from nswot.core.models import AnonymizedProfile, Theme, ThemeOutput

logger = structlog.get_logger(__name__)

STAGE = "extracting_themes"


def build_theme_system_prompt() -> str:
    return """You are an expert organizational analyst specializing in pattern recognition. Your job is to identify recurring themes: patterns, topics, and concerns that appear across multiple pieces of evidence in organizational data.

RULES:
1. Every theme must cite specific evidence from the provided data. Use the exact sourceId values provided.
2. NEVER invent themes. Only identify patterns that are clearly supported by the data.
3. Focus on themes that are actionable, meaning patterns that inform decision-making.
4. Themes should be distinct from each other. Do not create overlapping themes.
5. A theme should appear in at least 2 pieces of evidence to be worth reporting. Single-mention patterns are not themes.
6. Use only the data provided. Do not use external knowledge.
7. All stakeholder names have been anonymized. Refer to them only by their labels.

OUTPUT FORMAT:
Respond with a single JSON object wrapped in a ```json code fence. Do not include any text before or after the JSON block."""


def build_theme_user_prompt(
    profiles: Sequence[AnonymizedProfile],
    data_sources: Mapping[str, Optional[str]],
    budget: TokenBudget,
) -> str:
    return f"""{build_data_sections(profiles, data_sources, budget, include_notes=False)}

{build_source_reference(profiles, data_sources)}

## Task

Identify the recurring themes across all the data above. A theme is a pattern or topic that appears in multiple evidence sources, e.g. "on-call burnout", "deploy velocity concerns", "cross-team coordination gaps".

## Output Schema

```json
{{
  "themes": [
    {{
      "label": "Short theme name (3-6 words)",
      "description": "A paragraph explaining what this theme is and why it matters",
      "evidenceRefs": [
        {{
          "sourceType": {source_type_union(data_sources)},
          "sourceId": "e.g. profile:Stakeholder A or jira:PROJ-123",
          "quote": "Direct quote or specific data point"
        }}
      ],
      "frequency": 2
    }}
  ]
}}
```

- `frequency` is the number of distinct evidence sources that reference this theme
- `sourceTypes` will be computed from evidenceRefs, so do NOT include it in your response
- Order themes by frequency (highest first)

Identify themes now."""


def parse_theme_response(raw_response: str) -> List[Theme]:
    payload = coerce_json_payload(raw_response, label="theme extraction")
    return validate_payload(ThemeOutput, payload, label="theme extraction").themes


def build_theme_corrective_prompt(parse_error: str) -> str:
    return f"""Your previous response could not be parsed. The error was:

{parse_error}

Please respond again with ONLY a JSON object wrapped in a ```json code fence. The JSON must conform exactly to the theme schema:

```json
{{
  "themes": [
    {{
      "label": "string",
      "description": "string",
      "evidenceRefs": [
        {{
          "sourceType": "profile" | "jira" | "confluence" | "github" | "codebase",
          "sourceId": "string",
          "quote": "string"
        }}
      ],
      "frequency": 2
    }}
  ]
}}
```

Every theme needs at least one evidence reference. Do not include any explanatory text before or after the JSON block."""


class ThemeExtractionStep(CorrectiveRetryStep):
    """Identifies recurring, evidence-backed themes across all sources."""

    name = "theme_extraction"

    def execute(self, context: PipelineContext, on_progress: ProgressFn) -> PipelineContext:
        on_progress(STAGE, "Identifying recurring themes...")

        budget = calculate_token_budget(context.context_window, context.connected_sources)
        system_prompt = build_theme_system_prompt()
        user_prompt = build_theme_user_prompt(context.profiles, context.data_sources, budget)

        on_progress(STAGE, "Sending theme extraction request to LLM...")
        themes, _ = self.complete_and_parse(
            context,
            on_progress,
            system_prompt,
            user_prompt,
            parse=parse_theme_response,
            corrective_prompt=build_theme_corrective_prompt,
            send_stage=STAGE,
            token_message="Identifying themes",
        )

        logger.info("themes_extracted", themes=len(themes))
        return context.with_outputs(themes=themes)
