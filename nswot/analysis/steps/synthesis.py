"""
Cross-source synthesis of extracted signals.
"""

from collections import OrderedDict
from typing import List

import structlog

from nswot.analysis.json_utils import coerce_json_payload, validate_payload
from nswot.analysis.pipeline import CorrectiveRetryStep, PipelineContext, ProgressFn
from nswot.core.exceptions import PipelineError
from nswot.core.models import ExtractionOutput, ExtractionSignal, SynthesisOutput

logger = structlog.get_logger(__name__)

STAGE = "synthesizing"
EMPTY_SYNTHESIS_MARKDOWN = "No signals were extracted, so no synthesis could be performed."


def build_synthesis_system_prompt() -> str:
    return """You are an expert organizational analyst specializing in cross-source synthesis. Your job is to correlate signals from multiple data sources to identify patterns of agreement and conflict.

RULES:
1. Correlate signals that describe the same underlying pattern or issue, even when expressed differently across sources.
2. Mark agreement strength based on how many distinct source types support the correlation: "strong" (3+ source types), "moderate" (2 source types), "weak" (1 source type but multiple signals).
3. Identify conflicts: cases where signals from different sources contradict each other.
4. Produce a synthesis markdown narrative that a SWOT analysis can be built from.
5. Use only the signals provided. Do not invent new findings.
6. The synthesis narrative should highlight cross-source patterns, agreements, and conflicts.

OUTPUT FORMAT:
Respond with a single JSON object wrapped in a ```json code fence. Do not include any text before or after the JSON block."""


def build_signals_section(signals: List[ExtractionSignal]) -> str:
    by_source: "OrderedDict[str, List[ExtractionSignal]]" = OrderedDict()
    for signal in signals:
        by_source.setdefault(signal.source_type, []).append(signal)

    section = ""
    for source_type, grouped in by_source.items():
        section += f"### {source_type.capitalize()} Signals\n\n"
        for i, s in enumerate(grouped, 1):
            section += f'{i}. [{s.category}] {s.signal}\n   Source: {s.source_id}\n   Quote: "{s.quote}"\n\n'
    return section


def build_synthesis_user_prompt(extraction: ExtractionOutput) -> str:
    patterns = (
        "\n".join(f"{i}. {p}" for i, p in enumerate(extraction.key_patterns, 1))
        or "No key patterns identified."
    )
    return f"""## Extracted Signals

{build_signals_section(extraction.signals)}

## Key Patterns Identified

{patterns}

## Task

Synthesize the signals above into correlations. Group signals that describe the same underlying pattern, even if they come from different sources. For each correlation:
- Write a clear claim that captures the correlated finding
- List the supporting signals (use the exact signal text)
- Identify the source types involved
- Assess agreement strength: "strong" (3+ source types corroborate), "moderate" (2 source types), "weak" (1 source type)
- Note any conflicts between signals

Then produce a synthesis narrative in markdown that summarizes all correlations, highlighting cross-source agreements and conflicts. This narrative will feed into a SWOT analysis.

## Output Schema

```json
{{
  "correlations": [
    {{
      "claim": "A synthesized finding that combines related signals",
      "supportingSignals": [
        {{
          "sourceType": "profile" | "jira" | "confluence" | "github" | "codebase",
          "sourceId": "string",
          "signal": "string",
          "category": "theme" | "risk" | "strength" | "concern" | "metric",
          "quote": "string"
        }}
      ],
      "sourceTypes": ["profile", "jira"],
      "agreement": "strong" | "moderate" | "weak",
      "conflicts": ["Any conflicting evidence, or empty array if none"]
    }}
  ],
  "synthesisMarkdown": "## Synthesis\\n\\nA markdown narrative summarizing all correlations..."
}}
```

- Order correlations by agreement strength (strong first)
- The synthesisMarkdown should be a complete narrative suitable for feeding into a SWOT analysis
- Include both agreements and conflicts in the narrative

Synthesize now."""


def parse_synthesis_response(raw_response: str) -> SynthesisOutput:
    payload = coerce_json_payload(raw_response, label="synthesis")
    return validate_payload(SynthesisOutput, payload, label="synthesis")


def build_synthesis_corrective_prompt(parse_error: str) -> str:
    return f"""Your previous response could not be parsed. The error was:

{parse_error}

Please respond again with ONLY a JSON object wrapped in a ```json code fence. The JSON must conform exactly to the synthesis schema:

```json
{{
  "correlations": [
    {{
      "claim": "string",
      "supportingSignals": [
        {{
          "sourceType": "profile" | "jira" | "confluence" | "github" | "codebase",
          "sourceId": "string",
          "signal": "string",
          "category": "theme" | "risk" | "strength" | "concern" | "metric",
          "quote": "string"
        }}
      ],
      "sourceTypes": ["string"],
      "agreement": "strong" | "moderate" | "weak",
      "conflicts": ["string"]
    }}
  ],
  "synthesisMarkdown": "markdown string"
}}
```

Do not include any explanatory text before or after the JSON block."""


class SynthesisStep(CorrectiveRetryStep):
    """Correlates extracted signals across sources. Requires a prior extraction."""

    name = "synthesis"

    def execute(self, context: PipelineContext, on_progress: ProgressFn) -> PipelineContext:
        extraction = context.extraction_output
        if extraction is None:
            raise PipelineError(
                "SynthesisStep requires extraction_output from a prior ExtractionStep."
            )

        if not extraction.signals:
            logger.info("synthesis_skipped", reason="no_signals")
            return context.with_outputs(
                synthesis_output=SynthesisOutput(
                    correlations=[], synthesis_markdown=EMPTY_SYNTHESIS_MARKDOWN
                )
            )

        on_progress(STAGE, "Synthesizing cross-source correlations...")
        on_progress(STAGE, "Sending synthesis request to LLM...")
        synthesis, _ = self.complete_and_parse(
            context,
            on_progress,
            build_synthesis_system_prompt(),
            build_synthesis_user_prompt(extraction),
            parse=parse_synthesis_response,
            corrective_prompt=build_synthesis_corrective_prompt,
            send_stage=STAGE,
            token_message="Synthesizing correlations",
        )

        logger.info("synthesis_completed", correlations=len(synthesis.correlations))
        return context.with_outputs(synthesis_output=synthesis)
