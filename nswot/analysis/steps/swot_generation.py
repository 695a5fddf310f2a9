"""
SWOT generation: the final step of every pipeline mode.
"""

import structlog

from nswot.analysis.evidence_validator import compute_source_coverage, validate_evidence
from nswot.analysis.pipeline import CorrectiveRetryStep, PipelineContext, ProgressFn
from nswot.analysis.prompt_builder import build_corrective_prompt, build_system_prompt, build_user_prompt
from nswot.analysis.quality_metrics import compute_quality_metrics
from nswot.analysis.response_parser import parse_analysis_response
from nswot.analysis.token_budget import calculate_token_budget

logger = structlog.get_logger(__name__)


class SwotGenerationStep(CorrectiveRetryStep):
    """
    Builds the role-tailored prompt, parses the SWOT reply and scores it.

    Synthesis markdown and themes from earlier steps are appended to the prompt
    when present. Unknown citations become a warning on the context; they
    never fail the step.
    """

    name = "swot_generation"

    def execute(self, context: PipelineContext, on_progress: ProgressFn) -> PipelineContext:
        on_progress("building_prompt", "Constructing analysis prompt...")
        budget = calculate_token_budget(context.context_window, context.connected_sources)
        synthesis = context.synthesis_output

        system_prompt = build_system_prompt()
        user_prompt = build_user_prompt(
            context.role,
            context.profiles,
            context.data_sources,
            budget,
            synthesis_markdown=synthesis.synthesis_markdown if synthesis else None,
            themes=context.themes,
        )

        on_progress("sending", "Sending to LLM, waiting for first tokens...")
        parsed, response = self.complete_and_parse(
            context,
            on_progress,
            system_prompt,
            user_prompt,
            parse=parse_analysis_response,
            corrective_prompt=lambda error: build_corrective_prompt(error, context.data_sources),
            send_stage="sending",
            parse_stage="parsing",
        )

        on_progress("validating", "Validating evidence references...")
        snapshot = context.snapshot
        validation = validate_evidence(parsed.swot_output, snapshot)
        warning = None
        if not validation.valid:
            warning = f"Evidence validation warnings: {'; '.join(validation.warnings)}"

        quality_metrics = compute_quality_metrics(parsed.swot_output)
        source_coverage = compute_source_coverage(parsed.swot_output, snapshot)

        logger.info(
            "swot_generated",
            items=quality_metrics.total_items,
            quality_score=quality_metrics.quality_score,
            evidence_warnings=len(validation.warnings),
        )
        return context.with_outputs(
            swot_output=parsed.swot_output,
            summaries_output=parsed.summaries_output,
            quality_metrics=quality_metrics,
            source_coverage=source_coverage,
            raw_llm_response=response.content,
            warning=warning,
        )
