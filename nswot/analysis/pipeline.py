"""
Analysis pipeline: the context threaded through steps and the orchestrator
that runs them.

Steps never mutate a context; each returns a copy with its own outputs set.
An output field, once set, is read-only for every later step.
"""

import dataclasses
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Iterable, List, Mapping, Optional, Protocol, Tuple, TypeVar

import structlog
from structlog.contextvars import bound_contextvars

from nswot.analysis.prompt_builder import annotate_parse_error
from nswot.core.exceptions import ConfigurationError, LLMParseError, PipelineError
from nswot.core.models import (
    AnalysisSnapshot,
    AnonymizedProfile,
    ExtractionOutput,
    QualityMetrics,
    SourceCoverage,
    SummariesOutput,
    SwotOutput,
    SynthesisOutput,
    Theme,
)
from nswot.llm.types import ChatMessage, CompletionResponse

logger = structlog.get_logger(__name__)

T = TypeVar("T")

ProgressFn = Callable[[str, str], None]

PIPELINE_MODES = ("single", "multi_step", "themes")


class LLMCaller(Protocol):
    """What a step needs to talk to a model."""

    def call(
        self,
        messages: List[ChatMessage],
        model_id: str,
        on_token: Optional[Callable[[int], None]] = None,
        on_chunk: Optional[Callable[[str], None]] = None,
    ) -> CompletionResponse:
        ...


OUTPUT_FIELDS = (
    "extraction_output",
    "synthesis_output",
    "themes",
    "swot_output",
    "summaries_output",
    "quality_metrics",
    "source_coverage",
    "raw_llm_response",
    "warning",
)


@dataclass(frozen=True)
class PipelineContext:
    # Inputs
    analysis_id: str
    role: str
    model_id: str
    context_window: int
    profiles: List[AnonymizedProfile]
    data_sources: Mapping[str, Optional[str]]
    connected_sources: List[str]
    llm_caller: LLMCaller

    # Outputs
    extraction_output: Optional[ExtractionOutput] = None
    synthesis_output: Optional[SynthesisOutput] = None
    themes: Optional[List[Theme]] = None
    swot_output: Optional[SwotOutput] = None
    summaries_output: Optional[SummariesOutput] = None
    quality_metrics: Optional[QualityMetrics] = None
    source_coverage: Optional[List[SourceCoverage]] = None
    raw_llm_response: Optional[str] = None
    warning: Optional[str] = None

    @classmethod
    def from_snapshot(
        cls,
        snapshot: AnalysisSnapshot,
        *,
        analysis_id: str,
        role: str,
        model_id: str,
        context_window: int,
        llm_caller: LLMCaller,
    ) -> "PipelineContext":
        return cls(
            analysis_id=analysis_id,
            role=role,
            model_id=model_id,
            context_window=context_window,
            profiles=list(snapshot.profiles),
            data_sources=dict(snapshot.sources),
            connected_sources=snapshot.connected_sources,
            llm_caller=llm_caller,
        )

    @property
    def snapshot(self) -> AnalysisSnapshot:
        return AnalysisSnapshot(profiles=list(self.profiles), sources=dict(self.data_sources))

    def with_outputs(self, **outputs) -> "PipelineContext":
        """Copy of this context with new output fields; already-set fields are read-only."""
        for name in outputs:
            if name not in OUTPUT_FIELDS:
                raise PipelineError(f"'{name}' is not a pipeline output field")
            if getattr(self, name) is not None:
                raise PipelineError(f"'{name}' was already set by an earlier step")
        return dataclasses.replace(self, **outputs)


class PipelineStep(ABC):
    """One stage of the analysis. Steps do not know their position in the pipeline."""

    name: str = ""

    @abstractmethod
    def execute(self, context: PipelineContext, on_progress: ProgressFn) -> PipelineContext:
        """Return a new context with this step's outputs populated."""


class CorrectiveRetryStep(PipelineStep):
    """
    Step that asks the model for JSON and recovers once from a bad reply.

    A reply that fails to parse is answered with one corrective prompt carrying
    the literal parse error; the full conversation is replayed. A second parse
    failure is terminal.
    """

    MAX_ATTEMPTS = 2

    def complete_and_parse(
        self,
        context: PipelineContext,
        on_progress: ProgressFn,
        system_prompt: str,
        user_prompt: str,
        parse: Callable[[str], T],
        corrective_prompt: Callable[[str], str],
        send_stage: str,
        parse_stage: Optional[str] = None,
        token_message: str = "Generating response",
    ) -> Tuple[T, CompletionResponse]:
        parse_stage = parse_stage or send_stage

        def on_token(token_count: int) -> None:
            on_progress(send_stage, f"{token_message}: {token_count:,} tokens so far...")

        messages = [ChatMessage.system(system_prompt), ChatMessage.user(user_prompt)]

        for attempt in range(1, self.MAX_ATTEMPTS + 1):
            response = context.llm_caller.call(messages, context.model_id, on_token)

            on_progress(
                parse_stage,
                "Parsing LLM response..." if attempt == 1 else "Parsing corrected response...",
            )
            try:
                return parse(response.content), response
            except LLMParseError as e:
                logger.warning(
                    "llm_response_unparseable",
                    step=self.name,
                    attempt=attempt,
                    error=e.message,
                    path=e.path,
                    finish_reason=response.finish_reason.value if response.finish_reason else None,
                )
                if attempt == self.MAX_ATTEMPTS:
                    raise

                on_progress(send_stage, "Retrying with corrective prompt...")
                messages = [
                    ChatMessage.system(system_prompt),
                    ChatMessage.user(user_prompt),
                    ChatMessage.assistant(response.content),
                    ChatMessage.user(
                        corrective_prompt(annotate_parse_error(e.message, response.finish_reason))
                    ),
                ]

        raise PipelineError(f"{self.name} exhausted its attempts without a result")


def _ignore_progress(stage: str, message: str) -> None:
    pass


class AnalysisOrchestrator:
    """Runs steps in order; a failing step aborts the run with its own error."""

    def __init__(self, steps: Optional[Iterable[PipelineStep]] = None):
        self._steps: List[PipelineStep] = list(steps or [])

    @property
    def steps(self) -> Tuple[PipelineStep, ...]:
        return tuple(self._steps)

    def register_step(self, step: PipelineStep) -> "AnalysisOrchestrator":
        self._steps.append(step)
        return self

    def run(self, context: PipelineContext, on_progress: Optional[ProgressFn] = None) -> PipelineContext:
        on_progress = on_progress or _ignore_progress

        with bound_contextvars(analysis_id=context.analysis_id):
            logger.info(
                "pipeline_started",
                steps=[step.name for step in self._steps],
                model=context.model_id,
                role=context.role,
            )
            for step in self._steps:
                started = time.perf_counter()
                try:
                    context = step.execute(context, on_progress)
                except Exception as e:
                    logger.error(
                        "pipeline_step_failed",
                        step=step.name,
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    raise
                logger.info(
                    "pipeline_step_completed",
                    step=step.name,
                    duration_ms=round((time.perf_counter() - started) * 1000, 1),
                )
            logger.info("pipeline_completed", warning=bool(context.warning))

        return context


def build_pipeline(mode: str = "multi_step") -> AnalysisOrchestrator:
    """
    Compose the steps for a pipeline mode.

    ``single`` runs generation only; ``multi_step`` runs extraction, synthesis
    and generation; ``themes`` runs theme extraction then generation.
    """
    from nswot.analysis.steps import (
        ExtractionStep,
        SwotGenerationStep,
        SynthesisStep,
        ThemeExtractionStep,
    )

    compositions = {
        "single": lambda: [SwotGenerationStep()],
        "multi_step": lambda: [ExtractionStep(), SynthesisStep(), SwotGenerationStep()],
        "themes": lambda: [ThemeExtractionStep(), SwotGenerationStep()],
    }
    if mode not in compositions:
        raise ConfigurationError(
            f"Unknown pipeline mode: {mode}", details={"supported": list(PIPELINE_MODES)}
        )
    return AnalysisOrchestrator(compositions[mode]())
