"""
Main application entry point for nswot.

Provides the CLI for running analyses, previewing prompts and inspecting
provider state.
"""

import json
import sys
from pathlib import Path
from typing import Optional

import click
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from nswot.analysis import build_pipeline
from nswot.analysis.pipeline import PIPELINE_MODES, PipelineContext
from nswot.analysis.prompt_builder import build_system_prompt, build_user_prompt
from nswot.analysis.token_budget import calculate_token_budget, estimate_tokens
from nswot.core.config import (
    configuration_summary,
    get_settings,
    validate_required_settings,
)
from nswot.core.exceptions import NswotError
from nswot.core.logging import bind_analysis_id, clear_analysis_id, setup_logging
from nswot.core.models import AnalysisSnapshot
from nswot.llm import ProviderLLMCaller, ProviderType, create_llm_provider
from nswot.services.credentials import EnvCredentialStore, require_api_key
from nswot.services.model_catalog import ModelCatalog
from nswot.utils.reliability import RetryPolicy, get_circuit_breaker_status, reset_circuit_breaker

console = Console()

PROVIDER_CHOICES = [p.value for p in ProviderType]


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx, debug: bool):
    """Evidence-grounded SWOT analysis from organizational data."""
    ctx.ensure_object(dict)
    setup_logging(debug=debug or get_settings().debug, rich_output=True)
    ctx.obj["debug"] = debug


def _load_snapshot(input_path: str) -> AnalysisSnapshot:
    try:
        return AnalysisSnapshot.model_validate_json(Path(input_path).read_text(encoding="utf-8"))
    except ValidationError as e:
        console.print(f"[red]Invalid input snapshot:[/red] {input_path}")
        for error in e.errors():
            loc = ".".join(str(part) for part in error["loc"]) or "(root)"
            console.print(f"  • {loc}: {error['msg']}")
        sys.exit(2)


def _print_error(error: NswotError) -> None:
    payload = error.to_dict()
    console.print(f"[red]{payload['kind']}:[/red] {payload['message']}")
    if "status" in payload:
        console.print(f"  HTTP status: {payload['status']}")


def _print_progress(stage: str, message: str) -> None:
    console.print(f"[dim]\\[{stage}][/dim] {message}")


def _print_chunk(text: str) -> None:
    console.print(text, end="", markup=False, highlight=False)


@cli.command()
@click.argument("input_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--provider", type=click.Choice(PROVIDER_CHOICES), help="LLM provider override")
@click.option("--model", "model_id", help="Model id override")
@click.option("--mode", type=click.Choice(PIPELINE_MODES), help="Pipeline mode override")
@click.option("--role", help="Role the analysis is tailored to")
@click.option("--context-window", type=int, help="Model context window in tokens")
@click.option("--output", type=click.Path(dir_okay=False), help="Write the result JSON here")
@click.option("--stream", is_flag=True, help="Echo model output as it arrives")
@click.pass_context
def analyze(
    ctx,
    input_path: str,
    provider: Optional[str],
    model_id: Optional[str],
    mode: Optional[str],
    role: Optional[str],
    context_window: Optional[int],
    output: Optional[str],
    stream: bool,
):
    """Run the analysis pipeline over an anonymized INPUT_PATH snapshot."""
    settings = get_settings()
    provider = provider or settings.llm.provider
    model_id = model_id or settings.llm.model
    mode = mode or settings.pipeline.mode
    role = role or settings.pipeline.role
    context_window = context_window or settings.llm.context_window

    if not model_id:
        console.print("[red]Configuration Error:[/red] no model given (use --model or NSWOT_MODEL)")
        sys.exit(1)

    snapshot = _load_snapshot(input_path)
    analysis_id = bind_analysis_id()

    llm_provider = create_llm_provider(
        provider,
        connect_timeout=settings.llm.connect_timeout,
        stream_idle_timeout=settings.llm.stream_idle_timeout,
    )
    try:
        caller = ProviderLLMCaller(
            llm_provider,
            require_api_key(EnvCredentialStore(settings), provider),
            retry_policy=RetryPolicy(
                max_retries=settings.resilience.max_retries,
                base_delay=settings.resilience.retry_base_delay,
                max_delay=settings.resilience.retry_max_delay,
                jitter=settings.resilience.retry_jitter,
            ),
            max_tokens=settings.llm.max_tokens,
            temperature=settings.llm.temperature,
            thinking_budget=settings.llm.thinking_budget or None,
            on_chunk=_print_chunk if stream else None,
        )
        context = PipelineContext.from_snapshot(
            snapshot,
            analysis_id=analysis_id,
            role=role,
            model_id=model_id,
            context_window=context_window,
            llm_caller=caller,
        )

        console.print(f"[blue]Starting {mode} analysis[/blue] ({provider} / {model_id})")
        result = build_pipeline(mode).run(context, on_progress=_print_progress)
    except NswotError as e:
        _print_error(e)
        sys.exit(1)
    finally:
        llm_provider.close()
        clear_analysis_id()

    _display_result(result)

    if output:
        Path(output).write_text(json.dumps(_result_payload(result), indent=2), encoding="utf-8")
        console.print(f"[green]Result saved to: {output}[/green]")

    sys.exit(0)


@cli.command()
@click.argument("input_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--role", help="Role the analysis is tailored to")
@click.option("--context-window", type=int, help="Model context window in tokens")
@click.option("--show-prompt", is_flag=True, help="Print the full user prompt")
def preview(input_path: str, role: Optional[str], context_window: Optional[int], show_prompt: bool):
    """Show the generation prompt and its token estimate without calling the LLM."""
    settings = get_settings()
    role = role or settings.pipeline.role
    context_window = context_window or settings.llm.context_window

    snapshot = _load_snapshot(input_path)
    try:
        budget = calculate_token_budget(context_window, snapshot.connected_sources)
    except ValueError as e:
        console.print(f"[red]Budget Error:[/red] {e}")
        sys.exit(1)

    system_prompt = build_system_prompt()
    user_prompt = build_user_prompt(role, snapshot.profiles, snapshot.sources, budget)

    table = Table(title="Token Budget")
    table.add_column("Section", style="cyan")
    table.add_column("Tokens", justify="right", style="white")
    table.add_row("Profiles", f"{budget.profiles:,}")
    for source, allocation in budget.sources.items():
        table.add_row(source.capitalize(), f"{allocation:,}")
    table.add_row("Buffer", f"{budget.buffer:,}")
    table.add_row("Output reserve", f"{budget.output_reserve:,}")
    table.add_row("Total", f"{budget.total:,}")
    console.print(table)

    console.print(f"System prompt: ~{estimate_tokens(system_prompt):,} tokens")
    console.print(f"User prompt: ~{estimate_tokens(user_prompt):,} tokens")

    if show_prompt:
        console.print()
        console.print(user_prompt, markup=False, highlight=False)


@cli.command()
@click.option("--provider", type=click.Choice(PROVIDER_CHOICES), help="LLM provider override")
@click.option("--refresh", is_flag=True, help="Bypass the model cache")
def models(provider: Optional[str], refresh: bool):
    """List the models a provider offers."""
    settings = get_settings()
    provider = provider or settings.llm.provider
    llm_provider = create_llm_provider(
        provider,
        connect_timeout=settings.llm.connect_timeout,
        stream_idle_timeout=settings.llm.stream_idle_timeout,
    )
    try:
        catalog = ModelCatalog.from_settings(llm_provider, EnvCredentialStore(settings), settings)
        available = catalog.list_models(force_refresh=refresh)
    except NswotError as e:
        _print_error(e)
        sys.exit(1)
    finally:
        llm_provider.close()

    table = Table(title=f"{provider} models")
    table.add_column("Id", style="cyan")
    table.add_column("Name", style="white")
    table.add_column("Context", justify="right")
    table.add_column("Prompt $", justify="right")
    table.add_column("Completion $", justify="right")
    for model in available:
        table.add_row(
            model.id,
            model.name,
            f"{model.context_length:,}",
            f"{model.pricing.prompt:g}",
            f"{model.pricing.completion:g}",
        )
    console.print(table)


@cli.command("circuit-status")
@click.option("--reset", "reset_name", metavar="NAME", help="Close the named breaker first")
def circuit_status(reset_name: Optional[str]):
    """Show circuit breaker state for this process."""
    if reset_name:
        if not reset_circuit_breaker(reset_name):
            console.print(f"[red]Unknown circuit breaker:[/red] {reset_name}")
            sys.exit(1)
        console.print(f"[green]Circuit breaker reset: {reset_name}[/green]")

    status = get_circuit_breaker_status()
    if not status:
        console.print("[dim]No circuit breakers have been used yet.[/dim]")
        return

    table = Table(title="Circuit Breakers")
    table.add_column("Name", style="cyan")
    table.add_column("State", style="white")
    table.add_column("Failures", justify="right")
    table.add_column("Retry in (s)", justify="right")
    for name, info in status.items():
        state_color = {"closed": "green", "open": "red", "half_open": "yellow"}.get(
            info["state"], "white"
        )
        table.add_row(
            name,
            f"[{state_color}]{info['state']}[/{state_color}]",
            str(info["failure_count"]),
            str(info["seconds_until_retry"]),
        )
    console.print(table)


@cli.command()
@click.option("--provider", type=click.Choice(PROVIDER_CHOICES), help="Provider to validate")
def config(provider: Optional[str]):
    """Show configuration status."""
    table = Table(title="nswot Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="white")
    for key, value in configuration_summary().items():
        table.add_row(key, value)
    console.print(table)

    missing = validate_required_settings(provider)
    if missing:
        console.print("[red]Configuration Issues:[/red]")
        for item in missing:
            console.print(f"  • Missing: {item}")
        sys.exit(1)

    console.print("[green]Configuration valid[/green]")


def _result_payload(result: PipelineContext) -> dict:
    def dump(value):
        return value.model_dump(by_alias=True, mode="json") if value is not None else None

    return {
        "analysisId": result.analysis_id,
        "role": result.role,
        "modelId": result.model_id,
        "swotOutput": dump(result.swot_output),
        "summariesOutput": dump(result.summaries_output),
        "qualityMetrics": dump(result.quality_metrics),
        "sourceCoverage": [dump(c) for c in result.source_coverage or []],
        "themes": [dump(t) for t in result.themes] if result.themes is not None else None,
        "synthesisMarkdown": (
            result.synthesis_output.synthesis_markdown if result.synthesis_output else None
        ),
        "warning": result.warning,
        "rawLlmResponse": result.raw_llm_response,
    }


def _display_result(result: PipelineContext) -> None:
    console.print("[green]Analysis completed[/green]")

    if result.swot_output is not None:
        table = Table(title="SWOT")
        table.add_column("Quadrant", style="cyan")
        table.add_column("Claim", style="white")
        table.add_column("Confidence")
        table.add_column("Evidence", justify="right")
        for quadrant, items in result.swot_output.iter_quadrants():
            for item in items:
                table.add_row(quadrant, item.claim, str(item.confidence), str(len(item.evidence)))
        console.print(table)

    metrics = result.quality_metrics
    if metrics is not None:
        console.print(
            f"Quality score: {metrics.quality_score} "
            f"({metrics.total_items} items, {metrics.multi_source_items} multi-source, "
            f"{metrics.average_evidence_per_item} evidence/item)"
        )

    for coverage in result.source_coverage or []:
        console.print(f"  {coverage.source_type}: {coverage.cited}/{coverage.total} cited")

    if result.warning:
        console.print(f"[yellow]{result.warning}[/yellow]")


def main():
    """Console script entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
