"""
Analysis pipeline for nswot.

Turns anonymized profiles and connector markdown into an evidence-grounded
SWOT analysis, then checks the citations against the input.
"""

from .evidence_validator import compute_source_coverage, validate_evidence
from .pipeline import AnalysisOrchestrator, PipelineContext, PipelineStep, build_pipeline
from .quality_metrics import compute_quality_metrics
from .response_parser import ParsedAnalysis, parse_analysis_response

__all__ = [
    "AnalysisOrchestrator",
    "ParsedAnalysis",
    "PipelineContext",
    "PipelineStep",
    "build_pipeline",
    "compute_quality_metrics",
    "compute_source_coverage",
    "parse_analysis_response",
    "validate_evidence",
]
