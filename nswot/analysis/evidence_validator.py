"""
Cross-checks model citations against the input corpus.
"""

from typing import List, Set

import structlog

from nswot.analysis.source_ids import collect_source_records, valid_source_ids
from nswot.core.models import (
    AnalysisSnapshot,
    EvidenceValidationResult,
    SourceCoverage,
    SwotOutput,
)

logger = structlog.get_logger(__name__)


def validate_evidence(swot_output: SwotOutput, snapshot: AnalysisSnapshot) -> EvidenceValidationResult:
    """
    Warn about every cited sourceId that does not exist in the snapshot.

    Unknown ids are advisory; they never invalidate the parsed analysis.
    """
    valid_ids = valid_source_ids(snapshot)
    warnings: List[str] = []

    for quadrant, items in swot_output.iter_quadrants():
        for i, item in enumerate(items):
            for j, evidence in enumerate(item.evidence):
                if evidence.source_id not in valid_ids:
                    warnings.append(
                        f'{quadrant}[{i}].evidence[{j}]: sourceId "{evidence.source_id}" '
                        "not found in input snapshot"
                    )

    if warnings:
        logger.warning("evidence_validation_warnings", count=len(warnings))

    return EvidenceValidationResult(valid=not warnings, warnings=warnings)


def compute_source_coverage(swot_output: SwotOutput, snapshot: AnalysisSnapshot) -> List[SourceCoverage]:
    """
    Cited versus available identifiers per source type present in the snapshot.

    Source types with no identifiers are left out rather than reported as 0/0.
    """
    cited_ids: Set[str] = {
        evidence.source_id for item in swot_output.all_items() for evidence in item.evidence
    }

    coverage = []
    for source_type, records in collect_source_records(snapshot).items():
        cited = sum(1 for record in records if cited_ids.intersection(record.ids))
        coverage.append(SourceCoverage(source_type=source_type, cited=cited, total=len(records)))
    return coverage
