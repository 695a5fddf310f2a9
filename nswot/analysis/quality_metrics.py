"""
Deterministic quality score for a SWOT result.
"""

import math
from typing import Dict

from nswot.core.models import QualityMetrics, SwotOutput

MULTI_SOURCE_WEIGHT = 40
EVIDENCE_DENSITY_WEIGHT = 30
HIGH_CONFIDENCE_WEIGHT = 30
TARGET_EVIDENCE_PER_ITEM = 3


def _round_half_up(value: float, digits: int = 0) -> float:
    factor = 10**digits
    return math.floor(value * factor + 0.5) / factor


def compute_quality_metrics(swot_output: SwotOutput) -> QualityMetrics:
    """
    Aggregate evidence statistics over every item.

    The 0-100 score combines the multi-source ratio (items citing two or more
    source types), evidence density capped at three entries per item, and the
    high-confidence ratio.
    """
    items = swot_output.all_items()
    total_items = len(items)
    if total_items == 0:
        return QualityMetrics()

    multi_source_items = 0
    total_evidence = 0
    source_type_coverage: Dict[str, int] = {}
    confidence_distribution = {"high": 0, "medium": 0, "low": 0}

    for item in items:
        total_evidence += len(item.evidence)
        confidence_distribution[item.confidence] += 1

        source_types = {evidence.source_type for evidence in item.evidence}
        if len(source_types) >= 2:
            multi_source_items += 1
        for source_type in sorted(source_types):
            source_type_coverage[source_type] = source_type_coverage.get(source_type, 0) + 1

    average_evidence = total_evidence / total_items
    score = (
        multi_source_items / total_items * MULTI_SOURCE_WEIGHT
        + min(average_evidence / TARGET_EVIDENCE_PER_ITEM, 1) * EVIDENCE_DENSITY_WEIGHT
        + confidence_distribution["high"] / total_items * HIGH_CONFIDENCE_WEIGHT
    )

    return QualityMetrics(
        total_items=total_items,
        multi_source_items=multi_source_items,
        source_type_coverage=source_type_coverage,
        confidence_distribution=confidence_distribution,
        average_evidence_per_item=_round_half_up(average_evidence, 2),
        quality_score=int(_round_half_up(score)),
    )
