"""
Data models and type definitions for nswot.

Provides type-safe data structures with validation for everything the
analysis pipeline reads from the model or hands back to callers. Field
aliases match the camelCase JSON the model is asked to produce.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class SourceType(str, Enum):
    """Kinds of evidence sources a claim can cite."""

    PROFILE = "profile"
    JIRA = "jira"
    CONFLUENCE = "confluence"
    GITHUB = "github"
    CODEBASE = "codebase"


# Connector-backed sources, in prompt order
DATA_SOURCES: Tuple[str, ...] = (
    SourceType.JIRA.value,
    SourceType.CONFLUENCE.value,
    SourceType.GITHUB.value,
    SourceType.CODEBASE.value,
)


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class SignalCategory(str, Enum):
    THEME = "theme"
    RISK = "risk"
    STRENGTH = "strength"
    CONCERN = "concern"
    METRIC = "metric"


class Agreement(str, Enum):
    STRONG = "strong"
    MODERATE = "moderate"
    WEAK = "weak"


QUADRANTS: Tuple[str, ...] = ("strengths", "weaknesses", "opportunities", "threats")


class _WireModel(BaseModel):
    """Base for models parsed from (or serialized back to) camelCase JSON."""

    model_config = ConfigDict(use_enum_values=True, populate_by_name=True, frozen=True)


def _keep_non_empty_strings(v):
    if not isinstance(v, list):
        return []
    return [item for item in v if isinstance(item, str) and item]


# Pipeline inputs


class AnonymizedProfile(BaseModel):
    """Stakeholder profile with the real name already replaced by a label."""

    label: str = Field(..., min_length=1)
    role: Optional[str] = None
    team: Optional[str] = None
    concerns: Optional[str] = None
    priorities: Optional[str] = None
    quotes: List[str] = Field(default_factory=list)
    notes: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @property
    def source_id(self) -> str:
        return f"{SourceType.PROFILE.value}:{self.label}"


class AnalysisSnapshot(BaseModel):
    """The anonymized input corpus an analysis was generated from."""

    profiles: List[AnonymizedProfile] = Field(default_factory=list)
    sources: Dict[str, Optional[str]] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)

    @field_validator("sources")
    @classmethod
    def validate_sources(cls, v):
        unknown = sorted(set(v) - set(DATA_SOURCES))
        if unknown:
            raise ValueError(f"unknown data sources: {', '.join(unknown)}")
        return v

    def markdown_for(self, source: str) -> Optional[str]:
        return self.sources.get(source) or None

    @property
    def connected_sources(self) -> List[str]:
        return [s for s in DATA_SOURCES if self.markdown_for(s)]


# Generation output


class EvidenceEntry(_WireModel):
    source_type: SourceType = Field(..., alias="sourceType")
    source_id: str = Field(..., alias="sourceId")
    source_label: str = Field(..., alias="sourceLabel")
    quote: str


class SwotItem(_WireModel):
    claim: str
    evidence: List[EvidenceEntry] = Field(..., min_length=1)
    impact: str
    recommendation: str
    confidence: Confidence


class SwotOutput(_WireModel):
    strengths: List[SwotItem]
    weaknesses: List[SwotItem]
    opportunities: List[SwotItem]
    threats: List[SwotItem]

    def iter_quadrants(self) -> Iterator[Tuple[str, List[SwotItem]]]:
        for quadrant in QUADRANTS:
            yield quadrant, getattr(self, quadrant)

    def all_items(self) -> List[SwotItem]:
        return [item for _, items in self.iter_quadrants() for item in items]


class SummariesOutput(_WireModel):
    profiles: str
    jira: Optional[str] = None
    confluence: Optional[str] = None
    github: Optional[str] = None
    codebase: Optional[str] = None

    @field_validator("jira", "confluence", "github", "codebase", mode="before")
    @classmethod
    def drop_non_strings(cls, v):
        return v if isinstance(v, str) else None


# Extraction / synthesis / themes


class ExtractionSignal(_WireModel):
    source_type: SourceType = Field(..., alias="sourceType")
    source_id: str = Field(..., alias="sourceId")
    signal: str = Field(..., min_length=1)
    category: SignalCategory
    quote: str


class ExtractionOutput(_WireModel):
    signals: List[ExtractionSignal]
    key_patterns: List[str] = Field(default_factory=list, alias="keyPatterns")

    @field_validator("key_patterns", mode="before")
    @classmethod
    def parse_key_patterns(cls, v):
        return _keep_non_empty_strings(v)


class SynthesisCorrelation(_WireModel):
    claim: str = Field(..., min_length=1)
    supporting_signals: List[ExtractionSignal] = Field(..., alias="supportingSignals")
    source_types: List[SourceType] = Field(..., alias="sourceTypes")
    agreement: Agreement
    conflicts: List[str] = Field(default_factory=list)

    @field_validator("source_types", mode="before")
    @classmethod
    def parse_source_types(cls, v):
        if not isinstance(v, list):
            return v
        known = {s.value for s in SourceType}
        return [s for s in v if isinstance(s, str) and s in known]

    @field_validator("conflicts", mode="before")
    @classmethod
    def parse_conflicts(cls, v):
        return _keep_non_empty_strings(v)


class SynthesisOutput(_WireModel):
    correlations: List[SynthesisCorrelation]
    synthesis_markdown: str = Field(..., alias="synthesisMarkdown", min_length=1)


class ThemeEvidenceRef(_WireModel):
    source_type: SourceType = Field(..., alias="sourceType")
    source_id: str = Field(..., alias="sourceId")
    quote: str


class Theme(_WireModel):
    label: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    evidence_refs: List[ThemeEvidenceRef] = Field(..., alias="evidenceRefs", min_length=1)
    source_types: List[SourceType] = Field(default_factory=list, alias="sourceTypes")
    frequency: int = 0

    @model_validator(mode="before")
    @classmethod
    def derive_fields(cls, data):
        if not isinstance(data, dict):
            return data
        data = dict(data)
        refs = data.get("evidenceRefs", data.get("evidence_refs"))
        if isinstance(refs, list):
            seen: List[str] = []
            for ref in refs:
                if isinstance(ref, dict):
                    st = ref.get("sourceType", ref.get("source_type"))
                else:
                    st = getattr(ref, "source_type", None)
                if isinstance(st, str) and st not in seen:
                    seen.append(st)
            # Computed from the refs, never trusted from the model
            data["sourceTypes"] = seen
            data.pop("source_types", None)
            frequency = data.get("frequency")
            if isinstance(frequency, bool) or not isinstance(frequency, (int, float)) or frequency < 1:
                data["frequency"] = len(refs)
            else:
                data["frequency"] = int(frequency)
        return data


class ThemeOutput(_WireModel):
    themes: List[Theme]


# Metrics


class QualityMetrics(_WireModel):
    total_items: int = Field(0, alias="totalItems")
    multi_source_items: int = Field(0, alias="multiSourceItems")
    source_type_coverage: Dict[str, int] = Field(default_factory=dict, alias="sourceTypeCoverage")
    confidence_distribution: Dict[str, int] = Field(
        default_factory=lambda: {"high": 0, "medium": 0, "low": 0},
        alias="confidenceDistribution",
    )
    average_evidence_per_item: float = Field(0.0, alias="averageEvidencePerItem")
    quality_score: int = Field(0, alias="qualityScore", ge=0, le=100)


class SourceCoverage(_WireModel):
    source_type: SourceType = Field(..., alias="sourceType")
    cited: int = Field(..., ge=0)
    total: int = Field(..., gt=0)

    @model_validator(mode="after")
    def check_bounds(self):
        if self.cited > self.total:
            raise ValueError("cited cannot exceed total")
        return self


class EvidenceValidationResult(_WireModel):
    valid: bool
    warnings: List[str] = Field(default_factory=list)
