"""
Schema validation for the SWOT generation response.
"""

from dataclasses import dataclass
from typing import Any, Dict

from pydantic import ValidationError

from nswot.analysis.json_utils import coerce_json_payload, describe_validation_error, format_error_path
from nswot.core.exceptions import EvidenceInvalidError, LLMParseError
from nswot.core.models import SummariesOutput, SwotOutput


@dataclass(frozen=True)
class ParsedAnalysis:
    swot_output: SwotOutput
    summaries_output: SummariesOutput


def _is_empty_evidence(error: Dict[str, Any]) -> bool:
    loc = error.get("loc", ())
    return bool(loc) and loc[-1] == "evidence" and error.get("type") == "too_short"


def parse_analysis_response(raw_response: str) -> ParsedAnalysis:
    """
    Parse and validate a generation reply.

    Raises:
        EvidenceInvalidError: A claim in any quadrant has an empty evidence array
        LLMParseError: Any other schema violation, naming the field path
    """
    payload = coerce_json_payload(raw_response, label="LLM")

    try:
        swot_output = SwotOutput.model_validate(payload)
    except ValidationError as e:
        errors = e.errors()
        empty = next((err for err in errors if _is_empty_evidence(err)), None)
        if empty is not None:
            path = format_error_path(empty["loc"])
            raise EvidenceInvalidError(
                f"{path}: every claim must cite at least one evidence entry", path=path
            ) from e
        first = errors[0]
        raise LLMParseError(
            describe_validation_error(first), path=format_error_path(first.get("loc", ()))
        ) from e

    summaries = payload.get("summaries")
    if not isinstance(summaries, dict):
        raise LLMParseError('Missing or invalid "summaries" object in response', path="summaries")
    try:
        summaries_output = SummariesOutput.model_validate(summaries)
    except ValidationError as e:
        first = e.errors()[0]
        path = format_error_path(("summaries",) + tuple(first.get("loc", ())))
        raise LLMParseError(f"{path}: {first.get('msg', 'invalid value')}", path=path) from e

    return ParsedAnalysis(swot_output=swot_output, summaries_output=summaries_output)
