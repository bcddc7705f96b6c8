"""
Validator Agent (The Safety Net)
Checks model output against the AnalysisResult schema before anything is
shown to the farmer. Validation is all-or-nothing: the first failing check
wins and no partial result is ever accepted.
"""
from typing import Any, Optional

from pydantic import ValidationError

from ..errors import UpstreamError
from ..models import SEVERITY_LEVELS, AnalysisResult

REQUIRED_FIELDS = (
    "diseaseName",
    "confidence",
    "cropType",
    "severity",
    "symptoms",
    "treatment",
    "prevention",
)


def _is_number(value: Any) -> bool:
    # bool is an int subclass; JSON true/false is not a confidence
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_analysis_result(result: Any) -> Optional[str]:
    """Return None when `result` is a valid analysis, else the first error message."""
    if not isinstance(result, dict):
        return "Result is not an object"

    for field in REQUIRED_FIELDS:
        if field not in result:
            return f"Missing required field: {field}"

    if not isinstance(result["diseaseName"], str):
        return "diseaseName must be a string"

    confidence = result["confidence"]
    if not _is_number(confidence) or confidence < 0 or confidence > 100:
        return "confidence must be a number between 0 and 100"

    if not isinstance(result["cropType"], str):
        return "cropType must be a string"

    if result["severity"] not in SEVERITY_LEVELS:
        return 'severity must be "Mild", "Moderate", or "Severe"'

    if not isinstance(result["symptoms"], list) or len(result["symptoms"]) == 0:
        return "symptoms must be a non-empty array"

    if not isinstance(result["treatment"], str) or len(result["treatment"]) == 0:
        return "treatment must be a non-empty string"

    if not isinstance(result["prevention"], list) or len(result["prevention"]) == 0:
        return "prevention must be a non-empty array"

    return None


def parse_analysis_result(raw: Any) -> AnalysisResult:
    """Validate `raw` and build an immutable AnalysisResult.

    Raises UpstreamError("Invalid response structure") on any failure.
    """
    message = validate_analysis_result(raw)
    if message:
        raise UpstreamError("Invalid response structure", details=message)
    try:
        return AnalysisResult(**{field: raw[field] for field in REQUIRED_FIELDS})
    except ValidationError as e:
        # e.g. a symptom entry that is not a string
        raise UpstreamError("Invalid response structure", details=str(e))
