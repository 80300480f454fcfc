"""
Fold completed batch replies into findings, recommendations and confidence.

Model replies are semi-trusted text. The JSON object may be wrapped in prose
or a code fence, and any field may be missing or of the wrong type. A reply
that yields no object at all drops that batch's contribution and is logged.
"""

import json
import logging
import math
import re
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, Field

from radiodx.core.errors import PayloadParseError
from radiodx.diagnostics.models import BatchStatus, Finding, ImageBatch, Severity

logger = logging.getLogger(__name__)

DEFAULT_FINDING_CONFIDENCE = 50
DEFAULT_DESCRIPTION = "No description provided"
DEFAULT_LOCATION = "Not specified"

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)
_decoder = json.JSONDecoder()


class ParsedFinding(BaseModel):
    description: str = DEFAULT_DESCRIPTION
    severity: Severity = Severity.MODERATE
    location: str = DEFAULT_LOCATION
    confidence: int = DEFAULT_FINDING_CONFIDENCE


class BatchPayload(BaseModel):
    """Normalized contents of one batch reply"""
    summary: Optional[str] = None
    findings: List[ParsedFinding] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    confidence: Optional[float] = None


class AggregateResult(BaseModel):
    """Everything the report compiler needs from the completed batches"""
    findings: List[Finding] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    batch_summaries: List[str] = Field(default_factory=list)
    confidences: List[float] = Field(default_factory=list)
    degraded_batches: List[int] = Field(default_factory=list)

    @property
    def average_confidence(self) -> int:
        if not self.confidences:
            return 0
        return round_half_up(sum(self.confidences) / len(self.confidences))


def _first_object(text: str) -> Optional[Dict[str, Any]]:
    for match in re.finditer(r"\{", text):
        try:
            value, _ = _decoder.raw_decode(text, match.start())
        except ValueError:
            continue
        if isinstance(value, dict):
            return value
    return None


def extract_json_object(text: str) -> Dict[str, Any]:
    """
    Find the diagnostic JSON object inside a model reply.

    Tries the whole text, then fenced code blocks, then the first balanced
    object anywhere in the text.
    """
    if not isinstance(text, str) or not text.strip():
        raise PayloadParseError("Empty reply")

    try:
        value = json.loads(text)
    except ValueError:
        value = None
    if isinstance(value, dict):
        return value

    for block in _FENCE_RE.findall(text):
        found = _first_object(block)
        if found is not None:
            return found

    found = _first_object(text)
    if found is None:
        raise PayloadParseError("No JSON object found in reply")
    return found


def coerce_number(value: Any) -> Optional[float]:
    """A finite number from an int, float or numeric string like '85' or '85%'."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip().rstrip("%").strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _clamp_percent(value: float) -> int:
    return max(0, min(100, round_half_up(value)))


def _bounded(value: Optional[float]) -> Optional[float]:
    if value is None:
        return None
    return max(0.0, min(100.0, value))


def _text(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _severity(value: Any) -> Severity:
    if isinstance(value, str):
        try:
            return Severity(value.strip().lower())
        except ValueError:
            pass
    return Severity.MODERATE


def parse_finding(raw: Any) -> Optional[ParsedFinding]:
    if not isinstance(raw, dict):
        return None
    confidence = coerce_number(raw.get("confidence"))
    return ParsedFinding(
        description=_text(raw.get("description")) or DEFAULT_DESCRIPTION,
        severity=_severity(raw.get("severity")),
        location=_text(raw.get("location")) or DEFAULT_LOCATION,
        confidence=DEFAULT_FINDING_CONFIDENCE if confidence is None else _clamp_percent(confidence),
    )


def parse_batch_payload(text: str) -> BatchPayload:
    """Read one reply; raises PayloadParseError when no JSON object is present."""
    data = extract_json_object(text)

    raw_findings = data.get("findings")
    findings = []
    if isinstance(raw_findings, list):
        findings = [f for f in (parse_finding(item) for item in raw_findings) if f is not None]

    raw_recommendations = data.get("recommendations")
    recommendations = []
    if isinstance(raw_recommendations, list):
        recommendations = [item for item in raw_recommendations if _text(item)]

    return BatchPayload(
        summary=_text(data.get("summary")),
        findings=findings,
        recommendations=recommendations,
        confidence=_bounded(coerce_number(data.get("confidence"))),
    )


def aggregate_batches(batches: Sequence[ImageBatch]) -> AggregateResult:
    """
    Fold every completed batch, in run order, into one aggregate.

    Findings carry the ids of every image in their batch. Recommendations are
    deduplicated by exact string, keeping first-seen order. Only batches with
    a numeric confidence count toward the average. Errored batches and
    unparseable replies contribute nothing.
    """
    aggregate = AggregateResult()
    seen_recommendations = set()

    for index, batch in enumerate(batches):
        if batch.status != BatchStatus.COMPLETED or batch.result is None:
            continue

        try:
            payload = parse_batch_payload(batch.result)
        except PayloadParseError as e:
            logger.warning(f"Failed to parse batch {batch.batch_number} result, dropping its findings: {e}")
            aggregate.degraded_batches.append(batch.batch_number)
            continue

        related = batch.image_ids
        for ordinal, parsed in enumerate(payload.findings):
            aggregate.findings.append(
                Finding(
                    id=f"finding-{index}-{ordinal}",
                    description=parsed.description,
                    severity=parsed.severity,
                    location=parsed.location,
                    confidence=parsed.confidence,
                    related_images=related,
                )
            )

        for recommendation in payload.recommendations:
            if recommendation not in seen_recommendations:
                seen_recommendations.add(recommendation)
                aggregate.recommendations.append(recommendation)

        if payload.summary:
            aggregate.batch_summaries.append(f"Batch {batch.batch_number}: {payload.summary}")

        if payload.confidence is not None:
            aggregate.confidences.append(payload.confidence)

    return aggregate
