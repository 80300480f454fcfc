"""
Compile the final diagnostic report from a settled batch sequence.
"""

from collections import Counter
from datetime import datetime
from typing import Optional, Sequence

from radiodx.diagnostics.aggregator import AggregateResult, aggregate_batches
from radiodx.diagnostics.models import (
    BatchStatus,
    DiagnosticReport,
    Finding,
    ImageBatch,
    Severity,
    utcnow,
)

_SEVERITY_PHRASES = {
    Severity.CRITICAL: "CRITICAL: {count} critical finding(s) identified requiring immediate attention. ",
    Severity.HIGH: "{count} high-severity finding(s) noted. ",
    Severity.MODERATE: "{count} moderate finding(s) observed. ",
    Severity.LOW: "{count} low-severity observation(s) documented. ",
}


def build_comprehensive_summary(image_count: int, batch_count: int, findings: Sequence[Finding]) -> str:
    """Summary text mentioning severities critical first, omitting absent ones."""
    counts = Counter(finding.severity for finding in findings)

    summary = (
        f"Comprehensive diagnostic analysis of {image_count} medical images "
        f"processed across {batch_count} batches. "
    )
    for severity, phrase in _SEVERITY_PHRASES.items():
        if counts[severity]:
            summary += phrase.format(count=counts[severity])
    if not findings:
        summary += "No significant abnormalities detected in the analyzed images. "
    summary += "Detailed findings and recommendations are provided below for clinical consideration."
    return summary


def processing_time_ms(batches: Sequence[ImageBatch], now: Optional[datetime] = None) -> int:
    """Milliseconds between the first and last batch completion timestamps."""
    stamps = [
        batch.processed_at
        for batch in batches
        if batch.status == BatchStatus.COMPLETED and batch.processed_at is not None
    ]
    fallback = now or utcnow()
    start = min(stamps) if stamps else fallback
    end = max(stamps) if stamps else fallback
    return max(0, int((end - start).total_seconds() * 1000))


def compile_report(
    session_id: str,
    batches: Sequence[ImageBatch],
    patient_id: Optional[str] = None,
    aggregate: Optional[AggregateResult] = None,
    generated_at: Optional[datetime] = None,
) -> DiagnosticReport:
    """
    Build the report for a run whose batches are all terminal.

    The image count covers every batch, whether or not it succeeded.
    """
    if aggregate is None:
        aggregate = aggregate_batches(batches)
    generated_at = generated_at or utcnow()
    image_count = sum(len(batch.images) for batch in batches)

    return DiagnosticReport(
        id=f"report-{session_id}",
        session_id=session_id,
        patient_id=patient_id,
        summary=build_comprehensive_summary(image_count, len(batches), aggregate.findings),
        findings=aggregate.findings,
        recommendations=aggregate.recommendations,
        confidence=aggregate.average_confidence,
        processing_time=processing_time_ms(batches, now=generated_at),
        image_count=image_count,
        generated_at=generated_at,
    )
