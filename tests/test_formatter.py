import pytest

from conftest import make_images, ts
from radiodx.diagnostics.models import DiagnosticReport, Finding, ImageBatch, SessionStatus, Severity
from radiodx.reports.formatter import (
    format_processing_time,
    format_report_text,
    report_filename,
    summarize_session,
)


def _report(findings=(), recommendations=(), patient_id=None):
    return DiagnosticReport(
        id="report-s1",
        session_id="s1",
        patient_id=patient_id,
        summary="Comprehensive diagnostic analysis of 25 medical images processed across 2 batches.",
        findings=list(findings),
        recommendations=list(recommendations),
        confidence=85,
        processing_time=125000,
        image_count=25,
        generated_at=ts(0),
    )


def _finding(n, severity, description, location="Left lung", confidence=70):
    return Finding(
        id=f"finding-0-{n}", description=description, severity=severity,
        location=location, confidence=confidence,
    )


def test_text_export_layout():
    report = _report(
        findings=[
            _finding(0, Severity.MODERATE, "Pleural thickening"),
            _finding(1, Severity.CRITICAL, "Tension pneumothorax", "Right hemithorax", 95),
            _finding(2, Severity.MODERATE, "Small effusion"),
        ],
        recommendations=["Immediate decompression", "Repeat radiograph"],
        patient_id="P-42",
    )
    text = format_report_text(report)

    section_order = ["DIAGNOSTIC REPORT", "EXECUTIVE SUMMARY", "FINDINGS", "CLINICAL RECOMMENDATIONS", "DISCLAIMER"]
    positions = [text.index(heading) for heading in section_order]
    assert positions == sorted(positions)

    assert "Report ID: report-s1" in text
    assert "Images Analyzed: 25" in text
    assert "Processing Time: 2m 5s" in text
    assert "Overall Confidence: 85%" in text
    assert "Patient ID: P-42" in text

    assert text.index("CRITICAL FINDINGS") < text.index("MODERATE FINDINGS")
    assert "HIGH SEVERITY FINDINGS" not in text
    assert "1. Tension pneumothorax\n   Location: Right hemithorax\n   Confidence: 95%" in text
    assert "1. Pleural thickening" in text
    assert "2. Small effusion" in text
    assert "1. Immediate decompression\n2. Repeat radiograph" in text
    assert "qualified radiologist" in text


def test_text_export_without_findings_or_recommendations():
    text = format_report_text(_report())

    assert "No significant abnormalities detected in the analyzed images." in text
    assert "No specific recommendations at this time." in text
    assert "Patient ID" not in text


@pytest.mark.parametrize("ms,expected", [(0, "0s"), (42000, "42s"), (59999, "59s"), (125000, "2m 5s"), (3600000, "60m 0s")])
def test_format_processing_time(ms, expected):
    assert format_processing_time(ms) == expected


def test_report_filename():
    assert report_filename(_report()) == "diagnostic_report_2025-03-01.txt"
    assert report_filename(_report(patient_id="P-42")) == "P-42_diagnostic_report_2025-03-01.txt"


def _batches(statuses):
    batches = []
    for number, status in enumerate(statuses, start=1):
        batch = ImageBatch(id=f"b{number}", images=make_images(1, prefix=f"b{number}"),
                           batch_number=number, total_batches=len(statuses))
        if status != "pending":
            batch = batch.start()
        if status == "completed":
            batch = batch.complete("{}")
        elif status == "error":
            batch = batch.fail("boom")
        batches.append(batch)
    return batches


def test_session_summary_while_processing():
    summary = summarize_session(SessionStatus.PROCESSING, _batches(["completed", "processing", "pending", "pending"]), 70)

    assert summary.status == "Processing... (25%)"
    assert summary.progress == 25
    assert summary.summary == "Processing 70 images in 4 batches (1/4 complete)"


def test_session_summary_with_critical_findings():
    report = _report(findings=[_finding(0, Severity.CRITICAL, "Mass"), _finding(1, Severity.LOW, "Scar")])
    summary = summarize_session(SessionStatus.COMPLETED, _batches(["completed"]), 25, report)

    assert summary.status == "Analysis complete"
    assert summary.progress == 100
    assert summary.critical_findings == 1
    assert summary.total_findings == 2
    assert "1 critical finding(s) detected in 25 images" in summary.summary


def test_session_summary_without_findings():
    summary = summarize_session(SessionStatus.COMPLETED, _batches(["completed"]), 25, _report())
    assert "No significant abnormalities detected in 25 images" in summary.summary


def test_session_summary_on_error():
    summary = summarize_session(SessionStatus.ERROR, _batches(["error"]), 3)
    assert summary.status == "Error occurred"
    assert summary.summary == "Error processing 3 images"
