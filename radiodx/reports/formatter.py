"""
Plain-text rendering of diagnostic reports and dashboard session summaries
"""

from typing import Dict, List, Optional, Sequence

from radiodx.diagnostics.models import (
    SEVERITY_PRIORITY,
    BatchStatus,
    DiagnosticReport,
    Finding,
    ImageBatch,
    SessionStatus,
    SessionSummary,
    Severity,
)

SEVERITY_HEADINGS = {
    Severity.CRITICAL: "🚨 CRITICAL FINDINGS:",
    Severity.HIGH: "⚠️  HIGH SEVERITY FINDINGS:",
    Severity.MODERATE: "📋 MODERATE FINDINGS:",
    Severity.LOW: "📝 OBSERVATIONS:",
}

DISCLAIMER = (
    "This report was generated using AI-assisted analysis and should be reviewed by a "
    "qualified radiologist before making clinical decisions. The findings and "
    "recommendations are based on image analysis and should be correlated with clinical "
    "presentation and other diagnostic information."
)


def format_timestamp(report: DiagnosticReport) -> str:
    return report.generated_at.strftime("%Y-%m-%d %H:%M:%S %Z").strip()


def format_processing_time(milliseconds: int) -> str:
    """Format processing time as '2m 5s' or '42s'."""
    seconds = milliseconds // 1000
    minutes = seconds // 60
    remaining_seconds = seconds % 60
    if minutes > 0:
        return f"{minutes}m {remaining_seconds}s"
    return f"{seconds}s"


def group_findings_by_severity(findings: Sequence[Finding]) -> Dict[Severity, List[Finding]]:
    groups = {severity: [] for severity in SEVERITY_PRIORITY}
    for finding in findings:
        groups[finding.severity].append(finding)
    return groups


def _header(report: DiagnosticReport) -> str:
    lines = [
        "DIAGNOSTIC REPORT",
        "==================",
        "",
        f"Report ID: {report.id}",
        f"Generated: {format_timestamp(report)}",
        f"Images Analyzed: {report.image_count}",
        f"Processing Time: {format_processing_time(report.processing_time)}",
        f"Overall Confidence: {report.confidence}%",
    ]
    if report.patient_id:
        lines.append(f"Patient ID: {report.patient_id}")
    return "\n".join(lines)


def _summary(report: DiagnosticReport) -> str:
    return f"EXECUTIVE SUMMARY\n================\n\n{report.summary}"


def _findings(report: DiagnosticReport) -> str:
    if not report.findings:
        return "FINDINGS\n========\n\nNo significant abnormalities detected in the analyzed images."

    sections = ["FINDINGS", "========"]
    for severity, findings in group_findings_by_severity(report.findings).items():
        if not findings:
            continue
        sections.append(f"\n{SEVERITY_HEADINGS[severity]}")
        for index, finding in enumerate(findings, start=1):
            sections.append(f"{index}. {finding.description}")
            sections.append(f"   Location: {finding.location or 'Not specified'}")
            sections.append(f"   Confidence: {finding.confidence}%")
    return "\n".join(sections)


def _recommendations(report: DiagnosticReport) -> str:
    if not report.recommendations:
        return (
            "CLINICAL RECOMMENDATIONS\n========================\n\n"
            "No specific recommendations at this time. Continue routine follow-up as clinically indicated."
        )
    sections = ["CLINICAL RECOMMENDATIONS", "========================"]
    sections.extend(f"{index}. {text}" for index, text in enumerate(report.recommendations, start=1))
    return "\n".join(sections)


def _footer(report: DiagnosticReport) -> str:
    return f"DISCLAIMER\n==========\n\n{DISCLAIMER}\n\nReport generated on {format_timestamp(report)}"


def format_report_text(report: DiagnosticReport) -> str:
    """Render the full text export: header, summary, findings, recommendations, disclaimer."""
    return "\n\n".join([
        _header(report),
        _summary(report),
        _findings(report),
        _recommendations(report),
        _footer(report),
    ])


def report_filename(report: DiagnosticReport) -> str:
    date = report.generated_at.date().isoformat()
    prefix = f"{report.patient_id}_" if report.patient_id else ""
    return f"{prefix}diagnostic_report_{date}.txt"


def _status_text(status: SessionStatus, progress: float) -> str:
    if status == SessionStatus.UPLOADING:
        return "Uploading images..."
    if status == SessionStatus.PROCESSING:
        return f"Processing... ({round(progress)}%)"
    if status == SessionStatus.COMPLETED:
        return "Analysis complete"
    if status == SessionStatus.ERROR:
        return "Error occurred"
    return "Unknown status"


def summarize_session(
    status: SessionStatus,
    batches: Sequence[ImageBatch],
    total_images: int,
    report: Optional[DiagnosticReport] = None,
) -> SessionSummary:
    """Dashboard view of a session: status line, percent done and a one-line summary."""
    completed = sum(1 for batch in batches if batch.status == BatchStatus.COMPLETED)
    progress = (completed / len(batches)) * 100 if batches else 0.0

    critical = 0
    total_findings = 0
    if report is not None:
        critical = sum(1 for finding in report.findings if finding.severity == Severity.CRITICAL)
        total_findings = len(report.findings)

    if status == SessionStatus.COMPLETED and report is not None:
        if critical > 0:
            summary = f"⚠️ {critical} critical finding(s) detected in {total_images} images"
        elif total_findings > 0:
            summary = f"📋 {total_findings} finding(s) identified in {total_images} images"
        else:
            summary = f"✅ No significant abnormalities detected in {total_images} images"
    elif status == SessionStatus.PROCESSING:
        summary = (
            f"Processing {total_images} images in {len(batches)} batches "
            f"({completed}/{len(batches)} complete)"
        )
    elif status == SessionStatus.ERROR:
        summary = f"Error processing {total_images} images"
    else:
        summary = f"Preparing to analyze {total_images} images"

    return SessionSummary(
        status=_status_text(status, progress),
        progress=round(progress),
        summary=summary,
        critical_findings=critical,
        total_findings=total_findings,
    )
