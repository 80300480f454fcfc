"""
Report endpoints: save, list, fetch, export and delete
"""

from fastapi import APIRouter, HTTPException, Query, status
from fastapi.responses import PlainTextResponse
from typing import List, Optional
import logging

from radiodx.core.store import report_store
from radiodx.diagnostics.models import ApiModel, DiagnosticReport
from radiodx.reports.formatter import format_report_text, report_filename

logger = logging.getLogger(__name__)
router = APIRouter()


class ReportSaveRequest(ApiModel):
    report: DiagnosticReport


class ReportExportRequest(ApiModel):
    report: DiagnosticReport
    format: str = "text"


class ReportListResponse(ApiModel):
    reports: List[DiagnosticReport]
    total_count: int


@router.post("/reports", response_model=DiagnosticReport, status_code=status.HTTP_201_CREATED)
def save_report(payload: ReportSaveRequest):
    """Save a report to the in-process store."""
    report = payload.report
    logger.info(f"Saving report {report.id} for session {report.session_id}")
    logger.debug(f"Generated report:\n{format_report_text(report)}")
    return report_store.save(report)


@router.get("/reports", response_model=ReportListResponse)
def list_reports(
    session_id: Optional[str] = Query(None, alias="sessionId"),
    patient_id: Optional[str] = Query(None, alias="patientId"),
):
    """List reports, optionally filtered by session or patient."""
    reports = report_store.list(session_id=session_id, patient_id=patient_id)
    return ReportListResponse(reports=reports, total_count=len(reports))


@router.get("/reports/{report_id}", response_model=DiagnosticReport)
def get_report(report_id: str):
    report = report_store.get(report_id)
    if report is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Report {report_id} not found")
    return report


@router.post("/reports/export")
def export_report(payload: ReportExportRequest):
    """Download a report as a plain-text file."""
    if payload.format != "text":
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unsupported export format: {payload.format}",
        )
    filename = report_filename(payload.report)
    return PlainTextResponse(
        content=format_report_text(payload.report),
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.delete("/reports/{report_id}")
def delete_report(report_id: str):
    if not report_store.delete(report_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Report {report_id} not found")
    return {"message": f"Report {report_id} deleted successfully"}
