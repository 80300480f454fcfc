"""
In-memory session tracking and report storage.

Reports have no durable store; ReportStore keeps them for the life of the
process. SessionTracker follows runs while they are in flight so progress
can be polled.
"""

import logging
import time
from datetime import datetime
from typing import Callable, Dict, List, Optional

from pydantic import Field

from radiodx.core.config import settings
from radiodx.diagnostics.models import (
    ApiModel,
    BatchStatus,
    DiagnosticReport,
    ImageBatch,
    ProcessingStatus,
    SessionStatus,
    utcnow,
)

logger = logging.getLogger(__name__)


class SessionRecord(ApiModel):
    """Everything known about one run"""
    session_id: str
    patient_id: Optional[str] = None
    total_images: int
    batches: List[ImageBatch] = Field(default_factory=list)
    status: SessionStatus = SessionStatus.PROCESSING
    created_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    final_report: Optional[DiagnosticReport] = None
    error: Optional[str] = None
    started_monotonic: float = Field(0.0, exclude=True)


def _without_payloads(batches: List[ImageBatch]) -> List[ImageBatch]:
    """Batch snapshots with image payloads emptied; progress only needs ids and statuses."""
    return [
        batch.model_copy(update={
            "images": [image.model_copy(update={"data": ""}) for image in batch.images],
        })
        for batch in batches
    ]


class SessionTracker:
    """
    Holds the latest batch snapshots of each run, keyed by session id.

    Image payloads are not kept. Once more than max_sessions runs are
    tracked, the oldest finished ones are evicted.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic, max_sessions: Optional[int] = None):
        self._sessions: Dict[str, SessionRecord] = {}
        self._clock = clock
        self.max_sessions = settings.MAX_TRACKED_SESSIONS if max_sessions is None else max_sessions

    def _evict(self) -> None:
        finished = [
            session_id for session_id, record in self._sessions.items()
            if record.status != SessionStatus.PROCESSING
        ]
        excess = len(self._sessions) - self.max_sessions
        for session_id in finished[:max(excess, 0)]:
            del self._sessions[session_id]
            logger.debug(f"Evicted finished session {session_id}")

    def begin(self, session_id: str, total_images: int, patient_id: Optional[str] = None) -> SessionRecord:
        record = SessionRecord(
            session_id=session_id,
            patient_id=patient_id,
            total_images=total_images,
            started_monotonic=self._clock(),
        )
        self._sessions.pop(session_id, None)
        self._sessions[session_id] = record
        self._evict()
        return record

    def get(self, session_id: str) -> Optional[SessionRecord]:
        return self._sessions.get(session_id)

    def update(self, session_id: str, batches: List[ImageBatch]) -> None:
        record = self._sessions.get(session_id)
        if record is not None:
            record.batches = _without_payloads(batches)

    def progress_callback(
        self, session_id: str, patient_id: Optional[str] = None
    ) -> Callable[[List[ImageBatch]], None]:
        """
        Progress hook for a run.

        The first snapshot registers the session unless a run under that id
        is already being tracked, so rejected requests never appear here.
        """
        def on_progress(batches: List[ImageBatch]) -> None:
            record = self._sessions.get(session_id)
            if record is None or record.status != SessionStatus.PROCESSING:
                total_images = sum(len(batch.images) for batch in batches)
                self.begin(session_id, total_images, patient_id)
            self.update(session_id, batches)
        return on_progress

    def finish(self, session_id: str, batches: List[ImageBatch], report: DiagnosticReport) -> None:
        record = self._sessions.get(session_id)
        if record is None:
            return
        record.batches = _without_payloads(batches)
        record.final_report = report
        record.status = SessionStatus.COMPLETED
        record.completed_at = utcnow()

    def fail(self, session_id: str, error: str, batches: Optional[List[ImageBatch]] = None) -> None:
        record = self._sessions.get(session_id)
        if record is None:
            return
        if batches is not None:
            record.batches = _without_payloads(batches)
        record.status = SessionStatus.ERROR
        record.error = error
        record.completed_at = utcnow()

    def status(self, session_id: str) -> Optional[ProcessingStatus]:
        """Progress snapshot for a session, or None if it is unknown."""
        record = self._sessions.get(session_id)
        if record is None:
            return None

        batches = record.batches
        total = len(batches)
        completed = sum(1 for batch in batches if batch.status == BatchStatus.COMPLETED)
        failed = sum(1 for batch in batches if batch.status == BatchStatus.ERROR)
        finished = completed + failed
        in_flight = next((batch for batch in batches if batch.status == BatchStatus.PROCESSING), None)
        is_processing = record.status == SessionStatus.PROCESSING

        if in_flight is not None:
            current_batch = in_flight.batch_number
            current_status = f"Processing batch {in_flight.batch_number} of {total}"
        elif is_processing:
            current_batch = finished
            current_status = "Preparing batches" if finished == 0 else f"Waiting before batch {finished + 1} of {total}"
        else:
            current_batch = finished
            current_status = "Analysis complete" if record.status == SessionStatus.COMPLETED else "Error occurred"

        estimated = None
        if is_processing and 0 < finished < total:
            elapsed = self._clock() - record.started_monotonic
            estimated = round(elapsed / finished * (total - finished), 1)

        return ProcessingStatus(
            session_id=session_id,
            current_batch=current_batch,
            total_batches=total,
            completed_batches=completed,
            failed_batches=failed,
            is_processing=is_processing,
            current_status=current_status,
            error=record.error,
            estimated_time_remaining=estimated,
        )

    def clear(self) -> None:
        self._sessions.clear()


class ReportStore:
    """Report storage keyed by report id."""

    def __init__(self):
        self._reports: Dict[str, DiagnosticReport] = {}

    def save(self, report: DiagnosticReport) -> DiagnosticReport:
        self._reports[report.id] = report
        logger.info(f"Saved report {report.id} for session {report.session_id}")
        return report

    def get(self, report_id: str) -> Optional[DiagnosticReport]:
        return self._reports.get(report_id)

    def list(self, session_id: Optional[str] = None, patient_id: Optional[str] = None) -> List[DiagnosticReport]:
        reports = list(self._reports.values())
        if session_id:
            reports = [report for report in reports if report.session_id == session_id]
        if patient_id:
            reports = [report for report in reports if report.patient_id == patient_id]
        return sorted(reports, key=lambda report: report.generated_at, reverse=True)

    def delete(self, report_id: str) -> bool:
        removed = self._reports.pop(report_id, None)
        if removed is not None:
            logger.info(f"Deleted report {report_id}")
        return removed is not None

    def clear(self) -> None:
        self._reports.clear()


# Global stores
session_tracker = SessionTracker()
report_store = ReportStore()
