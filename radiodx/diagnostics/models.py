"""
Diagnostic run models: images, batches, findings and reports
"""
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import List, Optional
from datetime import datetime, timezone
from enum import Enum

from radiodx.core.errors import InvalidBatchTransition


class BatchStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


TERMINAL_STATUSES = frozenset({BatchStatus.COMPLETED, BatchStatus.ERROR})

_ALLOWED_TRANSITIONS = {
    BatchStatus.PENDING: frozenset({BatchStatus.PROCESSING}),
    BatchStatus.PROCESSING: frozenset({BatchStatus.COMPLETED, BatchStatus.ERROR}),
    BatchStatus.COMPLETED: frozenset(),
    BatchStatus.ERROR: frozenset(),
}


class SessionStatus(str, Enum):
    UPLOADING = "uploading"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


class Severity(str, Enum):
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    CRITICAL = "critical"


# Highest first; drives summary wording and export grouping
SEVERITY_PRIORITY = (Severity.CRITICAL, Severity.HIGH, Severity.MODERATE, Severity.LOW)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ApiModel(BaseModel):
    """Base model exchanging camelCase JSON with clients"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SnapshotModel(ApiModel):
    """Immutable snapshot passed between pipeline stages"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class UploadedImage(SnapshotModel):
    """A single uploaded medical image with its base64 payload"""
    id: str
    filename: str
    size: int = Field(..., ge=0)
    media_type: str = Field(..., alias="type")
    data: str = Field(..., alias="base64", repr=False)
    uploaded_at: datetime = Field(default_factory=utcnow)


class ImageBatch(SnapshotModel):
    """
    One ordered group of images submitted together to the inference service.

    Status moves pending -> processing -> completed | error. Every transition
    returns a new snapshot; completed and error are terminal.
    """
    id: str
    images: List[UploadedImage] = Field(..., min_length=1)
    batch_number: int = Field(..., ge=1)
    total_batches: int = Field(..., ge=1)
    status: BatchStatus = BatchStatus.PENDING
    result: Optional[str] = None
    error: Optional[str] = None
    processed_at: Optional[datetime] = None

    @property
    def image_ids(self) -> List[str]:
        return [image.id for image in self.images]

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def _transition(self, target: BatchStatus, **changes) -> "ImageBatch":
        if target not in _ALLOWED_TRANSITIONS[self.status]:
            raise InvalidBatchTransition(
                f"Batch {self.batch_number} cannot move from {self.status.value} to {target.value}"
            )
        return self.model_copy(update={"status": target, **changes})

    def start(self) -> "ImageBatch":
        return self._transition(BatchStatus.PROCESSING)

    def complete(self, result: str, processed_at: Optional[datetime] = None) -> "ImageBatch":
        return self._transition(
            BatchStatus.COMPLETED,
            result=result,
            processed_at=processed_at or utcnow(),
        )

    def fail(self, error: str) -> "ImageBatch":
        return self._transition(BatchStatus.ERROR, error=error)


class Finding(SnapshotModel):
    """One structured observation extracted from a batch reply"""
    id: str
    description: str
    severity: Severity = Severity.MODERATE
    location: Optional[str] = None
    confidence: int = Field(50, ge=0, le=100)
    related_images: List[str] = Field(default_factory=list)


class DiagnosticReport(SnapshotModel):
    """Consolidated report for one run"""
    id: str
    session_id: str
    patient_id: Optional[str] = None
    summary: str
    findings: List[Finding] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    confidence: int = Field(0, ge=0, le=100)
    processing_time: int = Field(0, ge=0, description="Milliseconds between first and last batch completion")
    image_count: int = Field(..., ge=0)
    generated_at: datetime = Field(default_factory=utcnow)


class ProcessingStatus(ApiModel):
    """Live progress of a run"""
    session_id: str
    current_batch: int
    total_batches: int
    completed_batches: int
    failed_batches: int = 0
    is_processing: bool
    current_status: str
    error: Optional[str] = None
    estimated_time_remaining: Optional[float] = None


class SessionSummary(ApiModel):
    """Dashboard summary of a session"""
    status: str
    progress: int
    summary: str
    critical_findings: int
    total_findings: int


class DiagnoseRequest(ApiModel):
    """Inbound run request; emptiness is checked before partitioning"""
    session_id: str = ""
    images: List[UploadedImage] = Field(default_factory=list)
    patient_id: Optional[str] = None
    custom_prompt: Optional[str] = None


class DiagnoseResponse(ApiModel):
    """Outcome of a run: report plus the full batch status sequence"""
    success: bool
    session_id: str
    batch_results: List[ImageBatch]
    final_report: Optional[DiagnosticReport] = None
    is_complete: bool
    fully_succeeded: bool = False
    failed_batches: List[int] = Field(default_factory=list)
    message: Optional[str] = None
    error: Optional[str] = None
