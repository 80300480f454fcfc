"""
Image upload endpoints
"""

from fastapi import APIRouter, HTTPException, Request, status
from starlette.datastructures import UploadFile
from typing import List, Optional
import logging

from radiodx.core.config import settings
from radiodx.core.errors import InputValidationError
from radiodx.diagnostics.models import ApiModel, UploadedImage
from radiodx.diagnostics.partitioner import count_batches
from radiodx.uploads.validation import IncomingFile, ingest_files, resolve_session_id

logger = logging.getLogger(__name__)
router = APIRouter()


class UploadResponse(ApiModel):
    """Validated upload ready to be sent to /diagnose"""
    session_id: str
    patient_id: Optional[str] = None
    uploaded_images: List[UploadedImage]
    total_batches: int
    message: str


@router.post("/upload", response_model=UploadResponse)
async def upload_images(request: Request):
    """
    Upload medical images as multipart form data.

    Every form field whose name starts with 'file' is treated as an image.
    Optional 'sessionId' and 'patientId' fields are carried through.
    """
    form = await request.form()
    session_id = resolve_session_id(form.get("sessionId"))
    patient_id = form.get("patientId") or None

    incoming: List[IncomingFile] = []
    for key, value in form.multi_items():
        if key.startswith("file") and isinstance(value, UploadFile):
            incoming.append(IncomingFile(
                filename=value.filename or key,
                content_type=value.content_type or "",
                content=await value.read(),
            ))

    if not incoming:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No files provided")

    try:
        images = ingest_files(incoming)
    except InputValidationError as e:
        logger.warning(f"Upload rejected for session {session_id}: {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    total_batches = count_batches(len(images), settings.BATCH_SIZE)
    logger.info(f"Session {session_id}: Processed {len(images)} images into {total_batches} batches")

    return UploadResponse(
        session_id=session_id,
        patient_id=patient_id,
        uploaded_images=images,
        total_batches=total_batches,
        message=f"Successfully uploaded {len(images)} images",
    )


@router.get("/upload/limits")
def upload_limits():
    """Upload limits and supported media types."""
    return settings.upload_limits
