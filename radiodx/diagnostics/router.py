"""
Diagnostic run endpoints: batch processing, progress and health
"""

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
import asyncio
import logging
from datetime import datetime

from radiodx.core.config import settings
from radiodx.core.errors import InputValidationError, RunFailedError
from radiodx.core.rate_limit import limiter
from radiodx.core.store import session_tracker
from radiodx.diagnostics.inference import get_system_prompt
from radiodx.diagnostics.models import DiagnoseRequest, DiagnoseResponse
from radiodx.diagnostics.orchestrator import failed_batches
from radiodx.diagnostics.pipeline import DiagnosticPipeline
from radiodx.reports.formatter import summarize_session

logger = logging.getLogger(__name__)
router = APIRouter()


def get_pipeline() -> DiagnosticPipeline:
    """Pipeline dependency for the diagnose route."""
    return DiagnosticPipeline()


@router.post("/diagnose", response_model=DiagnoseResponse)
@limiter.limit(settings.DIAGNOSE_RATE_LIMIT)
async def diagnose(
    request: Request,
    payload: DiagnoseRequest,
    pipeline: DiagnosticPipeline = Depends(get_pipeline),
):
    """
    Run uploaded images through the inference service in batches and
    compile one diagnostic report.

    Succeeds when at least one batch completed; failed batches are listed
    alongside the report. When every batch fails the response is a 500
    carrying each batch's error.
    """
    session_id = payload.session_id
    on_progress = session_tracker.progress_callback(session_id, payload.patient_id)

    try:
        result = await pipeline.run(payload, on_progress=on_progress)
    except InputValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except RunFailedError as e:
        session_tracker.fail(session_id, str(e), e.batches)
        body = DiagnoseResponse(
            success=False,
            session_id=session_id,
            batch_results=e.batches,
            is_complete=False,
            failed_batches=[batch.batch_number for batch in failed_batches(e.batches)],
            error=str(e),
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=body.model_dump(mode="json", by_alias=True),
        )
    except asyncio.CancelledError:
        session_tracker.fail(session_id, "Processing cancelled before all batches finished")
        raise
    except Exception as e:
        logger.exception(f"Diagnose error for session {session_id}")
        session_tracker.fail(session_id, f"Internal server error during diagnosis processing: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error during diagnosis processing",
        )

    session_tracker.finish(session_id, result.batch_results, result.final_report)
    logger.info(f"Session {session_id}: {result.message}")
    return result


@router.get("/diagnose/prompt")
def default_prompt():
    """Default instruction sent with every batch."""
    return {"systemPrompt": get_system_prompt()}


@router.get("/diagnose/{session_id}/status")
def diagnose_status(session_id: str):
    """Live progress of a run."""
    progress = session_tracker.status(session_id)
    if progress is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Session {session_id} not found")

    record = session_tracker.get(session_id)
    summary = summarize_session(record.status, record.batches, record.total_images, record.final_report)
    return {
        "progress": progress.model_dump(mode="json", by_alias=True),
        "session": summary.model_dump(mode="json", by_alias=True),
    }


@router.get("/health")
def health_check():
    """Health check for the diagnostic service."""
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "inference": {
            "endpoint": settings.INFERENCE_API_URL,
            "model": settings.INFERENCE_MODEL,
            "timeout_seconds": settings.INFERENCE_TIMEOUT_SECONDS,
            "api_key_configured": bool(settings.INFERENCE_API_KEY),
        },
        "batching": {
            "batch_size": settings.BATCH_SIZE,
            "pacing_seconds": settings.BATCH_PACING_SECONDS,
            "run_timeout_seconds": settings.run_timeout,
            "max_concurrent_batches": 1,
        },
        "endpoints": {
            "upload": "/upload",
            "diagnose": "/diagnose",
            "status": "/diagnose/{session_id}/status",
            "prompt": "/diagnose/prompt",
        },
    }
