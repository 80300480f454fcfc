"""
End-to-end diagnostic run: partition, process, aggregate, compile.
"""

import logging
from typing import Optional

from radiodx.core.config import settings
from radiodx.core.errors import InputValidationError, RunFailedError
from radiodx.diagnostics.aggregator import aggregate_batches
from radiodx.diagnostics.compiler import compile_report
from radiodx.diagnostics.inference import InferenceClient
from radiodx.diagnostics.models import DiagnoseRequest, DiagnoseResponse
from radiodx.diagnostics.orchestrator import (
    BatchOrchestrator,
    ProgressCallback,
    completed_batches,
    failed_batches,
)
from radiodx.diagnostics.partitioner import partition_images

logger = logging.getLogger(__name__)


def validate_diagnose_request(request: DiagnoseRequest) -> None:
    """Reject requests that cannot start a run."""
    if not request.session_id or not request.session_id.strip():
        raise InputValidationError(["Missing required fields: sessionId and images array"])
    if not request.images:
        raise InputValidationError(["No images provided for processing"])
    ids = [image.id for image in request.images]
    if len(set(ids)) != len(ids):
        raise InputValidationError(["Image identifiers must be unique"])


class DiagnosticPipeline:
    """Runs one image collection through the batch pipeline."""

    def __init__(
        self,
        orchestrator: Optional[BatchOrchestrator] = None,
        batch_size: Optional[int] = None,
    ):
        self.orchestrator = orchestrator or BatchOrchestrator(
            InferenceClient(),
            run_timeout=settings.run_timeout,
        )
        self.batch_size = batch_size or settings.BATCH_SIZE

    async def run(
        self,
        request: DiagnoseRequest,
        on_progress: Optional[ProgressCallback] = None,
    ) -> DiagnoseResponse:
        """
        Process the request and return the report with every batch outcome.

        Raises InputValidationError before any batch is built, and
        RunFailedError when no batch completed.
        """
        validate_diagnose_request(request)

        batches = partition_images(request.images, self.batch_size, request.session_id)
        logger.info(
            f"Session {request.session_id}: {len(request.images)} images in {len(batches)} batches"
        )

        settled = await self.orchestrator.run(batches, request.custom_prompt, on_progress)
        errored = failed_batches(settled)

        if not completed_batches(settled):
            logger.error(f"Session {request.session_id}: all {len(settled)} batches failed")
            raise RunFailedError(settled)

        aggregate = aggregate_batches(settled)
        if aggregate.degraded_batches:
            logger.warning(
                f"Session {request.session_id}: unparseable replies from batches {aggregate.degraded_batches}"
            )
        report = compile_report(request.session_id, settled, request.patient_id, aggregate)

        if errored:
            message = f"Processing completed with {len(errored)} batch(es) failed out of {len(settled)}"
        else:
            message = f"Successfully processed all {len(settled)} batches"
        logger.info(f"Session {request.session_id} completed with final report generated")

        return DiagnoseResponse(
            success=True,
            session_id=request.session_id,
            batch_results=settled,
            final_report=report,
            is_complete=True,
            fully_succeeded=not errored,
            failed_batches=[batch.batch_number for batch in errored],
            message=message,
        )
