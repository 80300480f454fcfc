"""
Sequential batch processing against the inference service.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, List, Optional, Sequence

from radiodx.core.config import settings
from radiodx.diagnostics.inference import InferenceClient, InferenceResult
from radiodx.diagnostics.models import BatchStatus, ImageBatch, utcnow

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[List[ImageBatch]], None]


def completed_batches(batches: Sequence[ImageBatch]) -> List[ImageBatch]:
    return [batch for batch in batches if batch.status == BatchStatus.COMPLETED]


def failed_batches(batches: Sequence[ImageBatch]) -> List[ImageBatch]:
    return [batch for batch in batches if batch.status == BatchStatus.ERROR]


class BatchOrchestrator:
    """
    Drive batches through pending -> processing -> completed | error, one at a time.

    A failed batch only ends that batch; the loop moves on to the next one.
    A fixed pacing delay separates consecutive calls. With a run timeout,
    each call gets at most the time left in the run, and batches that cannot
    start before the deadline are marked as errors without being sent.
    """

    def __init__(
        self,
        client: InferenceClient,
        pacing_seconds: Optional[float] = None,
        run_timeout: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.client = client
        self.pacing_seconds = settings.BATCH_PACING_SECONDS if pacing_seconds is None else pacing_seconds
        self.run_timeout = run_timeout
        self._sleep = sleep
        self._clock = clock

    def _remaining(self, deadline: Optional[float]) -> Optional[float]:
        if deadline is None:
            return None
        return deadline - self._clock()

    async def _submit(self, batch: ImageBatch, custom_prompt: Optional[str], remaining: Optional[float]) -> InferenceResult:
        try:
            return await self.client.process_batch(
                batch.images,
                batch.batch_number,
                batch.total_batches,
                custom_prompt,
                timeout=remaining,
            )
        except Exception as e:
            logger.exception(f"Batch {batch.batch_number} processing error")
            return InferenceResult.failed(str(e) or "Unknown processing error")

    async def run(
        self,
        batches: Sequence[ImageBatch],
        custom_prompt: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> List[ImageBatch]:
        """
        Process every batch in ascending batch-number order.

        Returns a new list holding the terminal snapshot of each batch; the
        input sequence is left untouched. on_progress receives a fresh copy
        of the whole sequence after every transition.
        """
        current = sorted(batches, key=lambda batch: batch.batch_number)
        deadline = self._clock() + self.run_timeout if self.run_timeout else None

        def publish():
            if on_progress is not None:
                on_progress(list(current))

        logger.info(f"Starting processing of {len(current)} batches")

        for index, batch in enumerate(current):
            batch = batch.start()
            current[index] = batch
            publish()

            remaining = self._remaining(deadline)
            if remaining is not None and remaining <= 0:
                batch = batch.fail(
                    f"Run deadline exceeded before batch {batch.batch_number}/{batch.total_batches} was processed"
                )
                logger.warning(f"Batch {batch.batch_number} skipped: run deadline exceeded")
            else:
                logger.info(
                    f"Processing batch {batch.batch_number}/{batch.total_batches} with {len(batch.images)} images"
                )
                result = await self._submit(batch, custom_prompt, remaining)
                if result.success:
                    batch = batch.complete(result.content, processed_at=utcnow())
                    logger.info(f"Batch {batch.batch_number} completed successfully")
                else:
                    batch = batch.fail(result.error or "Unknown processing error")
                    logger.error(f"Batch {batch.batch_number} failed: {batch.error}")

            current[index] = batch
            publish()

            is_last = index == len(current) - 1
            if not is_last and self.pacing_seconds > 0:
                remaining = self._remaining(deadline)
                if remaining is None or remaining > 0:
                    await self._sleep(self.pacing_seconds)

        done = len(completed_batches(current))
        logger.info(f"Finished {len(current)} batches: {done} completed, {len(current) - done} failed")
        return current
