"""
Error taxonomy for diagnostic runs.
"""

from typing import List


class RadioDxError(Exception):
    """Base class for RadioDx domain errors."""


class InputValidationError(RadioDxError):
    """Image collection rejected before partitioning."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class InvalidBatchTransition(RadioDxError):
    """A batch was asked to move along an edge its state machine does not have."""


class PayloadParseError(RadioDxError):
    """A model reply could not be read as a diagnostic payload."""


class RunFailedError(RadioDxError):
    """Every batch of a run ended in error; no report can be compiled."""

    def __init__(self, batches):
        self.batches = list(batches)
        details = "; ".join(
            f"Batch {batch.batch_number}: {batch.error or 'Unknown error'}"
            for batch in self.batches
        )
        super().__init__(f"All batches failed to process. Errors: {details}")
