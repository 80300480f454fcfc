import os
import sys
from datetime import datetime, timedelta, timezone

import pytest

# Ensure project root is on PYTHONPATH for tests
ROOT_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

# Test defaults; must be set before radiodx.core.config is imported.
os.environ.setdefault("INFERENCE_API_KEY", "test-key")
os.environ.setdefault("INFERENCE_API_URL", "http://inference.test/chat/completions")
os.environ.setdefault("BATCH_PACING_SECONDS", "0")
os.environ.setdefault("DIAGNOSE_RATE_LIMIT", "1000/minute")

from radiodx.core.store import report_store, session_tracker  # noqa: E402
from radiodx.diagnostics.inference import InferenceResult  # noqa: E402
from radiodx.diagnostics.models import UploadedImage  # noqa: E402

BASE_TIME = datetime(2025, 3, 1, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def anyio_backend():
    """Configure the async test backend to use asyncio only."""
    return 'asyncio'


@pytest.fixture(autouse=True)
def clean_stores():
    yield
    report_store.clear()
    session_tracker.clear()


def make_images(count, prefix="img"):
    return [
        UploadedImage(
            id=f"{prefix}-{i}",
            filename=f"scan_{i:03d}.png",
            size=1024 + i,
            media_type="image/png",
            data="aGVsbG8=",
            uploaded_at=BASE_TIME,
        )
        for i in range(count)
    ]


class FakeInferenceClient:
    """Scripted stand-in for InferenceClient.process_batch."""

    def __init__(self, replies=None, default=None, on_call=None):
        # replies: {batch_number: InferenceResult | Exception}
        self.replies = replies or {}
        self.default = default or InferenceResult.ok('{"summary": "ok", "findings": [], "confidence": 80}')
        self.on_call = on_call
        self.calls = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def process_batch(self, images, batch_number, total_batches, custom_prompt=None, timeout=None):
        self.calls.append({
            "batch_number": batch_number,
            "total_batches": total_batches,
            "image_ids": [image.id for image in images],
            "custom_prompt": custom_prompt,
            "timeout": timeout,
        })
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.on_call is not None:
                self.on_call(batch_number)
            reply = self.replies.get(batch_number, self.default)
            if isinstance(reply, Exception):
                raise reply
            return reply
        finally:
            self.in_flight -= 1


async def no_sleep(seconds):
    return None


def ts(seconds):
    return BASE_TIME + timedelta(seconds=seconds)


@pytest.fixture
def images():
    return make_images(5)
