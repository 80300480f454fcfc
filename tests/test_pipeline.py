import json

import pytest

from conftest import FakeInferenceClient, make_images, no_sleep
from radiodx.core.errors import InputValidationError, RunFailedError
from radiodx.diagnostics.inference import InferenceResult
from radiodx.diagnostics.models import BatchStatus, DiagnoseRequest
from radiodx.diagnostics.orchestrator import BatchOrchestrator
from radiodx.diagnostics.pipeline import DiagnosticPipeline


def _pipeline(client, batch_size=20):
    return DiagnosticPipeline(BatchOrchestrator(client, pacing_seconds=0, sleep=no_sleep), batch_size=batch_size)


def _reply(description, severity="moderate", recommendations=(), confidence=80):
    return InferenceResult.ok(json.dumps({
        "summary": "Batch reviewed",
        "findings": [{"description": description, "severity": severity}],
        "recommendations": list(recommendations),
        "confidence": confidence,
    }))


@pytest.mark.anyio
async def test_total_failure_produces_no_report():
    client = FakeInferenceClient(default=InferenceResult.failed("API request failed: 401 - unauthorized"))
    request = DiagnoseRequest(session_id="s1", images=make_images(3))

    with pytest.raises(RunFailedError) as exc_info:
        await _pipeline(client).run(request)

    error = exc_info.value
    assert len(error.batches) == 1
    assert error.batches[0].status == BatchStatus.ERROR
    assert str(error) == "All batches failed to process. Errors: Batch 1: API request failed: 401 - unauthorized"


@pytest.mark.anyio
async def test_total_failure_names_every_failed_batch():
    client = FakeInferenceClient(replies={
        1: InferenceResult.failed("timed out"),
        2: InferenceResult.failed("API request failed: 502 - bad gateway"),
    })
    request = DiagnoseRequest(session_id="s1", images=make_images(4))

    with pytest.raises(RunFailedError) as exc_info:
        await _pipeline(client, batch_size=2).run(request)

    assert "Batch 1: timed out" in str(exc_info.value)
    assert "Batch 2: API request failed: 502 - bad gateway" in str(exc_info.value)


@pytest.mark.anyio
async def test_partial_failure_still_reports_completed_batches():
    client = FakeInferenceClient(replies={
        1: _reply("Consolidation", "high", ["Follow-up CT recommended"], 80),
        2: InferenceResult.failed("Inference request timed out after 300 seconds"),
        3: _reply("Nodule", "critical", ["Follow-up CT recommended", "Biopsy"], 90),
    })
    request = DiagnoseRequest(session_id="s1", images=make_images(50), patient_id="P-1")

    response = await _pipeline(client).run(request)

    assert response.success is True
    assert response.is_complete is True
    assert response.fully_succeeded is False
    assert response.failed_batches == [2]
    assert response.message == "Processing completed with 1 batch(es) failed out of 3"
    assert [batch.status for batch in response.batch_results] == [
        BatchStatus.COMPLETED, BatchStatus.ERROR, BatchStatus.COMPLETED
    ]

    report = response.final_report
    assert [finding.description for finding in report.findings] == ["Consolidation", "Nodule"]
    assert report.recommendations == ["Follow-up CT recommended", "Biopsy"]
    assert report.confidence == 85
    assert report.image_count == 50
    assert report.patient_id == "P-1"
    batch_three_ids = {image.id for image in response.batch_results[2].images}
    assert set(report.findings[1].related_images) == batch_three_ids


@pytest.mark.anyio
async def test_full_success_message():
    request = DiagnoseRequest(session_id="s1", images=make_images(21))
    response = await _pipeline(FakeInferenceClient()).run(request)

    assert response.fully_succeeded is True
    assert response.failed_batches == []
    assert response.message == "Successfully processed all 2 batches"


@pytest.mark.anyio
@pytest.mark.parametrize("request_kwargs,message", [
    ({"session_id": "s1", "images": []}, "No images provided for processing"),
    ({"session_id": "", "images": make_images(1)}, "Missing required fields"),
])
async def test_invalid_input_is_rejected_before_any_call(request_kwargs, message):
    client = FakeInferenceClient()

    with pytest.raises(InputValidationError) as exc_info:
        await _pipeline(client).run(DiagnoseRequest(**request_kwargs))

    assert message in str(exc_info.value)
    assert client.calls == []


@pytest.mark.anyio
async def test_duplicate_image_ids_are_rejected():
    images = make_images(2)
    with pytest.raises(InputValidationError):
        await _pipeline(FakeInferenceClient()).run(DiagnoseRequest(session_id="s1", images=images + images[:1]))


@pytest.mark.anyio
@pytest.mark.parametrize("confidence,expected", [(150, 100), (-5, 0)])
async def test_out_of_range_batch_confidence_still_yields_report(confidence, expected):
    client = FakeInferenceClient(default=InferenceResult.ok(json.dumps({
        "summary": "x", "findings": [], "confidence": confidence,
    })))
    response = await _pipeline(client).run(DiagnoseRequest(session_id="s1", images=make_images(3)))

    assert response.success is True
    assert response.final_report.confidence == expected
