import math

import pytest

from conftest import make_images
from radiodx.diagnostics.models import BatchStatus
from radiodx.diagnostics.partitioner import count_batches, partition_images


@pytest.mark.parametrize("count,batch_size", [(1, 20), (20, 20), (21, 20), (45, 20), (7, 3), (10, 1)])
def test_partition_reproduces_input_order(count, batch_size):
    images = make_images(count)
    batches = partition_images(images, batch_size, "s1")

    flattened = [image.id for batch in batches for image in batch.images]
    assert flattened == [image.id for image in images]
    assert len(batches) == math.ceil(count / batch_size)
    assert all(0 < len(batch.images) <= batch_size for batch in batches)


def test_partition_numbering_and_ids():
    batches = partition_images(make_images(45), 20, "session-9")

    assert [batch.batch_number for batch in batches] == [1, 2, 3]
    assert {batch.total_batches for batch in batches} == {3}
    assert [batch.id for batch in batches] == ["batch-session-9-0", "batch-session-9-1", "batch-session-9-2"]
    assert [len(batch.images) for batch in batches] == [20, 20, 5]
    assert all(batch.status == BatchStatus.PENDING for batch in batches)


def test_partition_is_deterministic():
    images = make_images(12)
    assert partition_images(images, 5, "s") == partition_images(images, 5, "s")


def test_partition_rejects_non_positive_batch_size():
    with pytest.raises(ValueError):
        partition_images(make_images(3), 0, "s")


def test_count_batches():
    assert count_batches(3, 20) == 1
    assert count_batches(40, 20) == 2
    assert count_batches(41, 20) == 3
