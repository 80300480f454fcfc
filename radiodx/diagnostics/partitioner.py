"""
Split an ordered image collection into fixed-size batches.
"""

from typing import List, Sequence

from radiodx.diagnostics.models import ImageBatch, UploadedImage


def chunk_images(images: Sequence[UploadedImage], batch_size: int) -> List[List[UploadedImage]]:
    """Slice images into consecutive groups of at most batch_size, keeping order."""
    if batch_size <= 0:
        raise ValueError(f"batch_size must be positive, got {batch_size}")
    return [list(images[start:start + batch_size]) for start in range(0, len(images), batch_size)]


def partition_images(
    images: Sequence[UploadedImage],
    batch_size: int,
    session_id: str,
) -> List[ImageBatch]:
    """
    Build the pending batches for a run.

    Batch i (0-based) holds images[i*batch_size : (i+1)*batch_size]; numbering
    is 1-based and every batch carries the final partition count. Callers
    reject an empty collection before getting here.
    """
    groups = chunk_images(images, batch_size)
    return [
        ImageBatch(
            id=f"batch-{session_id}-{index}",
            images=group,
            batch_number=index + 1,
            total_batches=len(groups),
        )
        for index, group in enumerate(groups)
    ]


def count_batches(image_count: int, batch_size: int) -> int:
    """Number of batches a collection of image_count images will produce."""
    if batch_size <= 0:
        raise ValueError(f"batch_size must be positive, got {batch_size}")
    return -(-image_count // batch_size)
