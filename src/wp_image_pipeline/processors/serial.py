"""Serial processor implementation - processes batch items one by one."""

from typing import Callable, List

from ..core import ProcessingResult
from ..core.services import BatchItem


def process_batch(
    batch: List[BatchItem],
    process_fn: Callable[[BatchItem], ProcessingResult],
) -> List[ProcessingResult]:
    """
    Processes a batch serially, one item at a time, in the current thread.

    Args:
        batch: The items to process, in request order.
        process_fn: Per-item function; expected to capture its own failures.

    Returns:
        A list of `ProcessingResult` objects in the same order as `batch`.
    """
    results = []

    for item in batch:
        result = process_fn(item)
        results.append(result)

    return results
