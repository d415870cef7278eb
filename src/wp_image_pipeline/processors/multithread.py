"""Multithreaded processor implementation - uses a bounded thread pool."""

from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, List, Optional

from ..core import ProcessingResult, get_logger
from ..core.services import BatchItem

logger = get_logger("processor")


def process_batch(
    batch: List[BatchItem],
    process_fn: Callable[[BatchItem], ProcessingResult],
    max_workers: int = 4,
) -> List[ProcessingResult]:
    """
    Process a batch of items using a bounded thread pool.

    Args:
        batch: The items to process
        process_fn: Per-item function; expected to capture its own failures
        max_workers: Upper bound on concurrent items

    Returns:
        List of processing results, in the same order as `batch`
    """
    if not batch:
        return []

    results: List[Optional[ProcessingResult]] = [None] * len(batch)
    workers = max(1, min(max_workers, len(batch)))

    with ThreadPoolExecutor(max_workers=workers) as executor:
        # Submit all tasks
        future_to_index = {
            executor.submit(process_fn, item): index for index, item in enumerate(batch)
        }

        # Collect results as they complete
        for future in as_completed(future_to_index):
            index = future_to_index[future]
            try:
                results[index] = future.result()
            except Exception as e:
                # A failure escaping process_fn still only affects its own item
                item = batch[index]
                logger.error(f"[{item.image_id}] Unexpected worker failure: {e}")
                results[index] = ProcessingResult(
                    image_id=item.image_id, success=False, error=str(e)
                )

    return [r for r in results if r is not None]
