"""Tests for processor modules."""

import threading
import time

from wp_image_pipeline.core import ProcessingResult
from wp_image_pipeline.core.factories import select_batch_processor
from wp_image_pipeline.core.services import BatchItem
from wp_image_pipeline.processors import (
    multithread_process_batch,
    serial_process_batch,
)


def make_items(count):
    return [BatchItem.from_raw(f"content_c{i}_0") for i in range(count)]


def succeed(item):
    return ProcessingResult(image_id=item.image_id, success=True)


def test_serial_processor_keeps_order():
    items = make_items(3)

    results = serial_process_batch(items, succeed)

    assert [r.image_id for r in results] == [i.image_id for i in items]
    assert all(r.success for r in results)


def test_multithread_processor_keeps_order():
    items = make_items(6)

    def slow_first(item):
        # Early items finish last
        time.sleep(0.01 * (6 - items.index(item)))
        return succeed(item)

    results = multithread_process_batch(items, slow_first, max_workers=6)

    assert [r.image_id for r in results] == [i.image_id for i in items]


def test_multithread_processor_isolates_failures():
    items = make_items(3)

    def explode_on_second(item):
        if item is items[1]:
            raise RuntimeError("worker crashed")
        return succeed(item)

    results = multithread_process_batch(items, explode_on_second, max_workers=2)

    assert [r.success for r in results] == [True, False, True]
    assert results[1].error == "worker crashed"


def test_multithread_processor_bounds_concurrency():
    active = 0
    peak = 0
    lock = threading.Lock()

    def track(item):
        nonlocal active, peak
        with lock:
            active += 1
            peak = max(peak, active)
        time.sleep(0.02)
        with lock:
            active -= 1
        return succeed(item)

    multithread_process_batch(make_items(8), track, max_workers=2)

    assert peak <= 2


def test_empty_batch():
    assert serial_process_batch([], succeed) == []
    assert multithread_process_batch([], succeed) == []


def test_select_batch_processor():
    assert select_batch_processor(1) is serial_process_batch
    parallel = select_batch_processor(3)
    assert parallel.func is multithread_process_batch
    assert parallel.keywords == {"max_workers": 3}
