import logging
import threading
from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pytest

from mask_studio.assets import AssetLoadingError
from mask_studio.segmentation import (
    ClassMapSegmenter,
    KMeansSegmenter,
    SegmentationCache,
    SegmentationResult,
    SegmentationUnavailable,
    Segmenter,
    fit_class_map,
)

from mask_helpers import CountingSegmenter, FailingSegmenter


def test_cache_runs_segmenter_once_per_image(block_class_map, blank_image):
    segmenter = CountingSegmenter(block_class_map)
    cache = SegmentationCache(segmenter)
    cache.invalidate(blank_image)

    first = cache.get()
    second = cache.get()

    assert segmenter.calls == 1
    assert first is second
    assert cache.has_result()


def test_invalidate_forces_new_request(block_class_map, blank_image):
    segmenter = CountingSegmenter(block_class_map)
    cache = SegmentationCache(segmenter)
    cache.invalidate(blank_image)
    cache.get()

    cache.invalidate(blank_image.copy())
    cache.get()

    assert segmenter.calls == 2


def test_prefetch_shares_result_with_get(block_class_map, blank_image):
    segmenter = CountingSegmenter(block_class_map)
    cache = SegmentationCache(segmenter)
    cache.invalidate(blank_image)

    with ThreadPoolExecutor(max_workers=1) as executor:
        future = cache.prefetch(executor)
        again = cache.prefetch(executor)
        future.result(timeout=5)

    assert future is again
    assert np.array_equal(cache.get(), block_class_map)
    assert segmenter.calls == 1


def test_failures_are_reported_and_not_cached(blank_image, caplog):
    segmenter = FailingSegmenter()
    cache = SegmentationCache(segmenter)
    cache.invalidate(blank_image)

    with caplog.at_level(logging.ERROR):
        with pytest.raises(SegmentationUnavailable, match="model crashed"):
            cache.get()
    with pytest.raises(SegmentationUnavailable):
        cache.get()

    assert segmenter.calls == 2
    assert "Segmentation failed" in caplog.text
    assert not cache.has_result()


class BlockingSegmenter(Segmenter):
    """Holds every request open until the test releases it."""

    name = "blocking"

    def __init__(self, class_map):
        self.class_map = class_map
        self.calls = 0
        self.fail = False
        self.started = threading.Event()
        self.release = threading.Event()

    def segment(self, image):
        self.calls += 1
        self.started.set()
        assert self.release.wait(timeout=5)
        if self.fail:
            raise RuntimeError("model crashed")
        return SegmentationResult(class_map=self.class_map)


def test_peek_never_starts_a_request(block_class_map, blank_image):
    segmenter = CountingSegmenter(block_class_map)
    cache = SegmentationCache(segmenter)
    cache.invalidate(blank_image)

    assert cache.peek() is None
    assert segmenter.calls == 0

    cache.get()
    assert np.array_equal(cache.peek(), block_class_map)
    assert segmenter.calls == 1


def _start_waiter(cache, monkeypatch, outcomes):
    """Call ``cache.get`` on a thread and return once it holds the shared future."""
    claimed = threading.Event()
    unwrap = cache._unwrap

    def unwrap_after_claim(future, timeout):
        claimed.set()
        return unwrap(future, timeout)

    def wait_for_class_map():
        try:
            outcomes.append(cache.get(timeout=5))
        except SegmentationUnavailable as exc:
            outcomes.append(exc)

    monkeypatch.setattr(cache, "_unwrap", unwrap_after_claim)
    waiter = threading.Thread(target=wait_for_class_map)
    waiter.start()
    assert claimed.wait(timeout=5)
    return waiter


def test_concurrent_requests_share_one_in_flight_call(block_class_map, blank_image, monkeypatch):
    segmenter = BlockingSegmenter(block_class_map)
    cache = SegmentationCache(segmenter)
    cache.invalidate(blank_image)
    outcomes = []

    with ThreadPoolExecutor(max_workers=1) as executor:
        future = cache.prefetch(executor)
        assert segmenter.started.wait(timeout=5)

        assert cache.prefetch(executor) is future
        assert cache.peek() is None
        with pytest.raises(SegmentationUnavailable, match="still running"):
            cache.get(timeout=0.05)

        waiter = _start_waiter(cache, monkeypatch, outcomes)
        segmenter.release.set()
        waiter.join(timeout=5)
        first = future.result(timeout=5)

    assert not waiter.is_alive()
    assert outcomes[0] is first
    assert cache.get() is first
    assert segmenter.calls == 1


def test_in_flight_failure_reaches_every_waiter_then_retries(block_class_map, blank_image, monkeypatch):
    segmenter = BlockingSegmenter(block_class_map)
    segmenter.fail = True
    cache = SegmentationCache(segmenter)
    cache.invalidate(blank_image)
    outcomes = []

    with ThreadPoolExecutor(max_workers=1) as executor:
        future = cache.prefetch(executor)
        assert segmenter.started.wait(timeout=5)
        assert cache.prefetch(executor) is future

        waiter = _start_waiter(cache, monkeypatch, outcomes)
        segmenter.release.set()
        waiter.join(timeout=5)

        with pytest.raises(SegmentationUnavailable, match="model crashed"):
            future.result(timeout=5)

    assert not waiter.is_alive()
    assert len(outcomes) == 1
    assert isinstance(outcomes[0], SegmentationUnavailable)
    assert not cache.has_result()
    assert segmenter.calls == 1

    segmenter.fail = False
    assert np.array_equal(cache.get(timeout=5), block_class_map)
    assert segmenter.calls == 2


def test_cache_without_image_or_backend_is_unavailable(blank_image):
    with pytest.raises(SegmentationUnavailable):
        SegmentationCache(FailingSegmenter()).get()

    cache = SegmentationCache(None)
    cache.invalidate(blank_image)
    with pytest.raises(SegmentationUnavailable):
        cache.get()


def test_smaller_class_map_is_resized_nearest(caplog):
    class_map = np.array([[1, 2], [3, 4]], dtype=np.int32)

    with caplog.at_level(logging.WARNING):
        fitted = fit_class_map(class_map, 4, 4)

    assert fitted.shape == (4, 4)
    assert fitted[:2, :2].tolist() == [[1, 1], [1, 1]]
    assert fitted[3, 3] == 4
    assert "Resizing class map" in caplog.text


def test_fit_rejects_negative_ids():
    with pytest.raises(SegmentationUnavailable):
        fit_class_map(np.array([[0, -1]]), 2, 1)


def test_class_map_segmenter_loads_npy(tmp_path, block_class_map, blank_image):
    path = tmp_path / "classes.npy"
    np.save(path, block_class_map)

    result = ClassMapSegmenter(path).segment(blank_image)

    assert np.array_equal(result.class_map, block_class_map)
    assert (result.width, result.height) == (10, 10)


def test_class_map_segmenter_rejects_missing_file(tmp_path):
    with pytest.raises(AssetLoadingError):
        ClassMapSegmenter(tmp_path / "missing.npy")


def test_kmeans_separates_two_colours():
    image = np.zeros((20, 20, 3), dtype=np.uint8)
    image[:, 10:] = (240, 240, 240)

    class_map = KMeansSegmenter(clusters=2).segment(image).class_map

    assert class_map.shape == (20, 20)
    assert set(np.unique(class_map)) == {1, 2}
    assert len(np.unique(class_map[:, :10])) == 1
    assert len(np.unique(class_map[:, 10:])) == 1
    assert class_map[0, 0] != class_map[0, 19]


def test_kmeans_rejects_zero_clusters():
    with pytest.raises(ValueError):
        KMeansSegmenter(clusters=0)
