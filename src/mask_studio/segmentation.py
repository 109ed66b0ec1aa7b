"""
Boundary to the external semantic-segmentation collaborator.

The editor only ever needs a dense per-pixel class map for the loaded image.
:class:`SegmentationCache` makes sure the collaborator is asked at most once
per image, even when a hover preview and a click ask at the same time.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from concurrent.futures import Executor, Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

import cv2
import numpy as np

from .assets import load_class_map

logger = logging.getLogger(__name__)


class SegmentationUnavailable(RuntimeError):
    """Raised when no class map can be produced for the current image."""


@dataclass(frozen=True)
class SegmentationResult:
    """Dense class-id grid returned by a segmenter."""

    class_map: np.ndarray

    @property
    def width(self) -> int:
        return int(self.class_map.shape[1])

    @property
    def height(self) -> int:
        return int(self.class_map.shape[0])


def fit_class_map(class_map: np.ndarray, width: int, height: int) -> np.ndarray:
    """Validate a class map and resize it (nearest neighbour) to ``width`` x ``height``."""
    if class_map.ndim == 3 and class_map.shape[2] == 1:
        class_map = class_map[..., 0]
    if class_map.ndim != 2 or class_map.size == 0:
        raise SegmentationUnavailable(f"Segmenter returned an invalid class map of shape {class_map.shape}")
    if not np.issubdtype(class_map.dtype, np.integer):
        class_map = np.rint(class_map).astype(np.int64)
    if class_map.min() < 0:
        raise SegmentationUnavailable("Segmenter returned negative class ids")

    src_height, src_width = class_map.shape
    if (src_width, src_height) == (width, height):
        return class_map
    logger.warning(
        "Resizing class map from %dx%d to %dx%d (nearest neighbour)",
        src_width,
        src_height,
        width,
        height,
    )
    rows = (np.arange(height) * src_height) // height
    cols = (np.arange(width) * src_width) // width
    return class_map[rows[:, None], cols[None, :]]


class Segmenter(ABC):
    """Produces a per-pixel class map for an RGB image."""

    name: str = "segmenter"

    @abstractmethod
    def segment(self, image: np.ndarray) -> SegmentationResult:
        """Return the class map for ``image`` (``(height, width, 3)`` RGB ``uint8``)."""
        ...


class ClassMapSegmenter(Segmenter):
    """Serves a pre-computed class map, loaded from disk or given directly."""

    name = "class-map"

    def __init__(self, class_map: Union[np.ndarray, Path, str]) -> None:
        if isinstance(class_map, np.ndarray):
            self._class_map = class_map
        else:
            self._class_map = load_class_map(Path(class_map))

    def segment(self, image: np.ndarray) -> SegmentationResult:
        return SegmentationResult(class_map=self._class_map)


class KMeansSegmenter(Segmenter):
    """
    Model-free fallback that clusters pixel colours with ``cv2.kmeans``.

    Every pixel receives a class id in ``1..clusters``; nothing is treated as
    background, so clicks always pick the connected patch of similar colour.
    """

    name = "kmeans"

    def __init__(self, clusters: int = 6, attempts: int = 3, seed: int = 0, blur: int = 5) -> None:
        if clusters < 1:
            raise ValueError("clusters must be >= 1")
        self.clusters = int(clusters)
        self.attempts = max(1, int(attempts))
        self.seed = int(seed)
        self.blur = int(blur)

    def segment(self, image: np.ndarray) -> SegmentationResult:
        if image.ndim == 2:
            image = cv2.cvtColor(image, cv2.COLOR_GRAY2RGB)
        height, width = image.shape[:2]
        source = image[..., :3]
        if self.blur >= 3 and self.blur % 2 == 1:
            source = cv2.medianBlur(np.ascontiguousarray(source), self.blur)
        samples = source.reshape(-1, 3).astype(np.float32)
        clusters = min(self.clusters, samples.shape[0])

        cv2.setRNGSeed(self.seed)
        criteria = (cv2.TERM_CRITERIA_EPS + cv2.TERM_CRITERIA_MAX_ITER, 30, 1.0)
        _compactness, labels, _centers = cv2.kmeans(
            samples, clusters, None, criteria, self.attempts, cv2.KMEANS_PP_CENTERS
        )
        class_map = labels.reshape(height, width).astype(np.int32) + 1
        return SegmentationResult(class_map=class_map)


class SegmentationCache:
    """Single-outstanding-request cache of the class map for the current image."""

    def __init__(self, segmenter: Optional[Segmenter] = None) -> None:
        self._segmenter = segmenter
        self._lock = threading.Lock()
        self._image: Optional[np.ndarray] = None
        self._future: Optional[Future] = None

    @property
    def segmenter(self) -> Optional[Segmenter]:
        return self._segmenter

    def set_segmenter(self, segmenter: Optional[Segmenter]) -> None:
        with self._lock:
            self._segmenter = segmenter
            self._future = None

    def invalidate(self, image: Optional[np.ndarray] = None) -> None:
        """Forget the cached class map; ``image`` becomes the new source."""
        with self._lock:
            self._image = image
            self._future = None

    def has_result(self) -> bool:
        return self.peek() is not None

    def peek(self) -> Optional[np.ndarray]:
        """Return the cached class map without starting or waiting for a request."""
        future = self._future
        if future is None or not future.done() or future.cancelled():
            return None
        if future.exception() is not None:
            return None
        return future.result()

    def get(self, timeout: Optional[float] = None) -> np.ndarray:
        """Return the class map, running the segmenter in this thread if needed."""
        future, job = self._claim()
        if job is not None:
            self._run(future, *job)
        return self._unwrap(future, timeout)

    def prefetch(self, executor: Executor) -> Future:
        """Start the request on ``executor`` unless one is already cached or in flight."""
        future, job = self._claim()
        if job is not None:
            executor.submit(self._run, future, *job)
        return future

    # ------------------------------------------------------------------
    def _claim(self):
        with self._lock:
            if self._image is None:
                raise SegmentationUnavailable("No image loaded")
            if self._segmenter is None:
                raise SegmentationUnavailable("No segmentation backend configured")
            if self._future is not None:
                return self._future, None
            future: Future = Future()
            self._future = future
            return future, (self._segmenter, self._image)

    def _run(self, future: Future, segmenter: Segmenter, image: np.ndarray) -> None:
        if not future.set_running_or_notify_cancel():
            return
        height, width = image.shape[:2]
        try:
            logger.info("Running %s segmentation on %dx%d image", segmenter.name, width, height)
            result = segmenter.segment(image)
            class_map = fit_class_map(np.asarray(result.class_map), width, height)
        except Exception as exc:  # noqa: BLE001
            with self._lock:
                if self._future is future:
                    self._future = None
            logger.error("Segmentation failed: %s", exc)
            if isinstance(exc, SegmentationUnavailable):
                future.set_exception(exc)
            else:
                failure = SegmentationUnavailable(f"Segmentation failed: {exc}")
                failure.__cause__ = exc
                future.set_exception(failure)
            return
        future.set_result(class_map)

    @staticmethod
    def _unwrap(future: Future, timeout: Optional[float]) -> np.ndarray:
        try:
            return future.result(timeout=timeout)
        except FutureTimeoutError as exc:
            raise SegmentationUnavailable("Segmentation is still running") from exc
