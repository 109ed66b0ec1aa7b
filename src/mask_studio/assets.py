"""
Asset loading utilities for the editor.

Turns image, class-map and mask files into NumPy arrays / :class:`RasterMask`
instances that the session can consume.
"""

from __future__ import annotations

import logging
from pathlib import Path

import cv2
import numpy as np

from .core.compositor import DISPLAY_THRESHOLD, mask_from_display
from .core.raster import RasterMask

logger = logging.getLogger(__name__)


class AssetLoadingError(RuntimeError):
    """Raised when an asset cannot be loaded or validated."""


def load_image(path: Path) -> np.ndarray:
    """Load an image as an RGB ``uint8`` array of shape ``(height, width, 3)``."""
    path = Path(path)
    array = cv2.imread(str(path), cv2.IMREAD_COLOR)
    if array is None:
        raise AssetLoadingError(f"Failed to load image: {path}")
    return cv2.cvtColor(array, cv2.COLOR_BGR2RGB)


def load_class_map(path: Path) -> np.ndarray:
    """
    Load a per-pixel class map from a ``.npy`` file or a single-channel image.

    Class ids must be non-negative integers; ``0`` means background.
    """
    path = Path(path)
    if not path.exists():
        raise AssetLoadingError(f"Class map not found: {path}")

    if path.suffix.lower() == ".npy":
        try:
            array = np.load(path, allow_pickle=False)
        except ValueError as exc:
            raise AssetLoadingError(f"Failed to read class map {path}: {exc}") from exc
    else:
        array = cv2.imread(str(path), cv2.IMREAD_UNCHANGED)
        if array is None:
            raise AssetLoadingError(f"Failed to load class map image: {path}")
        if array.ndim == 3:
            # Class ids replicated across channels; keep the first one.
            array = array[..., 0]

    if array.ndim != 2:
        raise AssetLoadingError(f"Expected a 2-D class map but got shape {array.shape} for {path}")
    if not np.issubdtype(array.dtype, np.integer):
        if not np.all(np.equal(np.mod(array, 1), 0)):
            raise AssetLoadingError(f"Class map contains non-integer values: {path}")
        array = array.astype(np.int64)
    if array.size and array.min() < 0:
        raise AssetLoadingError(f"Class map contains negative class ids: {path}")
    return array


def load_mask(path: Path, threshold: int = DISPLAY_THRESHOLD) -> RasterMask:
    """Load a mask image (greyscale, RGB or RGBA) and threshold it to booleans."""
    path = Path(path)
    array = cv2.imread(str(path), cv2.IMREAD_UNCHANGED)
    if array is None:
        raise AssetLoadingError(f"Failed to load mask: {path}")
    if array.ndim == 3 and array.shape[2] == 4:
        array = cv2.cvtColor(array, cv2.COLOR_BGRA2RGBA)
    elif array.ndim == 3:
        array = cv2.cvtColor(array, cv2.COLOR_BGR2RGB)
    if array.dtype != np.uint8:
        array = np.clip(array, 0, 255).astype(np.uint8)
    try:
        mask = mask_from_display(array, threshold=threshold)
    except ValueError as exc:
        raise AssetLoadingError(f"Unsupported mask image {path}: {exc}") from exc
    logger.debug("Loaded mask %s (%dx%d, %d px selected)", path, mask.width, mask.height, mask.count())
    return mask
