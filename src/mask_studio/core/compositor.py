"""Morphological refinement, inversion and display compositing for masks.

Display rendering is a pure function of the boolean mask: the tinted overlay is
regenerated from :class:`RasterMask` every time and never read back as state.
:func:`mask_from_display` exists only to import externally produced mask
images and collapses them with a strict two-level threshold.
"""

from __future__ import annotations

from typing import Tuple

import numpy as np
from scipy.ndimage import binary_dilation, binary_erosion

from .raster import RasterMask

RGB = Tuple[int, int, int]

DEFAULT_REFINE_ITERATIONS = 2
DEFAULT_OVERLAY_COLOR: RGB = (0, 255, 0)
DEFAULT_OVERLAY_ALPHA = 180
DISPLAY_THRESHOLD = 128

_KERNEL = np.ones((3, 3), dtype=bool)


def _interior_update(source: np.ndarray, processed: np.ndarray) -> np.ndarray:
    """Copy ``processed`` into ``source`` everywhere except the outermost ring."""
    result = source.copy()
    if source.shape[0] < 3 or source.shape[1] < 3:
        return result
    result[1:-1, 1:-1] = processed[1:-1, 1:-1]
    return result


def _dilate(data: np.ndarray) -> np.ndarray:
    return _interior_update(data, binary_dilation(data, structure=_KERNEL))


def _erode(data: np.ndarray) -> np.ndarray:
    return _interior_update(data, binary_erosion(data, structure=_KERNEL))


def close_mask(mask: RasterMask) -> RasterMask:
    """One closing pass (3x3 dilation then erosion); fills pinholes and cracks."""
    return RasterMask(mask.width, mask.height, _erode(_dilate(mask.data)))


def open_mask(mask: RasterMask) -> RasterMask:
    """One opening pass (3x3 erosion then dilation); drops isolated specks."""
    return RasterMask(mask.width, mask.height, _dilate(_erode(mask.data)))


def refine(mask: RasterMask, iterations: int = DEFAULT_REFINE_ITERATIONS) -> RasterMask:
    """
    Smooth a mask with ``iterations`` rounds of closing followed by opening.

    Every neighbourhood test needs a full 3x3 window, so the outermost ring of
    pixels is never modified.
    """
    if iterations < 1:
        raise ValueError(f"Refine iterations must be >= 1, got {iterations}")
    refined = mask
    for _ in range(iterations):
        refined = open_mask(close_mask(refined))
    return refined


def invert(mask: RasterMask) -> RasterMask:
    """Return the logical complement as a new mask."""
    inverted = mask.clone()
    inverted.invert()
    return inverted


def render_overlay(
    mask: RasterMask,
    color: RGB = DEFAULT_OVERLAY_COLOR,
    alpha: int = DEFAULT_OVERLAY_ALPHA,
) -> np.ndarray:
    """RGBA tint of the selection; unselected pixels are fully transparent."""
    rgba = np.zeros((mask.height, mask.width, 4), dtype=np.uint8)
    selected = mask.data
    rgba[selected, 0] = color[0]
    rgba[selected, 1] = color[1]
    rgba[selected, 2] = color[2]
    rgba[selected, 3] = int(np.clip(alpha, 0, 255))
    return rgba


def tint_lookup_table(color: RGB = DEFAULT_OVERLAY_COLOR, alpha: int = DEFAULT_OVERLAY_ALPHA) -> np.ndarray:
    """256-entry RGBA LUT mapping 255 to the tint and everything else to transparent."""
    lut = np.zeros((256, 4), dtype=np.ubyte)
    lut[255] = np.array([color[0], color[1], color[2], int(np.clip(alpha, 0, 255))], dtype=np.ubyte)
    return lut


def mask_from_display(image: np.ndarray, threshold: int = DISPLAY_THRESHOLD) -> RasterMask:
    """
    Collapse a greyscale, RGB or RGBA image into a binary mask.

    Greyscale pixels are selected at ``value >= threshold``. RGB pixels use the
    brightest channel. RGBA pixels must also be at least ``threshold`` opaque.
    """
    if image.ndim == 2:
        selected = image >= threshold
    elif image.ndim == 3 and image.shape[2] in (3, 4):
        selected = image[..., :3].max(axis=2) >= threshold
        if image.shape[2] == 4:
            selected &= image[..., 3] >= threshold
    else:
        raise ValueError(f"Unsupported display image shape: {image.shape}")
    return RasterMask.from_array(selected)
