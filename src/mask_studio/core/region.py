"""Connected-component selection over a per-pixel class map."""

from __future__ import annotations

import logging
import math
from collections import deque
from typing import Optional

import numpy as np

from .raster import RasterMask

logger = logging.getLogger(__name__)

BACKGROUND_CLASS = 0

# 4-connectivity: right, left, down, up
_NEIGHBOURS = ((1, 0), (-1, 0), (0, 1), (0, -1))


def select_region(class_map: np.ndarray, seed_x: float, seed_y: float) -> RasterMask:
    """
    Return the maximal 4-connected region sharing the seed pixel's class.

    Parameters
    ----------
    class_map:
        ``(height, width)`` array of non-negative class ids; ``0`` is background.
    seed_x, seed_y:
        Seed coordinates in mask pixels. Fractional values are floored.

    Returns
    -------
    RasterMask
        Selected region. Empty when the seed is background, out of bounds or
        not a finite number.
    """

    class_map = np.asarray(class_map)
    if class_map.ndim != 2:
        raise ValueError(f"Class map must be 2-D, got shape {class_map.shape}")
    height, width = class_map.shape
    result = RasterMask(width, height)
    if not result.contains(seed_x, seed_y):
        return result

    sx = int(math.floor(seed_x))
    sy = int(math.floor(seed_y))
    seed_class = class_map[sy, sx]
    if seed_class == BACKGROUND_CLASS:
        logger.debug("Seed (%d, %d) is background; no region selected", sx, sy)
        return result

    matches = class_map == seed_class
    visited = np.zeros(width * height, dtype=bool)
    selected = np.zeros((height, width), dtype=bool)

    queue = deque([(sx, sy)])
    visited[sy * width + sx] = True
    while queue:
        x, y = queue.popleft()
        if not matches[y, x]:
            continue
        selected[y, x] = True
        for dx, dy in _NEIGHBOURS:
            nx, ny = x + dx, y + dy
            if nx < 0 or ny < 0 or nx >= width or ny >= height:
                continue
            index = ny * width + nx
            if visited[index]:
                continue
            visited[index] = True
            queue.append((nx, ny))

    region = RasterMask(width, height, selected)
    logger.debug(
        "Region for class %s at (%d, %d): %d px", seed_class, sx, sy, region.count()
    )
    return region


class RegionSelector:
    """Stateless wrapper exposing the selection contract with explicit dimensions."""

    def select(
        self,
        class_map: np.ndarray,
        width: int,
        height: int,
        seed_x: float,
        seed_y: float,
    ) -> RasterMask:
        class_map = np.asarray(class_map)
        if class_map.shape != (height, width):
            raise ValueError(
                f"Class map shape {class_map.shape} does not match {width}x{height}"
            )
        return select_region(class_map, seed_x, seed_y)

    def seed_class(self, class_map: np.ndarray, x: float, y: float) -> Optional[int]:
        """Class id under ``(x, y)``, or ``None`` outside the map."""
        class_map = np.asarray(class_map)
        height, width = class_map.shape
        if not (math.isfinite(x) and math.isfinite(y)):
            return None
        col, row = int(math.floor(x)), int(math.floor(y))
        if not (0 <= col < width and 0 <= row < height):
            return None
        return int(class_map[row, col])
