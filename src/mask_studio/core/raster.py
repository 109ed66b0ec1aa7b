"""Boolean raster mask used as the single source of truth for the selection."""

from __future__ import annotations

import math
from typing import Optional, Sequence, Tuple

import cv2
import numpy as np

Point = Tuple[float, float]

MIN_BRUSH_RADIUS = 1.0


class RasterMask:
    """Per-pixel binary selection over a fixed ``width`` x ``height`` grid.

    The selection lives in a boolean ``(height, width)`` array. Tints, alpha
    and antialiasing are display concerns and never stored here; see
    :mod:`mask_studio.core.compositor` for the rendering rules.
    """

    __slots__ = ("_width", "_height", "_data")

    def __init__(self, width: int, height: int, data: Optional[np.ndarray] = None) -> None:
        if width <= 0 or height <= 0:
            raise ValueError(f"Mask dimensions must be positive, got {width}x{height}")
        self._width = int(width)
        self._height = int(height)
        if data is None:
            self._data = np.zeros((self._height, self._width), dtype=bool)
        else:
            if data.shape != (self._height, self._width):
                raise ValueError(
                    f"Mask data shape {data.shape} does not match {self._height}x{self._width}"
                )
            self._data = data.astype(bool, copy=True)

    @classmethod
    def from_array(cls, array: np.ndarray) -> "RasterMask":
        """Build a mask from any 2-D array; non-zero entries are selected."""
        if array.ndim != 2:
            raise ValueError(f"Expected a 2-D array, got shape {array.shape}")
        height, width = array.shape
        return cls(width, height, array != 0)

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------
    @property
    def width(self) -> int:
        return self._width

    @property
    def height(self) -> int:
        return self._height

    @property
    def shape(self) -> Tuple[int, int]:
        return self._height, self._width

    @property
    def data(self) -> np.ndarray:
        """Read-only view of the boolean grid."""
        view = self._data.view()
        view.flags.writeable = False
        return view

    def count(self) -> int:
        return int(np.count_nonzero(self._data))

    def is_empty(self) -> bool:
        return not self._data.any()

    def contains(self, x: float, y: float) -> bool:
        # NaN and infinities lie outside every grid
        if not (math.isfinite(x) and math.isfinite(y)):
            return False
        col, row = int(math.floor(x)), int(math.floor(y))
        return 0 <= col < self._width and 0 <= row < self._height

    # ------------------------------------------------------------------
    # Pixel access
    # ------------------------------------------------------------------
    def get(self, x: float, y: float) -> bool:
        if not self.contains(x, y):
            return False
        return bool(self._data[int(math.floor(y)), int(math.floor(x))])

    def set(self, x: float, y: float, value: bool) -> None:
        if not self.contains(x, y):
            return
        self._data[int(math.floor(y)), int(math.floor(x))] = bool(value)

    # ------------------------------------------------------------------
    # Drawing primitives
    # ------------------------------------------------------------------
    def fill_polygon(self, points: Sequence[Point], value: bool = True) -> bool:
        """Fill a closed polygon, boundary included. Returns whether anything changed."""
        vertices = np.asarray(points, dtype=np.float64).reshape(-1, 2)
        if vertices.shape[0] < 3 or not np.all(np.isfinite(vertices)):
            return False
        canvas = np.zeros(self.shape, dtype=np.uint8)
        cv2.fillPoly(canvas, [np.round(vertices).astype(np.int32)], 1)
        return self._assign(canvas.astype(bool), value)

    def stroke_segment(
        self,
        start: Point,
        end: Point,
        radius: float,
        value: bool = True,
    ) -> bool:
        """Set every pixel within ``radius`` of the segment ``start``-``end``.

        Caps are round, so a zero-length segment stamps a disc. Returns whether
        any pixel changed. Non-finite coordinates or radius draw nothing.
        """
        x0, y0 = float(start[0]), float(start[1])
        x1, y1 = float(end[0]), float(end[1])
        if not all(math.isfinite(v) for v in (x0, y0, x1, y1, float(radius))):
            return False
        radius = max(float(radius), MIN_BRUSH_RADIUS)

        x_min = max(0, int(math.floor(min(x0, x1) - radius)))
        x_max = min(self._width, int(math.ceil(max(x0, x1) + radius)) + 1)
        y_min = max(0, int(math.floor(min(y0, y1) - radius)))
        y_max = min(self._height, int(math.ceil(max(y0, y1) + radius)) + 1)
        if x_min >= x_max or y_min >= y_max:
            return False

        yy, xx = np.ogrid[y_min:y_max, x_min:x_max]
        dx = x1 - x0
        dy = y1 - y0
        length_sq = dx * dx + dy * dy
        if length_sq == 0.0:
            t = 0.0
        else:
            t = np.clip(((xx - x0) * dx + (yy - y0) * dy) / length_sq, 0.0, 1.0)
        nearest_x = x0 + t * dx
        nearest_y = y0 + t * dy
        inside = (xx - nearest_x) ** 2 + (yy - nearest_y) ** 2 <= radius**2

        sub = self._data[y_min:y_max, x_min:x_max]
        value = bool(value)
        changed = bool(np.any(sub[inside] != value))
        sub[inside] = value
        return changed

    # ------------------------------------------------------------------
    # Whole-mask operations
    # ------------------------------------------------------------------
    def union(self, other: "RasterMask") -> bool:
        self._check_compatible(other)
        return self._assign(other._data, True)

    def subtract(self, other: "RasterMask") -> bool:
        self._check_compatible(other)
        return self._assign(other._data, False)

    def invert(self) -> None:
        np.logical_not(self._data, out=self._data)

    def clear(self) -> None:
        self._data[...] = False

    def replace(self, other: "RasterMask") -> None:
        """Overwrite the contents with ``other`` (same dimensions)."""
        self._check_compatible(other)
        self._data[...] = other._data

    def clone(self) -> "RasterMask":
        return RasterMask(self._width, self._height, self._data)

    # ------------------------------------------------------------------
    # Export views
    # ------------------------------------------------------------------
    def to_binary_buffer(self) -> np.ndarray:
        """Return a ``uint8`` grid holding exactly 255 (selected) or 0."""
        return np.where(self._data, 255, 0).astype(np.uint8)

    def to_rgba_export(self) -> np.ndarray:
        """Opaque black/white RGBA image of the selection."""
        binary = self.to_binary_buffer()
        rgba = np.empty((self._height, self._width, 4), dtype=np.uint8)
        rgba[..., 0] = binary
        rgba[..., 1] = binary
        rgba[..., 2] = binary
        rgba[..., 3] = 255
        return rgba

    # ------------------------------------------------------------------
    def _assign(self, region: np.ndarray, value: bool) -> bool:
        value = bool(value)
        changed = bool(np.any(self._data[region] != value))
        self._data[region] = value
        return changed

    def _check_compatible(self, other: "RasterMask") -> None:
        if other.shape != self.shape:
            raise ValueError(f"Mask shapes differ: {self.shape} vs {other.shape}")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RasterMask):
            return NotImplemented
        return self.shape == other.shape and bool(np.array_equal(self._data, other._data))

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"RasterMask({self._width}x{self._height}, selected={self.count()})"
