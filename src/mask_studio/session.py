"""Editing session: the single owner of image, mask, history and tool state."""

from __future__ import annotations

import logging
from concurrent.futures import Executor, Future
from dataclasses import dataclass
from typing import Optional

import numpy as np

from .config import EditorConfig
from .core import compositor
from .core.history import HistoryStack
from .core.raster import RasterMask
from .core.region import RegionSelector
from .core.tools import GestureEvent, Tool, ToolResult, ToolStateMachine
from .segmentation import SegmentationCache, Segmenter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClickPreview:
    """What a click at the hovered point would do, without doing it."""

    region: RasterMask
    removes: bool
    class_id: int


class EditingSession:
    """
    One editing context.

    The session owns exactly one :class:`RasterMask`, one :class:`HistoryStack`
    and one :class:`ToolStateMachine`; the display layer reads from it and feeds
    gesture events into :meth:`handle`. Every committed action appends a single
    history snapshot.
    """

    def __init__(self, config: Optional[EditorConfig] = None, segmenter: Optional[Segmenter] = None) -> None:
        self.config = config or EditorConfig()
        self._image: Optional[np.ndarray] = None
        self._mask: Optional[RasterMask] = None
        self._history = HistoryStack(self.config.history.capacity)
        self._segmentation = SegmentationCache(segmenter)
        self._regions = RegionSelector()
        self._tools = ToolStateMachine(
            self,
            tool=self.config.default_tool,
            brush_radius=self.config.brush.radius,
            max_brush_radius=self.config.brush.max_radius,
        )
        self.selection_count = 0

    @classmethod
    def from_config(cls, config: EditorConfig) -> "EditingSession":
        """Build a session with the segmenter named in ``config``."""
        from .plugins import create_segmenter  # Local import keeps plugin discovery lazy

        segmenter = create_segmenter(config.segmenter.name, config.segmenter.params)
        return cls(config, segmenter)

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------
    @property
    def image(self) -> Optional[np.ndarray]:
        return self._image

    @property
    def mask(self) -> Optional[RasterMask]:
        return self._mask

    @property
    def history(self) -> HistoryStack:
        return self._history

    @property
    def tools(self) -> ToolStateMachine:
        return self._tools

    @property
    def segmentation(self) -> SegmentationCache:
        return self._segmentation

    @property
    def has_image(self) -> bool:
        return self._image is not None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def load_image(self, image: np.ndarray, mask: Optional[RasterMask] = None) -> None:
        """Start editing ``image``; the mask and history are reset."""
        image = np.asarray(image)
        if image.ndim not in (2, 3) or image.shape[0] == 0 or image.shape[1] == 0:
            raise ValueError(f"Unsupported image shape: {image.shape}")
        height, width = image.shape[:2]
        if mask is not None and mask.shape != (height, width):
            raise ValueError(
                f"Mask size {mask.width}x{mask.height} does not match image {width}x{height}"
            )

        self._tools.cancel()
        self._image = image
        self._mask = mask.clone() if mask is not None else RasterMask(width, height)
        self._history.reset(self._mask)
        self._segmentation.invalidate(image)
        self.selection_count = 0
        logger.info("Loaded %dx%d image", width, height)

    def close(self) -> None:
        self._tools.cancel()
        self._image = None
        self._mask = None
        self._history.clear()
        self._segmentation.invalidate(None)
        self.selection_count = 0

    def set_segmenter(self, segmenter: Optional[Segmenter]) -> None:
        self._segmentation.set_segmenter(segmenter)
        if self._image is not None:
            self._segmentation.invalidate(self._image)

    def prefetch_segmentation(self, executor: Executor) -> Future:
        return self._segmentation.prefetch(executor)

    # ------------------------------------------------------------------
    # Tool host interface
    # ------------------------------------------------------------------
    def class_map(self) -> np.ndarray:
        return self._segmentation.get()

    def commit(self, label: str) -> None:
        if self._mask is None:
            return
        self._history.commit(self._mask)
        if label.startswith("click"):
            self.selection_count += 1
        logger.debug("Committed %s (history %d/%d)", label, self._history.cursor + 1, len(self._history))

    # ------------------------------------------------------------------
    # Tools
    # ------------------------------------------------------------------
    def set_tool(self, tool: Tool | str) -> ToolResult:
        return self._tools.set_tool(tool)

    def set_brush_radius(self, radius: float) -> float:
        return self._tools.set_brush_radius(radius)

    def handle(self, event: GestureEvent) -> ToolResult:
        """Dispatch a gesture; :class:`SegmentationUnavailable` propagates for click-select."""
        return self._tools.handle(event)

    def preview(self, x: float, y: float) -> Optional[ClickPreview]:
        """Region a click at ``(x, y)`` would toggle; never mutates mask or history.

        Only an already cached class map is used, so hovering never starts,
        waits for or retries a segmentation request.
        """
        if self._mask is None or not self._mask.contains(x, y):
            return None
        class_map = self._segmentation.peek()
        if class_map is None:
            logger.debug("Preview unavailable: no class map cached")
            return None
        region = self._regions.select(class_map, self._mask.width, self._mask.height, x, y)
        if region.is_empty():
            return None
        class_id = self._regions.seed_class(class_map, x, y)
        return ClickPreview(region=region, removes=self._mask.get(x, y), class_id=class_id or 0)

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------
    def undo(self) -> bool:
        if self._mask is None:
            return False
        snapshot = self._history.undo()
        if snapshot is None:
            return False
        self._tools.cancel()
        self._mask = snapshot
        return True

    def redo(self) -> bool:
        if self._mask is None:
            return False
        snapshot = self._history.redo()
        if snapshot is None:
            return False
        self._tools.cancel()
        self._mask = snapshot
        return True

    def can_undo(self) -> bool:
        return self._history.can_undo()

    def can_redo(self) -> bool:
        return self._history.can_redo()

    # ------------------------------------------------------------------
    # Whole-mask actions
    # ------------------------------------------------------------------
    def clear(self) -> bool:
        if self._mask is None:
            return False
        self._tools.cancel()
        self._mask.clear()
        self.commit("clear")
        self.selection_count = 0
        return True

    def invert(self) -> bool:
        if self._mask is None:
            return False
        self._tools.cancel()
        self._mask = compositor.invert(self._mask)
        self.commit("invert")
        return True

    def refine(self, iterations: Optional[int] = None) -> bool:
        if self._mask is None:
            return False
        self._tools.cancel()
        rounds = iterations if iterations is not None else self.config.refine.iterations
        self._mask = compositor.refine(self._mask, rounds)
        self.commit("refine")
        return True

    # ------------------------------------------------------------------
    # Views for display and export
    # ------------------------------------------------------------------
    def binary_buffer(self) -> np.ndarray:
        if self._mask is None:
            raise RuntimeError("No image loaded")
        return self._mask.to_binary_buffer()

    def overlay(self) -> np.ndarray:
        if self._mask is None:
            raise RuntimeError("No image loaded")
        return compositor.render_overlay(self._mask, self.config.overlay.color, self.config.overlay.alpha)
