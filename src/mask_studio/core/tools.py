"""Tool state machine translating gesture events into mask edits.

Each tool reacts to a small set of gesture kinds; the pairing is an explicit
dispatch table keyed by ``(Tool, GestureKind)``. Unlisted pairs are ignored.
History is committed once per completed gesture, never per pointer move.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Protocol, Tuple

import numpy as np

from .raster import MIN_BRUSH_RADIUS, Point, RasterMask
from .region import select_region

logger = logging.getLogger(__name__)

DEFAULT_BRUSH_RADIUS = 15.0
DEFAULT_MAX_BRUSH_RADIUS = 100.0


class Tool(str, Enum):
    CLICK = "click"
    BRUSH = "brush"
    ERASE = "erase"
    LASSO = "lasso"
    LASSO_ERASE = "lasso-erase"

    @property
    def is_stroke(self) -> bool:
        return self in (Tool.BRUSH, Tool.ERASE)

    @property
    def is_polygon(self) -> bool:
        return self in (Tool.LASSO, Tool.LASSO_ERASE)

    @property
    def paint_value(self) -> bool:
        """Value written by the tool: ``True`` adds to the selection."""
        return self in (Tool.BRUSH, Tool.LASSO)


class GestureKind(str, Enum):
    DOWN = "down"
    MOVE = "move"
    UP = "up"
    ACTIVATE = "activate"
    DOUBLE_ACTIVATE = "double_activate"
    CLOSE = "close"


@dataclass(frozen=True)
class GestureEvent:
    """Pointer event in mask pixel coordinates."""

    kind: GestureKind
    x: float = 0.0
    y: float = 0.0

    @property
    def point(self) -> Point:
        return (self.x, self.y)


@dataclass(frozen=True)
class ToolResult:
    """Outcome of dispatching one event."""

    changed: bool = False
    committed: bool = False


_NOOP = ToolResult()


class ToolHost(Protocol):
    """What the state machine needs from its owning session."""

    @property
    def mask(self) -> Optional[RasterMask]:
        ...

    def class_map(self) -> np.ndarray:
        ...

    def commit(self, label: str) -> None:
        ...


Handler = Callable[[GestureEvent], ToolResult]


class ToolStateMachine:
    """Owns the active tool and per-gesture state (stroke, polygon)."""

    def __init__(
        self,
        host: ToolHost,
        tool: Tool = Tool.CLICK,
        brush_radius: float = DEFAULT_BRUSH_RADIUS,
        max_brush_radius: float = DEFAULT_MAX_BRUSH_RADIUS,
    ) -> None:
        self._host = host
        self._tool = Tool(tool)
        self._max_brush_radius = max(float(max_brush_radius), MIN_BRUSH_RADIUS)
        self._brush_radius = MIN_BRUSH_RADIUS
        self.set_brush_radius(brush_radius)
        self._stroke_last: Optional[Point] = None
        self._polygon: List[Point] = []
        self._handlers: Dict[Tuple[Tool, GestureKind], Handler] = {
            (Tool.CLICK, GestureKind.ACTIVATE): self._click_activate,
        }
        for stroke_tool in (Tool.BRUSH, Tool.ERASE):
            self._handlers[(stroke_tool, GestureKind.DOWN)] = self._stroke_begin
            self._handlers[(stroke_tool, GestureKind.MOVE)] = self._stroke_move
            self._handlers[(stroke_tool, GestureKind.UP)] = self._stroke_end
        for polygon_tool in (Tool.LASSO, Tool.LASSO_ERASE):
            self._handlers[(polygon_tool, GestureKind.DOWN)] = self._polygon_add_vertex
            self._handlers[(polygon_tool, GestureKind.DOUBLE_ACTIVATE)] = self._polygon_complete
            self._handlers[(polygon_tool, GestureKind.CLOSE)] = self._polygon_complete

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------
    @property
    def tool(self) -> Tool:
        return self._tool

    @property
    def brush_radius(self) -> float:
        return self._brush_radius

    @property
    def max_brush_radius(self) -> float:
        return self._max_brush_radius

    @property
    def stroke_in_progress(self) -> bool:
        return self._stroke_last is not None

    @property
    def polygon(self) -> Tuple[Point, ...]:
        return tuple(self._polygon)

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------
    def set_tool(self, tool: Tool | str) -> ToolResult:
        """Switch tools. In-progress polygons are discarded, strokes are committed."""
        tool = Tool(tool)
        if tool is self._tool:
            return _NOOP
        result = _NOOP
        if self._polygon:
            logger.debug("Discarding %d-vertex polygon on tool switch", len(self._polygon))
            self._polygon.clear()
        if self.stroke_in_progress:
            result = self._finish_stroke()
        logger.debug("Tool changed: %s -> %s", self._tool.value, tool.value)
        self._tool = tool
        return result

    def set_brush_radius(self, radius: float) -> float:
        if not math.isfinite(radius):
            raise ValueError(f"Brush radius must be a finite number, got {radius!r}")
        self._brush_radius = min(max(float(radius), MIN_BRUSH_RADIUS), self._max_brush_radius)
        return self._brush_radius

    def cancel(self) -> None:
        """Forget gesture state without touching the mask or history."""
        self._stroke_last = None
        self._polygon.clear()

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------
    def handle(self, event: GestureEvent) -> ToolResult:
        if self._host.mask is None:
            return _NOOP
        handler = self._handlers.get((self._tool, event.kind))
        if handler is None:
            return _NOOP
        return handler(event)

    # ------------------------------------------------------------------
    # click
    # ------------------------------------------------------------------
    def _click_activate(self, event: GestureEvent) -> ToolResult:
        mask = self._host.mask
        class_map = self._host.class_map()
        region = select_region(class_map, event.x, event.y)
        if region.is_empty():
            logger.debug("No selectable region at (%.1f, %.1f)", event.x, event.y)
            return _NOOP
        if mask.get(event.x, event.y):
            changed = mask.subtract(region)
            label = "click-remove"
        else:
            changed = mask.union(region)
            label = "click-add"
        self._host.commit(label)
        return ToolResult(changed=changed, committed=True)

    # ------------------------------------------------------------------
    # brush / erase
    # ------------------------------------------------------------------
    def _stroke_begin(self, event: GestureEvent) -> ToolResult:
        point = event.point
        self._stroke_last = point
        changed = self._host.mask.stroke_segment(
            point, point, self._brush_radius, self._tool.paint_value
        )
        return ToolResult(changed=changed)

    def _stroke_move(self, event: GestureEvent) -> ToolResult:
        if self._stroke_last is None:
            return _NOOP
        point = event.point
        changed = self._host.mask.stroke_segment(
            self._stroke_last, point, self._brush_radius, self._tool.paint_value
        )
        self._stroke_last = point
        return ToolResult(changed=changed)

    def _stroke_end(self, event: GestureEvent) -> ToolResult:
        if self._stroke_last is None:
            return _NOOP
        return self._finish_stroke()

    def _finish_stroke(self) -> ToolResult:
        self._stroke_last = None
        self._host.commit(self._tool.value)
        return ToolResult(committed=True)

    # ------------------------------------------------------------------
    # lasso / lasso-erase
    # ------------------------------------------------------------------
    def _polygon_add_vertex(self, event: GestureEvent) -> ToolResult:
        self._polygon.append(event.point)
        return _NOOP

    def _polygon_complete(self, event: GestureEvent) -> ToolResult:
        points = list(self._polygon)
        self._polygon.clear()
        if len(points) < 3:
            logger.debug("Lasso cancelled with %d vertices", len(points))
            return _NOOP
        changed = self._host.mask.fill_polygon(points, self._tool.paint_value)
        self._host.commit(self._tool.value)
        return ToolResult(changed=changed, committed=True)
