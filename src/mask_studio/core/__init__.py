"""Mask editing core: raster mask, region selection, history, tools, compositing."""

from .compositor import (
    close_mask,
    invert,
    mask_from_display,
    open_mask,
    refine,
    render_overlay,
    tint_lookup_table,
)
from .history import HistoryStack
from .raster import RasterMask
from .region import BACKGROUND_CLASS, RegionSelector, select_region
from .tools import GestureEvent, GestureKind, Tool, ToolResult, ToolStateMachine

__all__ = [
    "RasterMask",
    "HistoryStack",
    "RegionSelector",
    "select_region",
    "BACKGROUND_CLASS",
    "Tool",
    "GestureKind",
    "GestureEvent",
    "ToolResult",
    "ToolStateMachine",
    "refine",
    "invert",
    "open_mask",
    "close_mask",
    "render_overlay",
    "tint_lookup_table",
    "mask_from_display",
]
