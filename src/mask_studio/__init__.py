"""
Interactive binary mask editor.

The package exposes the editing core (raster mask, region selection,
history, tool state machine, compositing), the session that ties them
together, and the loaders/exporters used by the CLI and the Qt front-end.
"""

from .config import EditorConfig, load_editor_config
from .assets import AssetLoadingError, load_class_map, load_image, load_mask
from .core.compositor import invert, refine, render_overlay
from .core.history import HistoryStack
from .core.raster import RasterMask
from .core.region import RegionSelector, select_region
from .core.tools import GestureEvent, GestureKind, Tool, ToolStateMachine
from .segmentation import (
    ClassMapSegmenter,
    KMeansSegmenter,
    SegmentationCache,
    SegmentationUnavailable,
    Segmenter,
)
from .session import ClickPreview, EditingSession
from .settings import output_root, reset_settings_cache
from .exporters import (
    ExportError,
    export_binary_mask,
    export_preview,
    prepare_output_path,
)

__all__ = [
    "EditorConfig",
    "load_editor_config",
    "AssetLoadingError",
    "load_class_map",
    "load_image",
    "load_mask",
    "invert",
    "refine",
    "render_overlay",
    "HistoryStack",
    "RasterMask",
    "RegionSelector",
    "select_region",
    "GestureEvent",
    "GestureKind",
    "Tool",
    "ToolStateMachine",
    "ClassMapSegmenter",
    "KMeansSegmenter",
    "SegmentationCache",
    "SegmentationUnavailable",
    "Segmenter",
    "ClickPreview",
    "EditingSession",
    "output_root",
    "reset_settings_cache",
    "ExportError",
    "export_binary_mask",
    "export_preview",
    "prepare_output_path",
]
