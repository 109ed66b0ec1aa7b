"""
Configuration models and loader for the editor.

Editor behaviour (brush limits, history depth, refinement, preview debounce,
overlay colours, segmentation backend) is described in an optional YAML file.
Every field has a default, so an empty file or no file at all is valid.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import yaml
from pydantic import BaseModel, Field, conint, field_validator, model_validator

from .core.tools import DEFAULT_BRUSH_RADIUS, DEFAULT_MAX_BRUSH_RADIUS, Tool
from .settings import default_config_file


Channel = conint(ge=0, le=255)
Color = Tuple[Channel, Channel, Channel]


class BrushConfig(BaseModel):
    """Brush and eraser radius limits."""

    radius: float = Field(
        default=DEFAULT_BRUSH_RADIUS, ge=1, allow_inf_nan=False, description="Initial radius in pixels"
    )
    max_radius: float = Field(
        default=DEFAULT_MAX_BRUSH_RADIUS, ge=1, allow_inf_nan=False, description="Upper radius clamp"
    )

    @model_validator(mode="after")
    def _radius_within_limit(self) -> "BrushConfig":
        if self.radius > self.max_radius:
            raise ValueError(f"Brush radius {self.radius} exceeds max_radius {self.max_radius}")
        return self


class HistoryConfig(BaseModel):
    capacity: int = Field(default=20, ge=1, description="Snapshots kept, including the initial state")


class RefineConfig(BaseModel):
    iterations: int = Field(default=2, ge=1, description="Closing+opening rounds per refine")


class PreviewConfig(BaseModel):
    """Hover preview for the click tool."""

    enabled: bool = True
    debounce_ms: int = Field(default=150, ge=0, description="Delay before recomputing the preview")


class OverlayConfig(BaseModel):
    """Colours used to render the selection over the image."""

    color: Color = Field(default=(0, 255, 0), description="Selection tint (RGB)")
    alpha: Channel = Field(default=180, description="Selection tint alpha")
    preview_add_color: Color = Field(default=(16, 185, 129))
    preview_remove_color: Color = Field(default=(239, 68, 68))
    preview_alpha: Channel = Field(default=153)


class SegmenterConfig(BaseModel):
    """Segmentation backend: a registered name plus constructor parameters."""

    name: str = Field(default="kmeans", description="Registered segmenter name")
    params: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("name")
    @classmethod
    def _non_empty_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Segmenter name must not be empty")
        return value


class EditorConfig(BaseModel):
    """Top-level editor configuration."""

    default_tool: Tool = Tool.CLICK
    brush: BrushConfig = Field(default_factory=BrushConfig)
    history: HistoryConfig = Field(default_factory=HistoryConfig)
    refine: RefineConfig = Field(default_factory=RefineConfig)
    preview: PreviewConfig = Field(default_factory=PreviewConfig)
    overlay: OverlayConfig = Field(default_factory=OverlayConfig)
    segmenter: SegmenterConfig = Field(default_factory=SegmenterConfig)


def _resolve_relative_paths(data: dict, base_path: Path) -> dict:
    """Make the class-map path of the segmenter absolute relative to the YAML file."""
    segmenter = data.get("segmenter")
    if isinstance(segmenter, dict):
        params = segmenter.get("params")
        if isinstance(params, dict) and params.get("class_map") is not None:
            path_obj = Path(params["class_map"])
            if not path_obj.is_absolute():
                path_obj = (base_path / path_obj).resolve()
            params["class_map"] = path_obj
    return data


def load_editor_config(path: Optional[Union[str, Path]] = None) -> EditorConfig:
    """
    Load and validate an editor configuration from a YAML file.

    Parameters
    ----------
    path:
        YAML file. Falls back to ``MASK_STUDIO_CONFIG_FILE``, then to defaults.

    Returns
    -------
    EditorConfig
        Parsed and validated configuration object.
    """

    if path is None:
        path = default_config_file()
        if path is None:
            return EditorConfig()

    config_path = Path(path).resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with config_path.open("r", encoding="utf-8") as handle:
        raw_data = yaml.safe_load(handle) or {}
    if not isinstance(raw_data, dict):
        raise ValueError(f"Configuration root must be a mapping: {config_path}")

    processed = _resolve_relative_paths(raw_data, config_path.parent)
    return EditorConfig.model_validate(processed)


def summarize_config(config: EditorConfig) -> str:
    lines = [
        f"  Default tool: {config.default_tool.value}",
        f"  Brush: radius {config.brush.radius:g} px (max {config.brush.max_radius:g})",
        f"  History: {config.history.capacity} snapshots",
        f"  Refine: {config.refine.iterations} iteration(s)",
        f"  Preview: {'on' if config.preview.enabled else 'off'}, debounce {config.preview.debounce_ms} ms",
        f"  Overlay: rgb{tuple(config.overlay.color)} alpha {config.overlay.alpha}",
        f"  Segmenter: {config.segmenter.name} {config.segmenter.params or ''}".rstrip(),
    ]
    return "\n".join(lines)
