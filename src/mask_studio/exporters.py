"""Output exporters for edited masks.

Writes the authoritative binary mask as an opaque black/white PNG and,
optionally, a tinted preview composite for quick inspection.
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

import cv2
import numpy as np

from .core.compositor import DEFAULT_OVERLAY_ALPHA, DEFAULT_OVERLAY_COLOR, RGB, render_overlay
from .core.raster import RasterMask
from .settings import output_root as default_output_root

logger = logging.getLogger(__name__)


class ExportError(IOError):
    """Raised when an export artefact cannot be written."""


def _sanitize_name(name: str) -> str:
    safe = "".join(ch if ch.isalnum() or ch in ("-", "_") else "_" for ch in name.strip().lower())
    return safe or "image"


def default_mask_filename(image_name: Optional[str] = None, timestamp: Optional[str] = None) -> str:
    """``mask_<image-stem>_<timestamp>.png``; the stem is omitted when unknown."""
    ts = timestamp or datetime.now().strftime("%Y%m%d_%H%M%S_%f")
    if image_name:
        return f"mask_{_sanitize_name(Path(image_name).stem)}_{ts}.png"
    return f"mask_{ts}.png"


def prepare_output_path(
    image_name: Optional[str] = None,
    output_root: Optional[Path] = None,
    timestamp: Optional[str] = None,
) -> Path:
    """Return a fresh, non-existing PNG path under ``output_root``."""
    root = Path(output_root) if output_root is not None else default_output_root()
    root.mkdir(parents=True, exist_ok=True)
    candidate = root / default_mask_filename(image_name, timestamp)
    counter = 1
    while candidate.exists():
        candidate = candidate.with_name(f"{candidate.stem.rsplit('~', 1)[0]}~{counter}.png")
        counter += 1
    return candidate


def _write_rgba(rgba: np.ndarray, output_path: Path) -> Path:
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    bgra = cv2.cvtColor(rgba, cv2.COLOR_RGBA2BGRA)
    if not cv2.imwrite(str(output_path), bgra):
        raise ExportError(f"Could not write image to {output_path}")
    return output_path


def export_binary_mask(mask: RasterMask, output_path: Path) -> Path:
    """
    Write ``mask`` as an opaque PNG where every pixel is black or white.
    """
    path = _write_rgba(mask.to_rgba_export(), output_path)
    logger.info("Mask written to %s (%d px selected)", path, mask.count())
    return path


def composite_preview(
    image: np.ndarray,
    mask: RasterMask,
    color: RGB = DEFAULT_OVERLAY_COLOR,
    alpha: int = DEFAULT_OVERLAY_ALPHA,
) -> np.ndarray:
    """Blend the tinted selection over an RGB or greyscale image; returns RGBA."""
    if image.ndim == 2:
        image = cv2.cvtColor(image, cv2.COLOR_GRAY2RGB)
    base = image[..., :3].astype(np.float32)
    overlay = render_overlay(mask, color, alpha).astype(np.float32)
    weight = overlay[..., 3:4] / 255.0
    blended = base * (1.0 - weight) + overlay[..., :3] * weight

    rgba = np.empty((mask.height, mask.width, 4), dtype=np.uint8)
    rgba[..., :3] = np.clip(np.rint(blended), 0, 255).astype(np.uint8)
    rgba[..., 3] = 255
    return rgba


def export_preview(
    image: np.ndarray,
    mask: RasterMask,
    output_path: Path,
    color: RGB = DEFAULT_OVERLAY_COLOR,
    alpha: int = DEFAULT_OVERLAY_ALPHA,
) -> Path:
    """Write the tinted preview composite next to the mask."""
    if image.shape[:2] != mask.shape:
        raise ValueError(f"Image shape {image.shape[:2]} does not match mask {mask.shape}")
    path = _write_rgba(composite_preview(image, mask, color, alpha), output_path)
    logger.info("Preview written to %s", path)
    return path
