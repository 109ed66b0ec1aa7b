"""
Plugin system for segmentation backends.

The editor treats the segmentation model as an external collaborator. Backends
are looked up by name in a registry that ships with the built-in ``class-map``
and ``kmeans`` segmenters; external packages add their own via the
``mask_studio.segmenters`` entry point group.

Example plugin registration in pyproject.toml:
    [project.entry-points."mask_studio.segmenters"]
    deeplab = "my_package:DeepLabSegmenter"

The entry point must resolve to a callable (usually a :class:`Segmenter`
subclass) accepting the ``params`` mapping from the editor configuration as
keyword arguments.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

from ..segmentation import ClassMapSegmenter, KMeansSegmenter, Segmenter

logger = logging.getLogger(__name__)

SegmenterFactory = Callable[..., Segmenter]

ENTRY_POINT_GROUP = "mask_studio.segmenters"

_builtin_segmenters: Dict[str, SegmenterFactory] = {
    ClassMapSegmenter.name: ClassMapSegmenter,
    KMeansSegmenter.name: KMeansSegmenter,
}
_registered_segmenters: Dict[str, SegmenterFactory] = {}
_plugins_discovered = False


def register_segmenter(name: str, factory: SegmenterFactory) -> None:
    """Register a segmenter factory under ``name`` (overrides plugins, not built-ins)."""
    if name in _builtin_segmenters:
        raise ValueError(f"Cannot override built-in segmenter '{name}'")
    _registered_segmenters[name] = factory
    logger.debug("Registered segmenter: %s", name)


def unregister_segmenter(name: str) -> None:
    _registered_segmenters.pop(name, None)


def get_registered_segmenters() -> List[str]:
    discover_segmenter_plugins()
    return sorted(set(_builtin_segmenters) | set(_registered_segmenters))


def create_segmenter(name: str, params: Optional[Dict[str, Any]] = None) -> Segmenter:
    """Instantiate the segmenter registered as ``name`` with ``params``."""
    discover_segmenter_plugins()
    factory = _builtin_segmenters.get(name) or _registered_segmenters.get(name)
    if factory is None:
        available = ", ".join(get_registered_segmenters())
        raise ValueError(f"Unknown segmenter '{name}'. Available: {available}")
    segmenter = factory(**(params or {}))
    if not isinstance(segmenter, Segmenter):
        raise TypeError(f"Segmenter factory '{name}' returned {type(segmenter).__name__}")
    return segmenter


def discover_segmenter_plugins(force: bool = False) -> Dict[str, SegmenterFactory]:
    """
    Load segmenter factories from installed entry points (once per process).

    Returns
    -------
    Dict[str, SegmenterFactory]
        Factories registered through plugins.
    """
    global _plugins_discovered
    if _plugins_discovered and not force:
        return dict(_registered_segmenters)
    _plugins_discovered = True

    from importlib.metadata import entry_points

    for ep in entry_points(group=ENTRY_POINT_GROUP):
        if ep.name in _builtin_segmenters:
            logger.warning("Plugin '%s' shadows a built-in segmenter, skipping", ep.name)
            continue
        try:
            factory = ep.load()
        except Exception as exc:  # noqa: BLE001
            logger.warning("Failed to load segmenter plugin '%s': %s", ep.name, exc)
            continue
        if not callable(factory):
            logger.warning("Segmenter plugin '%s' is not callable, skipping", ep.name)
            continue
        _registered_segmenters[ep.name] = factory
        logger.debug("Discovered segmenter plugin: %s", ep.name)

    return dict(_registered_segmenters)


__all__ = [
    "ENTRY_POINT_GROUP",
    "SegmenterFactory",
    "register_segmenter",
    "unregister_segmenter",
    "get_registered_segmenters",
    "create_segmenter",
    "discover_segmenter_plugins",
]
