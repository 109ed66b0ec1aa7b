"""
Headless replay of gesture scripts.

A script is a YAML document with a ``steps`` list. Each step is either a bare
action name or a single-key mapping::

    steps:
      - tool: brush
      - radius: 4
      - down: [10, 10]
      - move: [30, 10]
      - up: [30, 10]
      - tool: lasso
      - down: [5, 5]
      - down: [5, 20]
      - down: [20, 20]
      - close
      - click: [12, 14]
      - undo
      - refine: 1

Point steps (``down``, ``move``, ``up``, ``click``, ``double``) take ``[x, y]``
in mask pixel coordinates.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Sequence, Tuple, Union

import yaml

from .core.tools import GestureEvent, GestureKind
from .session import EditingSession

logger = logging.getLogger(__name__)

Step = Union[str, Dict[str, Any]]

_POINT_STEPS = {
    "down": GestureKind.DOWN,
    "move": GestureKind.MOVE,
    "up": GestureKind.UP,
    "click": GestureKind.ACTIVATE,
    "double": GestureKind.DOUBLE_ACTIVATE,
}
_ACTIONS = ("undo", "redo", "clear", "invert", "refine", "close")


class ScriptError(ValueError):
    """Raised for malformed gesture scripts."""


def load_script(path: Union[str, Path]) -> List[Step]:
    script_path = Path(path)
    if not script_path.exists():
        raise FileNotFoundError(f"Gesture script not found: {script_path}")
    with script_path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    steps = data.get("steps") if isinstance(data, dict) else data
    if not isinstance(steps, list):
        raise ScriptError(f"Gesture script must contain a 'steps' list: {script_path}")
    return steps


def _parse_point(value: Any, step_index: int) -> Tuple[float, float]:
    if not isinstance(value, (list, tuple)) or len(value) != 2:
        raise ScriptError(f"Step {step_index}: expected [x, y], got {value!r}")
    try:
        return float(value[0]), float(value[1])
    except (TypeError, ValueError) as exc:
        raise ScriptError(f"Step {step_index}: non-numeric point {value!r}") from exc


def apply_step(session: EditingSession, step: Step, step_index: int = 0) -> bool:
    """Apply one step; returns whether the mask or history changed."""
    if isinstance(step, str):
        key, value = step, None
    elif isinstance(step, dict) and len(step) == 1:
        key, value = next(iter(step.items()))
    else:
        raise ScriptError(f"Step {step_index}: expected an action name or single-key mapping, got {step!r}")

    if key in _POINT_STEPS:
        x, y = _parse_point(value, step_index)
        result = session.handle(GestureEvent(_POINT_STEPS[key], x, y))
        return result.changed or result.committed
    if key == "tool":
        return session.set_tool(str(value)).committed
    if key == "radius":
        try:
            session.set_brush_radius(float(value))
        except (TypeError, ValueError) as exc:
            raise ScriptError(f"Step {step_index}: invalid radius {value!r}") from exc
        return False
    if key == "close":
        result = session.handle(GestureEvent(GestureKind.CLOSE))
        return result.committed
    if key == "undo":
        return session.undo()
    if key == "redo":
        return session.redo()
    if key == "clear":
        return session.clear()
    if key == "invert":
        return session.invert()
    if key == "refine":
        return session.refine(int(value) if value is not None else None)
    known = ", ".join(sorted(set(_POINT_STEPS) | set(_ACTIONS) | {"tool", "radius"}))
    raise ScriptError(f"Step {step_index}: unknown step '{key}' (expected one of: {known})")


def run_script(session: EditingSession, steps: Sequence[Step]) -> int:
    """Apply all steps in order and return how many of them changed something."""
    effective = 0
    for index, step in enumerate(steps, start=1):
        if apply_step(session, step, index):
            effective += 1
        logger.debug("Step %d %r -> history %d/%d", index, step, session.history.cursor + 1, len(session.history))
    return effective
