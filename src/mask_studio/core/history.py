"""Bounded linear undo/redo history of mask snapshots."""

from __future__ import annotations

import logging
from typing import List, Optional

from .raster import RasterMask

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_CAPACITY = 20


class HistoryStack:
    """Snapshot store with a cursor pointing at the current state.

    Snapshots after the cursor are redo states; committing from a non-tip
    cursor drops them. When ``capacity`` is exceeded the oldest snapshot is
    evicted and the cursor shifts with it.
    """

    def __init__(self, capacity: int = DEFAULT_HISTORY_CAPACITY, initial: Optional[RasterMask] = None) -> None:
        if capacity < 1:
            raise ValueError(f"History capacity must be >= 1, got {capacity}")
        self._capacity = int(capacity)
        self._snapshots: List[RasterMask] = []
        self._cursor = -1
        if initial is not None:
            self.reset(initial)

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def cursor(self) -> int:
        return self._cursor

    def __len__(self) -> int:
        return len(self._snapshots)

    def reset(self, mask: RasterMask) -> None:
        """Drop all history and start from ``mask``."""
        self._snapshots = [mask.clone()]
        self._cursor = 0

    def clear(self) -> None:
        self._snapshots.clear()
        self._cursor = -1

    def commit(self, mask: RasterMask) -> None:
        if self._cursor < len(self._snapshots) - 1:
            dropped = len(self._snapshots) - 1 - self._cursor
            del self._snapshots[self._cursor + 1 :]
            logger.debug("Discarded %d redo snapshot(s)", dropped)
        self._snapshots.append(mask.clone())
        self._cursor = len(self._snapshots) - 1
        if len(self._snapshots) > self._capacity:
            self._snapshots.pop(0)
            self._cursor -= 1

    def undo(self) -> Optional[RasterMask]:
        if self._cursor <= 0:
            return None
        self._cursor -= 1
        return self._snapshots[self._cursor].clone()

    def redo(self) -> Optional[RasterMask]:
        if self._cursor < 0 or self._cursor >= len(self._snapshots) - 1:
            return None
        self._cursor += 1
        return self._snapshots[self._cursor].clone()

    def can_undo(self) -> bool:
        return self._cursor > 0

    def can_redo(self) -> bool:
        return 0 <= self._cursor < len(self._snapshots) - 1

    def current(self) -> Optional[RasterMask]:
        if self._cursor < 0:
            return None
        return self._snapshots[self._cursor].clone()
