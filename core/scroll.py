# core/scroll.py
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class ScrollMemento:
    key: str
    offset_pixels: int
    captured_at: float


class ScrollPositionMemento:
    """Single slot: the latest list exit wins, a restore consumes it."""

    def __init__(self) -> None:
        self._slot: Optional[ScrollMemento] = None

    @property
    def pending(self) -> Optional[ScrollMemento]:
        return self._slot

    def capture(self, key: str, offset: int) -> ScrollMemento:
        self._slot = ScrollMemento(key=key, offset_pixels=max(0, int(offset)), captured_at=time.time())
        return self._slot

    def restore(self, key: str, *, loading: bool) -> Optional[int]:
        """
        Offset to apply for the view identified by `key`, or None.
        A foreign key discards the slot; a loading view leaves it armed.
        """
        slot = self._slot
        if slot is None:
            return None
        if slot.key != key:
            self._slot = None
            return None
        if loading:
            return None
        self._slot = None
        return slot.offset_pixels

    def discard(self) -> None:
        self._slot = None
