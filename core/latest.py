# core/latest.py


class LatestWins:
    """
    Sequence-number gate for async work.

    Every issued operation takes the next ordinal; only the holder of the
    latest ordinal may apply its result. Closing the gate makes every ordinal,
    past and future, stale.
    """

    def __init__(self) -> None:
        self._seq = 0
        self._closed = False

    @property
    def latest(self) -> int:
        return self._seq

    @property
    def closed(self) -> bool:
        return self._closed

    def issue(self) -> int:
        self._seq += 1
        return self._seq

    def is_current(self, seq: int) -> bool:
        return not self._closed and seq == self._seq

    def invalidate(self) -> None:
        """Supersede whatever is outstanding without issuing new work."""
        self._seq += 1

    def close(self) -> None:
        self._closed = True
