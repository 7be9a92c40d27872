# core/state_machine.py
from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet


class SearchPhase(str, Enum):
    IDLE = "idle"
    DEBOUNCING = "debouncing"
    IN_FLIGHT = "in_flight"
    SETTLED = "settled"
    ERRORED = "errored"


class IllegalTransition(RuntimeError):
    pass


# No terminal phase: the orchestrator lives as long as its view.
TRANSITIONS: Dict[SearchPhase, FrozenSet[SearchPhase]] = {
    SearchPhase.IDLE: frozenset({SearchPhase.DEBOUNCING}),
    SearchPhase.DEBOUNCING: frozenset({SearchPhase.DEBOUNCING, SearchPhase.IN_FLIGHT}),
    # a change while in flight debounces the next request; the old one resolves into a no-op
    SearchPhase.IN_FLIGHT: frozenset(
        {SearchPhase.DEBOUNCING, SearchPhase.IN_FLIGHT, SearchPhase.SETTLED, SearchPhase.ERRORED}
    ),
    SearchPhase.SETTLED: frozenset({SearchPhase.DEBOUNCING}),
    SearchPhase.ERRORED: frozenset({SearchPhase.DEBOUNCING}),
}


def can_advance(current: SearchPhase, nxt: SearchPhase) -> bool:
    return nxt in TRANSITIONS[current]


def advance(current: SearchPhase, nxt: SearchPhase) -> SearchPhase:
    """
    Only validates the move.
    DO NOT store the phase here: the orchestrator owns it.
    """
    if not can_advance(current, nxt):
        raise IllegalTransition(f"{current.value} -> {nxt.value}")
    return nxt


def is_busy(phase: SearchPhase) -> bool:
    return phase in (SearchPhase.DEBOUNCING, SearchPhase.IN_FLIGHT)
