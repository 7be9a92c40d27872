import pytest

from core.state_machine import IllegalTransition, SearchPhase, advance, can_advance, is_busy


@pytest.mark.parametrize(
    "current,nxt",
    [
        (SearchPhase.IDLE, SearchPhase.DEBOUNCING),
        (SearchPhase.DEBOUNCING, SearchPhase.DEBOUNCING),
        (SearchPhase.DEBOUNCING, SearchPhase.IN_FLIGHT),
        (SearchPhase.IN_FLIGHT, SearchPhase.SETTLED),
        (SearchPhase.IN_FLIGHT, SearchPhase.ERRORED),
        (SearchPhase.IN_FLIGHT, SearchPhase.DEBOUNCING),
        (SearchPhase.SETTLED, SearchPhase.DEBOUNCING),
        (SearchPhase.ERRORED, SearchPhase.DEBOUNCING),
    ],
)
def test_allowed_transitions(current, nxt):
    assert can_advance(current, nxt)
    assert advance(current, nxt) is nxt


@pytest.mark.parametrize(
    "current,nxt",
    [
        (SearchPhase.IDLE, SearchPhase.SETTLED),
        (SearchPhase.IDLE, SearchPhase.IN_FLIGHT),
        (SearchPhase.SETTLED, SearchPhase.IN_FLIGHT),
        (SearchPhase.ERRORED, SearchPhase.SETTLED),
        (SearchPhase.DEBOUNCING, SearchPhase.SETTLED),
    ],
)
def test_illegal_transitions_raise(current, nxt):
    with pytest.raises(IllegalTransition):
        advance(current, nxt)


def test_busy_phases():
    assert is_busy(SearchPhase.DEBOUNCING)
    assert is_busy(SearchPhase.IN_FLIGHT)
    assert not is_busy(SearchPhase.SETTLED)
    assert not is_busy(SearchPhase.IDLE)
