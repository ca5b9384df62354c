from __future__ import annotations

from typing import FrozenSet, Literal


BookingStatus = Literal[
    "pending",
    "confirmed",
    "cancelled",
    "completed",
]


_ALLOWED_TRANSITIONS = {
    "pending": {"confirmed", "cancelled"},
    "confirmed": {"cancelled", "completed"},
    # Terminal
    "cancelled": set(),
    "completed": set(),
}

# A booking in one of these states holds exactly one stock unit.
STOCK_HOLDING_STATUSES: FrozenSet[str] = frozenset({"pending", "confirmed"})
TERMINAL_STATUSES: FrozenSet[str] = frozenset({"cancelled", "completed"})


class BookingStateTransitionError(ValueError):
    """Raised when an invalid booking state transition is requested."""

    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"Invalid booking state transition: {current} -> {target}")
        self.current = current
        self.target = target


def validate_transition(current: str, target: str) -> None:
    """Validate that a transition from current -> target is allowed.

    Raises BookingStateTransitionError if not allowed.
    """

    allowed = _ALLOWED_TRANSITIONS.get(current, set())
    if target not in allowed:
        raise BookingStateTransitionError(current=current, target=target)


def sources_for(target: str) -> FrozenSet[str]:
    """States from which `target` can be reached.

    Used as the status guard of conditional updates so a concurrent
    transition cannot be applied twice.
    """

    return frozenset(state for state, targets in _ALLOWED_TRANSITIONS.items() if target in targets)
