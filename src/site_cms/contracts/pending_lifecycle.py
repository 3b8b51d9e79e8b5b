from enum import Enum


class PendingState(str, Enum):
    PROPOSED = "proposed"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


_ALLOWED_TRANSITIONS: dict[PendingState, set[PendingState]] = {
    PendingState.PROPOSED: {
        PendingState.CONFIRMED,
        PendingState.CANCELLED,
        PendingState.EXPIRED,
    },
    PendingState.CONFIRMED: set(),
    PendingState.CANCELLED: set(),
    PendingState.EXPIRED: set(),
}


def can_transition(current: PendingState, target: PendingState) -> bool:
    return target in _ALLOWED_TRANSITIONS.get(current, set())


def validate_transition(current: PendingState, target: PendingState) -> PendingState:
    if not can_transition(current, target):
        raise ValueError(f"invalid pending transition: {current.value} -> {target.value}")
    return target
