"""
Order lifecycle state machine. Status only moves forward: pending -> preparing -> ready -> completed.
"""
from enum import Enum


class OrderStatus(str, Enum):
    PENDING = "pending"
    PREPARING = "preparing"
    READY = "ready"
    COMPLETED = "completed"


# Current status -> allowed next status
VALID_TRANSITIONS: dict[OrderStatus, list[OrderStatus]] = {
    OrderStatus.PENDING: [OrderStatus.PREPARING],
    OrderStatus.PREPARING: [OrderStatus.READY],
    OrderStatus.READY: [OrderStatus.COMPLETED],
    OrderStatus.COMPLETED: [],  # terminal
}

# Targets a transition request may name (everything reachable from some status)
FORWARD_TARGETS: frozenset[OrderStatus] = frozenset(
    target for targets in VALID_TRANSITIONS.values() for target in targets
)

# Target -> status the order must currently have (used by the sink to reject stale writes)
REQUIRED_PREDECESSOR: dict[OrderStatus, OrderStatus] = {
    target: current
    for current, targets in VALID_TRANSITIONS.items()
    for target in targets
}

# Button labels for the action that moves an order out of each status
ACTION_LABELS: dict[OrderStatus, str] = {
    OrderStatus.PENDING: "Start Preparing",
    OrderStatus.PREPARING: "Mark Ready",
    OrderStatus.READY: "Order Served",
}


def is_valid_transition(current_status: OrderStatus | str, target: OrderStatus | str) -> bool:
    """True if target is allowed after current_status."""
    try:
        current = OrderStatus(current_status)
        new = OrderStatus(target)
    except ValueError:
        return False
    return new in VALID_TRANSITIONS[current]


def next_status(current_status: OrderStatus | str) -> OrderStatus | None:
    """The single forward successor of current_status, or None for terminal/unknown statuses."""
    try:
        current = OrderStatus(current_status)
    except ValueError:
        return None
    allowed = VALID_TRANSITIONS[current]
    return allowed[0] if allowed else None


def transition_field(target: OrderStatus) -> str:
    """Name of the timestamp field stamped when an order enters target, e.g. readyAt."""
    return f"{target.value}At"
