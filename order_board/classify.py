"""
Classification: urgency, prep-time estimate, per-status counts and age labels.
All functions are pure; "now" is always passed in.
"""
from datetime import datetime
from typing import Iterable

from order_board.config import DEFAULT_POLICY, BoardPolicy
from order_board.models import Order
from order_board.order_state import OrderStatus


def age_minutes(order: Order, now: datetime) -> int:
    """Whole minutes since the order was created; 0 when the timestamp is unknown."""
    if order.timestamp is None:
        return 0
    return int((now - order.timestamp).total_seconds() // 60)


def is_urgent(order: Order, now: datetime, policy: BoardPolicy = DEFAULT_POLICY) -> bool:
    if order.timestamp is None:
        return False
    age = age_minutes(order, now)
    if order.status == OrderStatus.PENDING:
        return age > policy.pending_urgent_minutes
    if order.status == OrderStatus.PREPARING:
        return age > policy.preparing_urgent_minutes
    return False


def estimated_minutes(order: Order, policy: BoardPolicy = DEFAULT_POLICY) -> int:
    complexity = sum(item.quantity * policy.estimate_minutes_per_item for item in order.items)
    return min(policy.estimate_base_minutes + complexity, policy.estimate_max_minutes)


def counts_by_status(orders: Iterable[Order]) -> dict[str, int]:
    """Tally over the four statuses; anything else is ignored."""
    counts = {status.value: 0 for status in OrderStatus}
    for order in orders:
        key = getattr(order.status, "value", order.status)
        if key in counts:
            counts[key] += 1
    return counts


def _hours_minutes(minutes: int) -> str:
    hours, mins = divmod(minutes, 60)
    return f"{hours}h {mins}m"


def time_ago(order: Order, now: datetime) -> str:
    if order.timestamp is None:
        return "Unknown time"
    minutes = age_minutes(order, now)
    if minutes < 1:
        return "Just now"
    if minutes < 60:
        return f"{minutes} min ago"
    return f"{_hours_minutes(minutes)} ago"


def time_elapsed(order: Order, now: datetime) -> str:
    if order.timestamp is None:
        return "0 min"
    minutes = age_minutes(order, now)
    if minutes < 60:
        return f"{minutes} min"
    return _hours_minutes(minutes)
