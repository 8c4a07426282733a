"""
JSON views of the board for the rendering layer.
"""
from datetime import datetime

from order_board.classify import counts_by_status, estimated_minutes, is_urgent, time_ago, time_elapsed
from order_board.config import DEFAULT_POLICY, BoardPolicy
from order_board.models import Order
from order_board.order_state import ACTION_LABELS, next_status
from order_board.ordering import visible_orders
from order_board.reconcile import BoardState


def order_view(order: Order, now: datetime, policy: BoardPolicy = DEFAULT_POLICY) -> dict:
    successor = next_status(order.status)
    return {
        **order.model_dump(mode="json", by_alias=True),
        "orderNumberDisplay": order.order_number_display,
        "urgent": is_urgent(order, now, policy),
        "estimatedMinutes": estimated_minutes(order, policy),
        "timeAgo": time_ago(order, now),
        "timeElapsed": time_elapsed(order, now),
        "nextStatus": successor.value if successor else None,
        "action": ACTION_LABELS.get(order.status),
    }


def board_view(
    state: BoardState,
    tab: str,
    now: datetime,
    policy: BoardPolicy = DEFAULT_POLICY,
    stale: bool = False,
    last_error: str | None = None,
) -> dict:
    orders = visible_orders(state.orders.values(), tab, now, policy)
    return {
        "tab": tab,
        "version": state.version,
        "stale": stale,
        "error": last_error,
        "counts": counts_by_status(state.orders.values()),
        "orders": [order_view(o, now, policy) for o in orders],
    }
