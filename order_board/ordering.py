"""
Presentation ordering: tab filter, then urgent first, then oldest first.
"""
from datetime import datetime
from typing import Iterable

from order_board.classify import is_urgent
from order_board.config import DEFAULT_POLICY, BoardPolicy
from order_board.models import Order
from order_board.order_state import OrderStatus

ALL_TAB = "all"
TABS: tuple[str, ...] = (ALL_TAB,) + tuple(status.value for status in OrderStatus)
DEFAULT_TAB = OrderStatus.PENDING.value

# Keyboard shortcuts 1..4 select the status tabs in workflow order
_TAB_KEYS = {str(i): status.value for i, status in enumerate(OrderStatus, start=1)}


def tab_for_key(key: str) -> str | None:
    return _TAB_KEYS.get(key)


def visible_orders(
    orders: Iterable[Order],
    active_tab: str,
    now: datetime,
    policy: BoardPolicy = DEFAULT_POLICY,
) -> list[Order]:
    """
    Orders shown under active_tab, as a new list. Missing timestamps sort as "now", so they
    never claim top priority among non-urgent orders. sorted() is stable: equal keys keep input order.
    """
    if active_tab == ALL_TAB:
        selected = list(orders)
    else:
        selected = [o for o in orders if o.status == active_tab]

    def sort_key(order: Order) -> tuple[bool, datetime]:
        return (not is_urgent(order, now, policy), order.timestamp or now)

    return sorted(selected, key=sort_key)
