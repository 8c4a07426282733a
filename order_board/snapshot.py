"""
Snapshot adapter: raw store records -> working set of typed Orders.

A snapshot is the full collection, not a delta. Completed orders are kept only while
recent; a single bad record is skipped rather than blanking the board.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Iterable

from order_board.config import DEFAULT_POLICY, BoardPolicy
from order_board.metrics import records_malformed_total
from order_board.models import Order
from order_board.order_state import OrderStatus

logger = logging.getLogger(__name__)

# (order id, raw record) as delivered by the data source
RawRecord = tuple[str, Any]


def is_retained(order: Order, now: datetime, policy: BoardPolicy = DEFAULT_POLICY) -> bool:
    """Open orders always stay; completed ones only while their timestamp is inside the retention window."""
    if order.status != OrderStatus.COMPLETED:
        return True
    if order.timestamp is None:
        return False
    return order.timestamp > now - timedelta(minutes=policy.completed_retention_minutes)


def parse_records(records: Iterable[RawRecord]) -> list[Order]:
    """Parse every record that can be parsed; malformed ones are logged and skipped."""
    orders: list[Order] = []
    for order_id, raw in records:
        try:
            orders.append(Order.from_record(order_id, raw))
        except ValueError as e:
            records_malformed_total.inc()
            logger.warning("Skipping malformed order record id=%s: %s", order_id, e)
    return orders


def build_working_set(
    records: Iterable[RawRecord],
    now: datetime,
    policy: BoardPolicy = DEFAULT_POLICY,
) -> dict[str, Order]:
    """
    Working set keyed by order id, in snapshot order.
    A repeated id keeps its first position and takes the later record's value.
    """
    working: dict[str, Order] = {}
    for order in parse_records(records):
        if not is_retained(order, now, policy):
            continue
        if order.id in working:
            logger.warning("Duplicate order id=%s in snapshot, keeping latest record", order.id)
        working[order.id] = order
    return working
