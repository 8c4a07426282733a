"""
Reconciliation: compare the previous working set with the new one to find newly arrived orders.

reconcile() is a pure fold (state, snapshot) -> (new_state, new_orders). The caller owns the
state cell and swaps it by reference; a BoardState is never mutated after construction.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from types import MappingProxyType
from typing import Iterable, Mapping

from order_board.config import DEFAULT_POLICY, BoardPolicy
from order_board.models import Order
from order_board.order_state import OrderStatus
from order_board.snapshot import RawRecord, build_working_set


@dataclass(frozen=True)
class BoardState:
    orders: Mapping[str, Order] = field(default_factory=lambda: MappingProxyType({}))
    version: int = 0  # number of snapshots folded in
    updated_at: datetime | None = None

    @classmethod
    def empty(cls) -> "BoardState":
        return cls()

    def order_list(self) -> list[Order]:
        return list(self.orders.values())

    def get(self, order_id: str) -> Order | None:
        return self.orders.get(order_id)


def detect_new(previous: Iterable[Order], current: Iterable[Order], now: datetime,
               policy: BoardPolicy = DEFAULT_POLICY) -> list[Order]:
    """
    Pending orders in current whose id was not in previous and whose timestamp is inside the
    recency window. The window also keeps an initial load (previous empty) from replaying a
    backlog of old pending orders; orders without a timestamp are never new.
    """
    seen = {o.id for o in previous}
    cutoff = now - timedelta(minutes=policy.new_order_window_minutes)
    return [
        o for o in current
        if o.status == OrderStatus.PENDING
        and o.id not in seen
        and o.timestamp is not None
        and o.timestamp > cutoff
    ]


def reconcile(
    state: BoardState,
    records: Iterable[RawRecord],
    now: datetime,
    policy: BoardPolicy = DEFAULT_POLICY,
) -> tuple[BoardState, list[Order]]:
    working = build_working_set(records, now, policy)
    new_orders = detect_new(state.orders.values(), working.values(), now, policy)
    new_state = BoardState(
        orders=MappingProxyType(working),
        version=state.version + 1,
        updated_at=now,
    )
    return new_state, new_orders
