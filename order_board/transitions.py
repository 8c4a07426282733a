"""
Lifecycle transitions: validate the requested target and issue one write to the command sink.

The controller does not check the order's current status against the store (that would race
the source of truth); the sink rejects stale transitions. No retries: a failed write is
reported to the caller, and the next snapshot shows the authoritative status.
"""
import asyncio
import logging
from typing import Any

from order_board.metrics import transitions_total
from order_board.models import Order
from order_board.order_state import FORWARD_TARGETS, OrderStatus, next_status, transition_field
from order_board.sink import SERVER_TIMESTAMP, CommandSink

logger = logging.getLogger(__name__)


class InvalidTransitionError(Exception):
    """Raised when the requested target is not a forward transition. Nothing is written."""
    def __init__(self, target: str, current_status: str | None = None):
        self.target = target
        self.current_status = current_status
        super().__init__(target, current_status)


class TransitionError(Exception):
    """Raised when the command sink rejects or fails the write. The sink error is __cause__."""
    def __init__(self, order_id: str, target: OrderStatus, cause: BaseException):
        self.order_id = order_id
        self.target = target
        self.cause = cause
        super().__init__(f"order {order_id} -> {target.value}: {cause!r}")


def transition_fields(target: OrderStatus, actor: str | None = None) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "status": target.value,
        transition_field(target): SERVER_TIMESTAMP,
    }
    if actor:
        fields["updatedBy"] = actor
    return fields


class TransitionController:
    def __init__(self, sink: CommandSink) -> None:
        self._sink = sink
        self._tasks: set[asyncio.Task] = set()

    async def transition(self, order_id: str, target: OrderStatus | str, *, actor: str | None = None) -> None:
        try:
            status = OrderStatus(target)
        except ValueError:
            raise InvalidTransitionError(str(target)) from None
        if status not in FORWARD_TARGETS:
            raise InvalidTransitionError(status.value)

        try:
            await self._sink.update(order_id, transition_fields(status, actor))
        except Exception as e:
            transitions_total.labels(target=status.value, outcome="failed").inc()
            logger.exception("Failed to move order %s to %s: %s", order_id, status.value, e)
            raise TransitionError(order_id, status, e) from e

        transitions_total.labels(target=status.value, outcome="ok").inc()
        logger.info("Order %s updated to %s by %s", order_id, status.value, actor or "Unknown")

    async def advance(self, order: Order, *, actor: str | None = None) -> OrderStatus:
        """Move order to the successor of the status it was last seen with (the board's action button)."""
        target = next_status(order.status)
        if target is None:
            raise InvalidTransitionError("", current_status=order.status.value)
        await self.transition(order.id, target, actor=actor)
        return target

    def dispatch(self, order_id: str, target: OrderStatus | str, *, actor: str | None = None) -> asyncio.Task:
        """Fire-and-forget transition; the returned task carries the outcome."""
        t = asyncio.create_task(self.transition(order_id, target, actor=actor))
        self._tasks.add(t)
        t.add_done_callback(self._reap)
        return t

    def _reap(self, t: asyncio.Task) -> None:
        self._tasks.discard(t)
        # failures were already logged in transition(); mark them retrieved
        if not t.cancelled():
            t.exception()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)
