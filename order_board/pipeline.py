"""
Board pipeline: the single consumer of snapshot and subscription-error messages.

Messages go through one asyncio.Queue and are handled strictly one at a time in arrival
order, so the previous working set is never read while it is being replaced. The pipeline is
the only writer of the BoardState cell; readers get whatever state was last installed.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Iterable

from order_board.classify import counts_by_status
from order_board.config import DEFAULT_POLICY, BoardPolicy
from order_board.metrics import (
    new_orders_detected_total,
    snapshots_processed_total,
    subscription_errors_total,
    working_set_orders,
)
from order_board.models import Order
from order_board.notify import NotificationDispatcher
from order_board.reconcile import BoardState, reconcile
from order_board.snapshot import RawRecord

logger = logging.getLogger(__name__)

INBOX_POLL_TIMEOUT = 1.0


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SnapshotReceived:
    records: list[RawRecord]
    received_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class SubscriptionFailed:
    error: str
    received_at: datetime = field(default_factory=utcnow)


BoardMessage = SnapshotReceived | SubscriptionFailed
UpdateListener = Callable[[BoardState, list[Order]], Awaitable[None]]


class BoardPipeline:
    def __init__(
        self,
        dispatcher: NotificationDispatcher | None = None,
        policy: BoardPolicy = DEFAULT_POLICY,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.dispatcher = dispatcher or NotificationDispatcher()
        self.policy = policy
        self._clock = clock
        self._inbox: asyncio.Queue[BoardMessage] = asyncio.Queue()
        self._state = BoardState.empty()
        self._listeners: list[UpdateListener] = []
        self.stale = False
        self.last_error: str | None = None

    @property
    def state(self) -> BoardState:
        return self._state

    def now(self) -> datetime:
        return self._clock()

    def add_listener(self, listener: UpdateListener) -> None:
        self._listeners.append(listener)

    # -------------------- inbound --------------------

    def submit_snapshot(self, records: Iterable[RawRecord]) -> None:
        self._inbox.put_nowait(SnapshotReceived(list(records)))

    def submit_error(self, error: BaseException | str) -> None:
        self._inbox.put_nowait(SubscriptionFailed(str(error)))

    @property
    def backlog(self) -> int:
        return self._inbox.qsize()

    async def wait_idle(self) -> None:
        """Wait until every queued message has been handled by run()."""
        await self._inbox.join()

    # -------------------- processing --------------------

    async def handle(self, message: BoardMessage) -> list[Order]:
        """Process one message to completion. Returns the orders detected as new."""
        if isinstance(message, SubscriptionFailed):
            subscription_errors_total.inc()
            self.stale = True
            self.last_error = message.error
            logger.error("Order subscription error, board data may be stale: %s", message.error)
            return []

        now = self._clock()
        new_state, new_orders = reconcile(self._state, message.records, now, self.policy)
        self._state = new_state
        self.stale = False
        self.last_error = None

        snapshots_processed_total.inc()
        for status, count in counts_by_status(new_state.orders.values()).items():
            working_set_orders.labels(status=status).set(count)
        logger.info("Orders updated, total: %d (working set %d)", len(message.records), len(new_state.orders))

        if new_orders:
            new_orders_detected_total.inc(len(new_orders))
            logger.info("New orders detected: %d", len(new_orders))
            self.dispatcher.notify(new_orders)

        for listener in self._listeners:
            try:
                await listener(new_state, new_orders)
            except Exception as e:
                logger.exception("Board update listener failed: %s", e)
        return new_orders

    async def drain_inbox(self) -> int:
        """Handle every message already queued. Returns how many were handled."""
        handled = 0
        while not self._inbox.empty():
            await self.handle(self._inbox.get_nowait())
            self._inbox.task_done()
            handled += 1
        return handled

    async def run(self, shutdown_event: asyncio.Event) -> None:
        logger.info("Board pipeline started (policy=%s)", self.policy)
        try:
            while not shutdown_event.is_set():
                try:
                    message = await asyncio.wait_for(self._inbox.get(), timeout=INBOX_POLL_TIMEOUT)
                except asyncio.TimeoutError:
                    continue
                try:
                    await self.handle(message)
                except Exception as e:
                    logger.exception("Failed to process board message: %s", e)
                finally:
                    self._inbox.task_done()
        finally:
            logger.info("Board pipeline stopped.")
