"""
New-order alerts fanned out to external sinks (sound cue, OS notification, banner, ...).

Fire-and-forget: each (alert, sink) pair is delivered in its own task, and a failing sink
is logged and counted without affecting other sinks or the snapshot pipeline.
"""
import asyncio
import json
import logging
from dataclasses import asdict, dataclass
from typing import Iterable, Protocol

import redis.asyncio as redis

from order_board.metrics import alerts_failed_total
from order_board.models import Order
from order_board.redis_client import alerts_channel
from order_board.ws import ConnectionManager

logger = logging.getLogger(__name__)

ALERT_TITLE = "New Order Received!"


def format_amount(value: float) -> str:
    # 450.0 -> "450", 12.5 -> "12.5"
    return f"{value:.2f}".rstrip("0").rstrip(".")


@dataclass(frozen=True)
class NewOrderAlert:
    order_id: str
    table_number: str
    order_number: str
    total: float

    @classmethod
    def from_order(cls, order: Order) -> "NewOrderAlert":
        return cls(
            order_id=order.id,
            table_number=str(order.table_number),
            order_number=order.order_number_display,
            total=order.total,
        )

    def body(self, currency_symbol: str = "₹") -> str:
        return f"Table {self.table_number} - Order #{self.order_number} - {currency_symbol}{format_amount(self.total)}"

    def to_payload(self, currency_symbol: str = "₹") -> dict:
        return {"type": "new_order", "title": ALERT_TITLE, "body": self.body(currency_symbol), **asdict(self)}


class AlertSink(Protocol):
    name: str

    async def send(self, alert: NewOrderAlert) -> None: ...


class LoggingAlertSink:
    """Stand-in for the audible cue when running headless."""
    name = "log"

    def __init__(self, currency_symbol: str = "₹") -> None:
        self._currency = currency_symbol

    async def send(self, alert: NewOrderAlert) -> None:
        logger.info("%s %s", ALERT_TITLE, alert.body(self._currency))


class RedisAlertSink:
    name = "redis"

    def __init__(self, r: redis.Redis, restaurant_id: str, currency_symbol: str = "₹") -> None:
        self._r = r
        self._channel = alerts_channel(restaurant_id)
        self._currency = currency_symbol

    async def send(self, alert: NewOrderAlert) -> None:
        await self._r.publish(self._channel, json.dumps(alert.to_payload(self._currency)))


class WebSocketAlertSink:
    name = "websocket"

    def __init__(self, connections: ConnectionManager, currency_symbol: str = "₹") -> None:
        self._connections = connections
        self._currency = currency_symbol

    async def send(self, alert: NewOrderAlert) -> None:
        await self._connections.broadcast_json(alert.to_payload(self._currency))


class NotificationDispatcher:
    def __init__(self, sinks: Iterable[AlertSink] = ()) -> None:
        self.sinks: list[AlertSink] = list(sinks)
        self._tasks: set[asyncio.Task] = set()

    def notify(self, new_orders: Iterable[Order]) -> int:
        """Schedule delivery of one alert per order to every sink. Returns the number of alerts."""
        alerts = [NewOrderAlert.from_order(o) for o in new_orders]
        for alert in alerts:
            for sink in self.sinks:
                t = asyncio.create_task(self._deliver(sink, alert))
                self._tasks.add(t)
                t.add_done_callback(self._tasks.discard)
        return len(alerts)

    async def _deliver(self, sink: AlertSink, alert: NewOrderAlert) -> None:
        try:
            await sink.send(alert)
        except Exception as e:
            alerts_failed_total.labels(sink=sink.name).inc()
            logger.exception("Alert sink %s failed for order %s: %s", sink.name, alert.order_id, e)

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for in-flight deliveries; cancel whatever is still running after timeout."""
        if not self._tasks:
            return
        _, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        for t in pending:
            t.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
