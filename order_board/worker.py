"""
Headless board worker: follow the order collection, reconcile each snapshot, raise new-order alerts.
- Alerts are logged and published to the restaurant's Redis alerts channel.
- Prometheus metrics on settings.metrics_port.
- Graceful shutdown on SIGTERM.
Run: python -m order_board.worker
"""
import asyncio
import logging
import signal
import sys
import threading

from order_board.classify import counts_by_status
from order_board.config import BoardPolicy, settings
from order_board.models import Order
from order_board.notify import LoggingAlertSink, NotificationDispatcher, RedisAlertSink
from order_board.pipeline import BoardPipeline
from order_board.reconcile import BoardState
from order_board.redis_client import close_redis, get_redis
from order_board.source import RedisOrderSource

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s [%(levelname)s] %(message)s",
    stream=sys.stdout,
)
logger = logging.getLogger(__name__)

GRACEFUL_SHUTDOWN_WAIT_SEC = 30


def _start_metrics_server() -> None:
    from prometheus_client import start_http_server
    start_http_server(settings.metrics_port)


async def log_counts(state: BoardState, new_orders: list[Order]) -> None:
    counts = counts_by_status(state.orders.values())
    logger.info("Board v%d: %s", state.version, " ".join(f"{k}={v}" for k, v in counts.items()))


async def run_worker(shutdown_event: asyncio.Event) -> None:
    r = await get_redis()
    dispatcher = NotificationDispatcher([
        LoggingAlertSink(settings.currency_symbol),
        RedisAlertSink(r, settings.restaurant_id, settings.currency_symbol),
    ])
    pipeline = BoardPipeline(dispatcher, BoardPolicy.from_settings(settings))
    pipeline.add_listener(log_counts)
    source = RedisOrderSource(r, settings.restaurant_id, settings.subscription_retry_seconds)
    logger.info(
        "Following orders of %s (pending urgent after %dm, preparing after %dm, retention %dm) ...",
        settings.restaurant_id,
        settings.pending_urgent_minutes,
        settings.preparing_urgent_minutes,
        settings.completed_retention_minutes,
    )
    tasks = [
        asyncio.create_task(pipeline.run(shutdown_event)),
        asyncio.create_task(source.subscribe(pipeline.submit_snapshot, pipeline.submit_error, shutdown_event)),
    ]
    try:
        await shutdown_event.wait()
    finally:
        logger.info("Graceful shutdown: waiting for pipeline and subscription (max %ds) ...", GRACEFUL_SHUTDOWN_WAIT_SEC)
        _, pending = await asyncio.wait(tasks, timeout=GRACEFUL_SHUTDOWN_WAIT_SEC, return_when=asyncio.ALL_COMPLETED)
        for t in pending:
            t.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        await dispatcher.drain(timeout=GRACEFUL_SHUTDOWN_WAIT_SEC)
        await close_redis()
        logger.info("Worker stopped.")


def main() -> None:
    threading.Thread(target=_start_metrics_server, daemon=True).start()
    logger.info("Metrics server listening on port %s", settings.metrics_port)

    shutdown_event = asyncio.Event()

    def on_signal():
        shutdown_event.set()

    loop = asyncio.new_event_loop()
    try:
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, on_signal)
    except NotImplementedError:
        signal.signal(signal.SIGTERM, lambda *a: shutdown_event.set())
        signal.signal(signal.SIGINT, lambda *a: shutdown_event.set())

    asyncio.set_event_loop(loop)
    try:
        loop.run_until_complete(run_worker(shutdown_event))
    finally:
        loop.close()


if __name__ == "__main__":
    main()
