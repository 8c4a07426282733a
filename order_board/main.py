import asyncio
import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket
from fastapi.responses import Response
from fastapi.websockets import WebSocketDisconnect

from order_board.classify import counts_by_status
from order_board.config import BoardPolicy, settings
from order_board.metrics import get_metrics_bytes, get_metrics_content_type
from order_board.models import Order
from order_board.notify import NotificationDispatcher, WebSocketAlertSink
from order_board.pipeline import BoardPipeline
from order_board.reconcile import BoardState
from order_board.redis_client import close_redis, get_redis
from order_board.routes import board, orders
from order_board.sink import RedisCommandSink
from order_board.source import RedisOrderSource
from order_board.transitions import TransitionController
from order_board.ws import manager

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s [%(levelname)s] %(message)s",
    stream=sys.stdout,
)
logger = logging.getLogger(__name__)

SHUTDOWN_WAIT_SEC = 10


async def broadcast_refresh(state: BoardState, new_orders: list[Order]) -> None:
    await manager.broadcast_json({
        "type": "board_refresh",
        "version": state.version,
        "counts": counts_by_status(state.orders.values()),
    })


@asynccontextmanager
async def lifespan(app: FastAPI):
    r = await get_redis()
    dispatcher = NotificationDispatcher([WebSocketAlertSink(manager, settings.currency_symbol)])
    pipeline = BoardPipeline(dispatcher, BoardPolicy.from_settings(settings))
    pipeline.add_listener(broadcast_refresh)
    source = RedisOrderSource(r, settings.restaurant_id, settings.subscription_retry_seconds)

    app.state.pipeline = pipeline
    app.state.controller = TransitionController(RedisCommandSink(r, settings.restaurant_id))

    shutdown_event = asyncio.Event()
    tasks = [
        asyncio.create_task(pipeline.run(shutdown_event)),
        asyncio.create_task(source.subscribe(pipeline.submit_snapshot, pipeline.submit_error, shutdown_event)),
    ]
    logger.info("Order board for %s started", settings.restaurant_id)
    try:
        yield
    finally:
        shutdown_event.set()
        _, pending = await asyncio.wait(tasks, timeout=SHUTDOWN_WAIT_SEC)
        for t in pending:
            t.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        await dispatcher.drain(timeout=SHUTDOWN_WAIT_SEC)
        await close_redis()


app = FastAPI(title="Kitchen Order Board", lifespan=lifespan)
app.include_router(board.router)
app.include_router(orders.router)


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}


@app.get("/metrics")
async def metrics() -> Response:
    """Prometheus scrape endpoint."""
    return Response(
        content=get_metrics_bytes(),
        media_type=get_metrics_content_type(),
    )


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    await manager.connect(websocket)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        manager.disconnect(websocket)
