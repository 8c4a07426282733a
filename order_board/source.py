"""
Order data source backed by Redis: a hash holding the collection plus a change channel.

Every change notification triggers a read of the full collection, so consumers always get a
complete snapshot. Transport errors go to the error callback and never escape subscribe();
the source resubscribes after a delay.
"""
import asyncio
import logging
from typing import Callable

import redis.asyncio as redis
from redis.exceptions import RedisError

from order_board.redis_client import changes_channel, orders_key
from order_board.snapshot import RawRecord

logger = logging.getLogger(__name__)

PUBSUB_POLL_TIMEOUT = 1.0

SnapshotCallback = Callable[[list[RawRecord]], None]
ErrorCallback = Callable[[BaseException], None]


class RedisOrderSource:
    def __init__(self, r: redis.Redis, restaurant_id: str, retry_seconds: float = 5.0) -> None:
        self._r = r
        self._key = orders_key(restaurant_id)
        self._channel = changes_channel(restaurant_id)
        self._retry_seconds = retry_seconds

    async def fetch_snapshot(self) -> list[RawRecord]:
        data = await self._r.hgetall(self._key)
        return list(data.items())

    async def subscribe(
        self,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
        shutdown_event: asyncio.Event,
    ) -> None:
        while not shutdown_event.is_set():
            try:
                await self._listen(on_snapshot, shutdown_event)
            except (RedisError, OSError) as e:
                logger.error("Order subscription on %s failed: %s", self._channel, e)
                on_error(e)
                try:
                    await asyncio.wait_for(shutdown_event.wait(), timeout=self._retry_seconds)
                except asyncio.TimeoutError:
                    logger.info("Resubscribing to %s", self._channel)

    async def _listen(self, on_snapshot: SnapshotCallback, shutdown_event: asyncio.Event) -> None:
        pubsub = self._r.pubsub()
        try:
            # subscribe before the initial read so no change between the two is missed
            await pubsub.subscribe(self._channel)
            on_snapshot(await self.fetch_snapshot())
            logger.info("Subscribed to %s", self._channel)
            while not shutdown_event.is_set():
                message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=PUBSUB_POLL_TIMEOUT)
                if message is None:
                    continue
                on_snapshot(await self.fetch_snapshot())
        finally:
            await pubsub.aclose()
