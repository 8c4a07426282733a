"""
Command sink: point writes of field updates to a single order.

The sink, not the caller, stamps transition times: a field whose value is SERVER_TIMESTAMP
is replaced by the store's own clock when the write is applied.
"""
import json
from typing import Any, Mapping, Protocol

import redis.asyncio as redis
from redis.exceptions import ResponseError

from order_board.order_state import REQUIRED_PREDECESSOR, OrderStatus
from order_board.redis_client import changes_channel, orders_key


class _ServerTimestamp:
    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP: Any = _ServerTimestamp()
_SERVER_TIMESTAMP_MARKER = "__server_timestamp__"


class OrderNotFoundError(Exception):
    """Raised when the target order is not in the store."""
    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(order_id)


class StaleTransitionError(Exception):
    """Raised when the stored status is not the one the transition starts from."""
    def __init__(self, order_id: str, current_status: str | None = None):
        self.order_id = order_id
        self.current_status = current_status
        super().__init__(order_id, current_status)


class CommandSink(Protocol):
    async def update(self, order_id: str, fields: Mapping[str, Any]) -> None: ...


# KEYS[1] orders hash, KEYS[2] change channel
# ARGV[1] order id, ARGV[2] JSON field updates, ARGV[3] server timestamp marker,
# ARGV[4] required current status ("" = no check)
_UPDATE_ORDER_LUA = """
local raw = redis.call('HGET', KEYS[1], ARGV[1])
if not raw then
  return redis.error_reply('NOT_FOUND')
end
local order = cjson.decode(raw)
if ARGV[4] ~= '' and order['status'] ~= ARGV[4] then
  return redis.error_reply('CONFLICT ' .. tostring(order['status']))
end
local t = redis.call('TIME')
local now_ms = tonumber(t[1]) * 1000 + math.floor(tonumber(t[2]) / 1000)
local updates = cjson.decode(ARGV[2])
for k, v in pairs(updates) do
  if v == ARGV[3] then
    order[k] = now_ms
  else
    order[k] = v
  end
end
redis.call('HSET', KEYS[1], ARGV[1], cjson.encode(order))
redis.call('PUBLISH', KEYS[2], ARGV[1])
return now_ms
"""


class RedisCommandSink:
    """Applies updates atomically inside Redis and publishes a change notification."""

    def __init__(self, r: redis.Redis, restaurant_id: str) -> None:
        self._r = r
        self._restaurant_id = restaurant_id
        self._script = r.register_script(_UPDATE_ORDER_LUA)

    async def update(self, order_id: str, fields: Mapping[str, Any]) -> None:
        encoded = {
            k: (_SERVER_TIMESTAMP_MARKER if v is SERVER_TIMESTAMP else v)
            for k, v in fields.items()
        }
        required = ""
        status = fields.get("status")
        if status is not None:
            predecessor = REQUIRED_PREDECESSOR.get(OrderStatus(status))
            required = predecessor.value if predecessor else ""
        try:
            await self._script(
                keys=[orders_key(self._restaurant_id), changes_channel(self._restaurant_id)],
                args=[order_id, json.dumps(encoded), _SERVER_TIMESTAMP_MARKER, required],
            )
        except ResponseError as e:
            message = str(e)
            if message.startswith("NOT_FOUND"):
                raise OrderNotFoundError(order_id) from e
            if message.startswith("CONFLICT"):
                raise StaleTransitionError(order_id, message.partition(" ")[2] or None) from e
            raise
