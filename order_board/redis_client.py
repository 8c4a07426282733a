import redis.asyncio as redis
from order_board.config import settings

_redis: redis.Redis | None = None


async def get_redis() -> redis.Redis:
    global _redis
    if _redis is None:
        _redis = redis.from_url(settings.redis_url, decode_responses=True)
    return _redis


async def close_redis() -> None:
    global _redis
    if _redis is not None:
        await _redis.aclose()
        _redis = None


def orders_key(restaurant_id: str) -> str:
    """Hash of order id -> JSON record for one restaurant."""
    return f"restaurants:{restaurant_id}:orders"


def changes_channel(restaurant_id: str) -> str:
    """Pub/sub channel notified whenever the order collection changes."""
    return f"restaurants:{restaurant_id}:orders:changed"


def alerts_channel(restaurant_id: str) -> str:
    """Pub/sub channel carrying new-order alerts for board clients."""
    return f"restaurants:{restaurant_id}:alerts"
