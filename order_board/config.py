from dataclasses import dataclass

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    redis_url: str = "redis://localhost:6379/0"
    restaurant_id: str = "restaurant_1"  # scopes the order collection and channels

    # Board thresholds (minutes)
    pending_urgent_minutes: int = 15
    preparing_urgent_minutes: int = 30
    completed_retention_minutes: int = 30
    new_order_window_minutes: int = 2  # recency guard for new-order alerts

    # Prep time estimate: base + per_item * quantity, capped
    estimate_base_minutes: int = 15
    estimate_minutes_per_item: int = 2
    estimate_max_minutes: int = 45

    currency_symbol: str = "₹"
    subscription_retry_seconds: float = 5.0
    metrics_port: int = 9090
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        extra = "ignore"


@dataclass(frozen=True)
class BoardPolicy:
    """Thresholds used by the pure board functions."""
    pending_urgent_minutes: int = 15
    preparing_urgent_minutes: int = 30
    completed_retention_minutes: int = 30
    new_order_window_minutes: int = 2
    estimate_base_minutes: int = 15
    estimate_minutes_per_item: int = 2
    estimate_max_minutes: int = 45

    @classmethod
    def from_settings(cls, s: Settings) -> "BoardPolicy":
        return cls(
            pending_urgent_minutes=s.pending_urgent_minutes,
            preparing_urgent_minutes=s.preparing_urgent_minutes,
            completed_retention_minutes=s.completed_retention_minutes,
            new_order_window_minutes=s.new_order_window_minutes,
            estimate_base_minutes=s.estimate_base_minutes,
            estimate_minutes_per_item=s.estimate_minutes_per_item,
            estimate_max_minutes=s.estimate_max_minutes,
        )


DEFAULT_POLICY = BoardPolicy()

settings = Settings()
