"""
Typed order entities built from raw store records.

Records use the store's camelCase keys (tableNumber, specialInstructions, readyAt, ...);
the models accept either those aliases or the snake_case field names.
"""
import json
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from order_board.order_state import OrderStatus

NOT_AVAILABLE = "N/A"


def _coerce_instant(value: Any) -> Any:
    # Store timestamps may arrive as {"seconds": ..., "nanoseconds": ...}
    if isinstance(value, dict) and "seconds" in value:
        try:
            seconds = float(value["seconds"]) + float(value.get("nanoseconds", 0)) / 1e9
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (TypeError, ValueError, OverflowError, OSError) as e:
            raise ValueError(f"invalid timestamp {value!r}") from e
    return value


def _as_utc(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class OrderItem(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str
    quantity: int = Field(..., gt=0)
    price: float = Field(..., ge=0, description="Unit price")
    notes: str | None = None

    @property
    def line_total(self) -> float:
        return self.price * self.quantity


class Order(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: str
    table_number: str | int = Field(..., alias="tableNumber")
    order_number: str | int | None = Field(default=None, alias="orderNumber")
    status: OrderStatus
    items: tuple[OrderItem, ...] = ()
    special_instructions: str | None = Field(default=None, alias="specialInstructions")
    total: float = Field(..., ge=0)
    timestamp: datetime | None = None
    preparing_at: datetime | None = Field(default=None, alias="preparingAt")
    ready_at: datetime | None = Field(default=None, alias="readyAt")
    completed_at: datetime | None = Field(default=None, alias="completedAt")
    updated_by: str | None = Field(default=None, alias="updatedBy")

    @field_validator("timestamp", "preparing_at", "ready_at", "completed_at", mode="before")
    @classmethod
    def _instant(cls, value: Any) -> Any:
        return _coerce_instant(value)

    @field_validator("timestamp", "preparing_at", "ready_at", "completed_at")
    @classmethod
    def _utc(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)

    @field_validator("items", mode="before")
    @classmethod
    def _empty_items(cls, value: Any) -> Any:
        # Lua cjson in Redis writes an empty array back as {}
        if isinstance(value, dict) and not value:
            return ()
        return value

    @field_validator("special_instructions")
    @classmethod
    def _blank_to_none(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            return None
        return value

    @classmethod
    def from_record(cls, order_id: str, raw: Any) -> "Order":
        """
        Build an Order from a raw record (mapping or JSON text) and its store id.
        Raises ValueError (pydantic ValidationError included) if the record is malformed.
        """
        if isinstance(raw, (str, bytes, bytearray)):
            raw = json.loads(raw)
        if not isinstance(raw, dict):
            raise ValueError(f"record {order_id!r} is not an object")
        return cls.model_validate({**raw, "id": order_id})

    @property
    def order_number_display(self) -> str:
        return NOT_AVAILABLE if self.order_number in (None, "") else str(self.order_number)

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)
