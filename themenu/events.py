"""Event types and event payloads published on the event bus."""

from __future__ import annotations

import dataclasses
import enum
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any


class EventType(str, enum.Enum):
    USER_CREATED = "UserCreated"
    USER_UPDATED = "UserUpdated"
    USER_DELETED = "UserDeleted"
    DISH_CREATED = "DishCreated"
    DISH_UPDATED = "DishUpdated"
    DISH_DELETED = "DishDeleted"
    ORDER_CREATED = "OrderCreated"
    ORDER_STATUS_UPDATED = "OrderStatusUpdated"
    ORDER_CANCELLED = "OrderCancelled"
    ORDER_UPDATED = "OrderUpdated"
    ORDER_DELETED = "OrderDeleted"
    NOTIFICATION_SENT = "NotificationSent"
    SYSTEM_ERROR = "SystemError"
    TOKEN_GENERATED = "token.generated"


@dataclass(frozen=True)
class UserEventPayload:
    user_id: str
    name: str
    email: str
    timestamp: str


@dataclass(frozen=True)
class DishEventPayload:
    dish_id: str
    name: str
    description: str
    price: float
    prep_time_minutes: int
    available_on: str
    timestamp: str


@dataclass(frozen=True)
class OrderEventPayload:
    order_id: str
    user_id: str
    dish_id: str
    status: str
    timestamp: str


@dataclass(frozen=True)
class NotificationEventPayload:
    notification_id: str
    user_id: str
    order_id: str
    message: str
    timestamp: str


@dataclass(frozen=True)
class SystemEventPayload:
    error: str
    component: str
    timestamp: str


@dataclass(frozen=True)
class TokenEventPayload:
    user_id: str
    email: str
    timestamp: str


def payload_to_dict(payload: Any) -> dict[str, Any]:
    """Return a payload as a dict in the key order it is serialised in.

    Dataclass payloads keep their field order; mappings are ordered by key.
    """
    if dataclasses.is_dataclass(payload) and not isinstance(payload, type):
        return dataclasses.asdict(payload)
    if isinstance(payload, Mapping):
        return {str(key): payload[key] for key in sorted(payload, key=str)}
    raise TypeError(f"unsupported payload type {type(payload).__name__}")