"""Rows of the menu database."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, fields
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Optional, Sequence

from themenu.convert import float_to_numeric, to_date, to_uuid


def _optional(convert: Callable[[Any], Any], value: Any) -> Any:
    return None if value is None else convert(value)


def _decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return float_to_numeric(value)
    return Decimal(str(value))


def _datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        return datetime.fromisoformat(value)
    raise TypeError(f"cannot convert {type(value).__name__} to a datetime")


def _check_width(cls: type, row: Sequence[Any]) -> None:
    expected = len(fields(cls))
    if len(row) != expected:
        raise ValueError(f"{cls.__name__} needs {expected} columns, got {len(row)}")


@dataclass(frozen=True)
class Dish:
    id: uuid.UUID
    name: str
    description: Optional[str]
    price: Optional[Decimal]
    prep_time_minutes: int
    available_on: Optional[date]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    @classmethod
    def from_row(cls, row: Sequence[Any]) -> "Dish":
        """Build a dish from its columns in table order."""
        _check_width(cls, row)
        ident, name, description, price, prep, available, created, updated = row
        return cls(
            id=to_uuid(ident),
            name=str(name),
            description=_optional(str, description),
            price=_optional(_decimal, price),
            prep_time_minutes=int(prep),
            available_on=_optional(to_date, available),
            created_at=_optional(_datetime, created),
            updated_at=_optional(_datetime, updated),
        )


@dataclass(frozen=True)
class Notification:
    id: uuid.UUID
    user_id: uuid.UUID
    order_id: uuid.UUID
    message: str
    sent_at: Optional[datetime]

    @classmethod
    def from_row(cls, row: Sequence[Any]) -> "Notification":
        """Build a notification from its columns in table order."""
        _check_width(cls, row)
        ident, user_id, order_id, message, sent_at = row
        return cls(
            id=to_uuid(ident),
            user_id=to_uuid(user_id),
            order_id=to_uuid(order_id),
            message=str(message),
            sent_at=_optional(_datetime, sent_at),
        )


@dataclass(frozen=True)
class Order:
    id: uuid.UUID
    user_id: uuid.UUID
    dish_id: uuid.UUID
    status: str
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    @classmethod
    def from_row(cls, row: Sequence[Any]) -> "Order":
        """Build an order from its columns in table order."""
        _check_width(cls, row)
        ident, user_id, dish_id, status, created, updated = row
        return cls(
            id=to_uuid(ident),
            user_id=to_uuid(user_id),
            dish_id=to_uuid(dish_id),
            status=str(status),
            created_at=_optional(_datetime, created),
            updated_at=_optional(_datetime, updated),
        )


@dataclass(frozen=True)
class Permission:
    id: uuid.UUID
    name: str


@dataclass(frozen=True)
class Role:
    id: uuid.UUID
    name: str


@dataclass(frozen=True)
class RolePermission:
    role_id: uuid.UUID
    permission_id: uuid.UUID


@dataclass(frozen=True)
class User:
    id: uuid.UUID
    name: str
    email: str
    created_at: Optional[datetime]

    @classmethod
    def from_row(cls, row: Sequence[Any]) -> "User":
        """Build a user from its columns in table order."""
        _check_width(cls, row)
        ident, name, email, created = row
        return cls(
            id=to_uuid(ident),
            name=str(name),
            email=str(email),
            created_at=_optional(_datetime, created),
        )


@dataclass(frozen=True)
class UserRole:
    user_id: uuid.UUID
    role_id: uuid.UUID


@dataclass(frozen=True)
class UserOrderRow:
    """An order joined with the dish it is for."""

    id: uuid.UUID
    user_id: uuid.UUID
    dish_id: uuid.UUID
    status: str
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
    dish_name: str
    dish_description: Optional[str]
    dish_price: Optional[Decimal]

    @classmethod
    def from_row(cls, row: Sequence[Any]) -> "UserOrderRow":
        """Build a row from the order columns followed by dish name, description and price."""
        _check_width(cls, row)
        order = Order.from_row(row[:6])
        dish_name, dish_description, dish_price = row[6:]
        return cls(
            id=order.id,
            user_id=order.user_id,
            dish_id=order.dish_id,
            status=order.status,
            created_at=order.created_at,
            updated_at=order.updated_at,
            dish_name=str(dish_name),
            dish_description=_optional(str, dish_description),
            dish_price=_optional(_decimal, dish_price),
        )