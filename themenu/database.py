"""Typed queries against the menu database.

The queries are written for a DB-API 2.0 connection whose driver uses the
``format`` parameter style (``%s`` placeholders), as PostgreSQL drivers do.
"""

from __future__ import annotations

import uuid
from contextlib import closing
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Optional, Protocol, Sequence, TypeVar

from themenu.convert import to_uuid
from themenu.models import (
    Dish,
    Notification,
    Order,
    Permission,
    Role,
    RolePermission,
    User,
    UserOrderRow,
    UserRole,
)

T = TypeVar("T")

_DISH_COLUMNS = (
    "id, name, description, price, prep_time_minutes, available_on, created_at, updated_at"
)
_ORDER_COLUMNS = "id, user_id, dish_id, status, created_at, updated_at"
_USER_COLUMNS = "id, name, email, created_at"
_NOTIFICATION_COLUMNS = "id, user_id, order_id, message, sent_at"

_CREATE_DISH = f"""
INSERT INTO dishes (id, name, description, price, prep_time_minutes, available_on)
VALUES (%s, %s, %s, %s, %s, %s)
RETURNING {_DISH_COLUMNS}
"""

_CREATE_NOTIFICATION = f"""
INSERT INTO notifications (id, user_id, order_id, message)
VALUES (%s, %s, %s, %s)
RETURNING {_NOTIFICATION_COLUMNS}
"""

_CREATE_ORDER = f"""
INSERT INTO orders (id, user_id, dish_id, status)
VALUES (%s, %s, %s, %s)
RETURNING {_ORDER_COLUMNS}
"""

_CREATE_USER = f"""
INSERT INTO users (id, name, email)
VALUES (%s, %s, %s)
RETURNING {_USER_COLUMNS}
"""

_DELETE_DISH = "DELETE FROM dishes WHERE id = %s"

_DELETE_USER = "DELETE FROM users WHERE id = %s"

_GET_DISH = f"SELECT {_DISH_COLUMNS} FROM dishes WHERE id = %s LIMIT 1"

_GET_DISH_BY_NAME = f"SELECT {_DISH_COLUMNS} FROM dishes WHERE name = %s LIMIT 1"

_GET_DISHES_BY_DATE = f"""
SELECT {_DISH_COLUMNS} FROM dishes
WHERE available_on = %s
ORDER BY name
"""

_GET_NOTIFICATIONS_BY_USER_ID = (
    f"SELECT {_NOTIFICATION_COLUMNS} FROM notifications WHERE user_id = %s"
)

_GET_ORDER = f"SELECT {_ORDER_COLUMNS} FROM orders WHERE id = %s LIMIT 1"

_GET_ORDERS_BY_DISH_ID = f"SELECT {_ORDER_COLUMNS} FROM orders WHERE dish_id = %s"

_GET_ORDERS_BY_STATUS = f"SELECT {_ORDER_COLUMNS} FROM orders WHERE status = %s"

_GET_ORDERS_BY_USER_ID = """
SELECT
    o.id, o.user_id, o.dish_id, o.status, o.created_at, o.updated_at,
    d.name AS dish_name,
    d.description AS dish_description,
    d.price AS dish_price
FROM orders o
JOIN dishes d ON o.dish_id = d.id
WHERE o.user_id = %s
"""

_GET_PERMISSIONS = "SELECT id, name FROM permissions"

_GET_ROLE_PERMISSIONS = "SELECT role_id, permission_id FROM role_permissions"

_GET_ROLES = "SELECT id, name FROM roles"

_GET_USER = f"SELECT {_USER_COLUMNS} FROM users WHERE id = %s LIMIT 1"

_GET_USER_BY_EMAIL = f"SELECT {_USER_COLUMNS} FROM users WHERE email = %s LIMIT 1"

_GET_USER_ROLES = "SELECT user_id, role_id FROM user_roles"

_LIST_DISHES = f"SELECT {_DISH_COLUMNS} FROM dishes ORDER BY created_at DESC"

_UPDATE_DISH = f"""
UPDATE dishes
SET
    name = %s,
    description = %s,
    price = %s,
    prep_time_minutes = %s,
    available_on = %s,
    updated_at = NOW()
WHERE id = %s
RETURNING {_DISH_COLUMNS}
"""

_UPDATE_ORDER_STATUS = f"""
UPDATE orders
SET status = %s,
    updated_at = NOW()
WHERE id = %s
RETURNING {_ORDER_COLUMNS}
"""

_UPDATE_USER = f"""
UPDATE users
SET name = %s, email = %s
WHERE id = %s
RETURNING {_USER_COLUMNS}
"""


class NotFoundError(LookupError):
    """A query that returns one row found none."""


@dataclass(frozen=True)
class CreateDishParams:
    id: uuid.UUID
    name: str
    description: Optional[str]
    price: Optional[Decimal]
    prep_time_minutes: int
    available_on: Optional[date]


@dataclass(frozen=True)
class CreateNotificationParams:
    id: uuid.UUID
    user_id: uuid.UUID
    order_id: uuid.UUID
    message: str


@dataclass(frozen=True)
class CreateOrderParams:
    id: uuid.UUID
    user_id: uuid.UUID
    dish_id: uuid.UUID
    status: str


@dataclass(frozen=True)
class CreateUserParams:
    id: uuid.UUID
    name: str
    email: str


@dataclass(frozen=True)
class UpdateDishParams:
    id: uuid.UUID
    name: str
    description: Optional[str]
    price: Optional[Decimal]
    prep_time_minutes: int
    available_on: Optional[date]


@dataclass(frozen=True)
class UpdateOrderStatusParams:
    id: uuid.UUID
    status: str


@dataclass(frozen=True)
class UpdateUserParams:
    id: uuid.UUID
    name: str
    email: str


class Querier(Protocol):
    """Everything the services ask of the database."""

    def create_dish(self, params: CreateDishParams) -> Dish: ...
    def create_notification(self, params: CreateNotificationParams) -> Notification: ...
    def create_order(self, params: CreateOrderParams) -> Order: ...
    def create_user(self, params: CreateUserParams) -> User: ...
    def delete_dish(self, dish_id: uuid.UUID) -> None: ...
    def delete_user(self, user_id: uuid.UUID) -> None: ...
    def get_dish(self, dish_id: uuid.UUID) -> Dish: ...
    def get_dish_by_name(self, name: str) -> Dish: ...
    def get_dishes_by_date(self, available_on: date) -> list[Dish]: ...
    def get_notifications_by_user_id(self, user_id: uuid.UUID) -> list[Notification]: ...
    def get_order(self, order_id: uuid.UUID) -> Order: ...
    def get_orders_by_dish_id(self, dish_id: uuid.UUID) -> list[Order]: ...
    def get_orders_by_status(self, status: str) -> list[Order]: ...
    def get_orders_by_user_id(self, user_id: uuid.UUID) -> list[UserOrderRow]: ...
    def get_permissions(self) -> list[Permission]: ...
    def get_role_permissions(self) -> list[RolePermission]: ...
    def get_roles(self) -> list[Role]: ...
    def get_user(self, user_id: uuid.UUID) -> User: ...
    def get_user_by_email(self, email: str) -> User: ...
    def get_user_roles(self) -> list[UserRole]: ...
    def list_dishes(self) -> list[Dish]: ...
    def update_dish(self, params: UpdateDishParams) -> Dish: ...
    def update_order_status(self, params: UpdateOrderStatusParams) -> Order: ...
    def update_user(self, params: UpdateUserParams) -> User: ...


def _arg(value: Any) -> Any:
    return str(value) if isinstance(value, uuid.UUID) else value


def _args(*values: Any) -> tuple[Any, ...]:
    return tuple(_arg(value) for value in values)


def _pair(build: Callable[[uuid.UUID, Any], T]) -> Callable[[Sequence[Any]], T]:
    def from_row(row: Sequence[Any]) -> T:
        first, second = row
        return build(first, second)

    return from_row


_permission = _pair(lambda ident, name: Permission(id=to_uuid(ident), name=str(name)))
_role = _pair(lambda ident, name: Role(id=to_uuid(ident), name=str(name)))
_role_permission = _pair(
    lambda role, perm: RolePermission(role_id=to_uuid(role), permission_id=to_uuid(perm))
)
_user_role = _pair(lambda user, role: UserRole(user_id=to_uuid(user), role_id=to_uuid(role)))


class Queries:
    """Runs the menu queries on a DB-API connection or transaction."""

    def __init__(self, conn: Any) -> None:
        self._conn = conn

    def with_tx(self, tx: Any) -> "Queries":
        """Return queries that run inside the given transaction."""
        return Queries(tx)

    def _exec(self, sql: str, args: tuple[Any, ...]) -> None:
        with closing(self._conn.cursor()) as cursor:
            cursor.execute(sql, args)

    def _one(self, sql: str, args: tuple[Any, ...],
             build: Callable[[Sequence[Any]], T]) -> T:
        with closing(self._conn.cursor()) as cursor:
            cursor.execute(sql, args)
            row = cursor.fetchone()
        if row is None:
            raise NotFoundError("no rows in result set")
        return build(row)

    def _many(self, sql: str, args: tuple[Any, ...],
              build: Callable[[Sequence[Any]], T]) -> list[T]:
        with closing(self._conn.cursor()) as cursor:
            cursor.execute(sql, args)
            rows = cursor.fetchall()
        return [build(row) for row in rows]

    def create_dish(self, params: CreateDishParams) -> Dish:
        return self._one(_CREATE_DISH, _args(
            params.id, params.name, params.description, params.price,
            params.prep_time_minutes, params.available_on,
        ), Dish.from_row)

    def create_notification(self, params: CreateNotificationParams) -> Notification:
        return self._one(_CREATE_NOTIFICATION, _args(
            params.id, params.user_id, params.order_id, params.message,
        ), Notification.from_row)

    def create_order(self, params: CreateOrderParams) -> Order:
        return self._one(_CREATE_ORDER, _args(
            params.id, params.user_id, params.dish_id, params.status,
        ), Order.from_row)

    def create_user(self, params: CreateUserParams) -> User:
        return self._one(_CREATE_USER, _args(params.id, params.name, params.email),
                         User.from_row)

    def delete_dish(self, dish_id: uuid.UUID) -> None:
        self._exec(_DELETE_DISH, _args(dish_id))

    def delete_user(self, user_id: uuid.UUID) -> None:
        self._exec(_DELETE_USER, _args(user_id))

    def get_dish(self, dish_id: uuid.UUID) -> Dish:
        return self._one(_GET_DISH, _args(dish_id), Dish.from_row)

    def get_dish_by_name(self, name: str) -> Dish:
        return self._one(_GET_DISH_BY_NAME, _args(name), Dish.from_row)

    def get_dishes_by_date(self, available_on: date) -> list[Dish]:
        return self._many(_GET_DISHES_BY_DATE, _args(available_on), Dish.from_row)

    def get_notifications_by_user_id(self, user_id: uuid.UUID) -> list[Notification]:
        return self._many(_GET_NOTIFICATIONS_BY_USER_ID, _args(user_id),
                          Notification.from_row)

    def get_order(self, order_id: uuid.UUID) -> Order:
        return self._one(_GET_ORDER, _args(order_id), Order.from_row)

    def get_orders_by_dish_id(self, dish_id: uuid.UUID) -> list[Order]:
        return self._many(_GET_ORDERS_BY_DISH_ID, _args(dish_id), Order.from_row)

    def get_orders_by_status(self, status: str) -> list[Order]:
        return self._many(_GET_ORDERS_BY_STATUS, _args(status), Order.from_row)

    def get_orders_by_user_id(self, user_id: uuid.UUID) -> list[UserOrderRow]:
        return self._many(_GET_ORDERS_BY_USER_ID, _args(user_id), UserOrderRow.from_row)

    def get_permissions(self) -> list[Permission]:
        return self._many(_GET_PERMISSIONS, (), _permission)

    def get_role_permissions(self) -> list[RolePermission]:
        return self._many(_GET_ROLE_PERMISSIONS, (), _role_permission)

    def get_roles(self) -> list[Role]:
        return self._many(_GET_ROLES, (), _role)

    def get_user(self, user_id: uuid.UUID) -> User:
        return self._one(_GET_USER, _args(user_id), User.from_row)

    def get_user_by_email(self, email: str) -> User:
        return self._one(_GET_USER_BY_EMAIL, _args(email), User.from_row)

    def get_user_roles(self) -> list[UserRole]:
        return self._many(_GET_USER_ROLES, (), _user_role)

    def list_dishes(self) -> list[Dish]:
        return self._many(_LIST_DISHES, (), Dish.from_row)

    def update_dish(self, params: UpdateDishParams) -> Dish:
        return self._one(_UPDATE_DISH, _args(
            params.name, params.description, params.price,
            params.prep_time_minutes, params.available_on, params.id,
        ), Dish.from_row)

    def update_order_status(self, params: UpdateOrderStatusParams) -> Order:
        return self._one(_UPDATE_ORDER_STATUS, _args(params.status, params.id),
                         Order.from_row)

    def update_user(self, params: UpdateUserParams) -> User:
        return self._one(_UPDATE_USER, _args(params.name, params.email, params.id),
                         User.from_row)