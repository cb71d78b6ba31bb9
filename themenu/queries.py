"""Read-side queries for the menu and user orders, and their bus."""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Optional, Protocol

from themenu.convert import numeric_to_float, to_date, to_text

_ZERO_DATE = "0001-01-01T00:00:00Z"


class QueryError(Exception):
    """A query could not be answered."""

    default_message = "query failed"

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.default_message)


class InvalidQueryError(QueryError):
    default_message = "consulta inválida"


class MenuNotFoundError(QueryError):
    default_message = "menú no encontrado para la fecha especificada"


@dataclass(frozen=True)
class MenuItem:
    """A dish as shown on the menu."""

    id: str
    name: str
    description: str
    price: float
    prep_time_minutes: int
    available_on: Optional[date]

    def to_dict(self) -> dict[str, Any]:
        """Return the item in its JSON shape; the date is a UTC midnight timestamp."""
        if self.available_on is None:
            available = _ZERO_DATE
        else:
            available = f"{self.available_on.isoformat()}T00:00:00Z"
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "price": self.price,
            "prep_time_minutes": self.prep_time_minutes,
            "available_on": available,
        }


@dataclass
class GetMenuQuery:
    """The dishes available on one day."""

    date: date | datetime
    queries: Any = None

    def execute(self) -> list[MenuItem]:
        """Return the day's dishes by name; raises MenuNotFoundError if none."""
        dishes = self.queries.get_dishes_by_date(to_date(self.date))
        if not dishes:
            raise MenuNotFoundError()
        return [
            MenuItem(
                id=str(dish.id),
                name=dish.name,
                description=to_text(dish.description),
                price=numeric_to_float(dish.price),
                prep_time_minutes=int(dish.prep_time_minutes),
                available_on=dish.available_on,
            )
            for dish in dishes
        ]


@dataclass
class GetUserOrdersQuery:
    """Every order a user has placed, with its dish."""

    user_id: uuid.UUID
    queries: Any = None

    def execute(self) -> list[dict[str, Any]]:
        """Return the user's orders as plain dicts."""
        rows = self.queries.get_orders_by_user_id(self.user_id)
        return [
            {
                "id": str(row.id),
                "user_id": str(row.user_id),
                "dish_id": str(row.dish_id),
                "dish_name": row.dish_name,
                "dish_description": row.dish_description,
                "dish_price": None if row.dish_price is None else float(row.dish_price),
                "status": row.status,
                "created_at": row.created_at,
                "updated_at": row.updated_at,
            }
            for row in rows
        ]


class _QueryHandler(Protocol):
    def handle(self, query: Any) -> Any: ...


class GetMenuHandler:
    """Answers GetMenuQuery from a database."""

    def __init__(self, queries: Any) -> None:
        self._queries = queries

    def handle(self, query: Any) -> list[MenuItem]:
        if not isinstance(query, GetMenuQuery):
            raise InvalidQueryError()
        query.queries = self._queries
        return query.execute()


class GetUserOrdersHandler:
    """Answers GetUserOrdersQuery from a database."""

    def __init__(self, db: Any) -> None:
        self._db = db

    def handle(self, query: Any) -> list[dict[str, Any]]:
        if not isinstance(query, GetUserOrdersQuery):
            raise InvalidQueryError()
        query.queries = self._db
        return query.execute()


def query_type(query: Any) -> str:
    """Return the name a query is registered under."""
    if isinstance(query, GetMenuQuery):
        return "GetMenu"
    if isinstance(query, GetUserOrdersQuery):
        return "GetUserOrders"
    return "Unknown"


class QueryBus:
    """Routes each query to the handler registered for its type."""

    def __init__(self) -> None:
        self._handlers: dict[str, _QueryHandler] = {}
        self._lock = threading.Lock()

    def register(self, query_type: str, handler: _QueryHandler) -> None:
        with self._lock:
            self._handlers[query_type] = handler

    def dispatch(self, query: Any) -> Any:
        """Hand a query to its handler; raises InvalidQueryError if none."""
        with self._lock:
            handler = self._handlers.get(query_type(query))
        if handler is None:
            raise InvalidQueryError()
        return handler.handle(query)