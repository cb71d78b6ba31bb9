"""Write-side commands for orders and the bus that dispatches them."""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass
from typing import Any, Optional, Protocol

from themenu.database import CreateOrderParams, UpdateOrderStatusParams
from themenu.events import EventType
from themenu.models import Order

_CLOSED_STATUSES = frozenset({"served", "cancelled"})


class CommandError(Exception):
    """A command could not be carried out."""

    default_message = "command failed"

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.default_message)


class InvalidCommandError(CommandError):
    default_message = "comando inválido"


class OrderExistsError(CommandError):
    default_message = "el usuario ya tiene una orden activa"


class DishNotFoundError(CommandError):
    default_message = "plato no encontrado"


class OrderNotFoundError(CommandError):
    default_message = "order not found"


@dataclass
class CreateOrderCommand:
    """Place an order for a dish on behalf of a user."""

    user_id: uuid.UUID
    dish_id: uuid.UUID
    queries: Any = None
    event_bus: Any = None

    def execute(self) -> Order:
        """Create the order and announce it; a user may hold one open order."""
        orders = self.queries.get_orders_by_user_id(self.user_id)
        if any(order.status not in _CLOSED_STATUSES for order in orders):
            raise OrderExistsError()

        try:
            self.queries.get_dish(self.dish_id)
        except Exception as exc:
            raise DishNotFoundError() from exc

        order_id = uuid.uuid4()
        order = self.queries.create_order(CreateOrderParams(
            id=order_id,
            user_id=self.user_id,
            dish_id=self.dish_id,
            status="received",
        ))

        self.event_bus.publish_event(EventType.ORDER_CREATED, "received", {
            "order_id": order_id,
            "user_id": self.user_id,
            "dish_id": self.dish_id,
            "status": "received",
        })
        return order


@dataclass
class UpdateOrderStatusCommand:
    """Move an existing order to a new status."""

    order_id: uuid.UUID
    status: str
    queries: Any = None
    event_bus: Any = None

    def execute(self) -> Order:
        """Update the order's status and announce the change."""
        try:
            order = self.queries.get_order(self.order_id)
        except Exception as exc:
            raise OrderNotFoundError() from exc

        updated = self.queries.update_order_status(UpdateOrderStatusParams(
            id=self.order_id,
            status=self.status,
        ))

        self.event_bus.publish_event(EventType.ORDER_STATUS_UPDATED, self.status, {
            "order_id": self.order_id,
            "user_id": order.user_id,
            "dish_id": order.dish_id,
            "status": self.status,
        })
        return updated


class _CommandHandler(Protocol):
    def handle(self, command: Any) -> Any: ...


class CreateOrderHandler:
    """Runs CreateOrderCommand against a database and event bus."""

    def __init__(self, db: Any, event_bus: Any) -> None:
        self._db = db
        self._event_bus = event_bus

    def handle(self, command: Any) -> Order:
        if not isinstance(command, CreateOrderCommand):
            raise InvalidCommandError()
        command.queries = self._db
        command.event_bus = self._event_bus
        return command.execute()


class UpdateOrderStatusHandler:
    """Runs UpdateOrderStatusCommand against a database and event bus."""

    def __init__(self, db: Any, event_bus: Any) -> None:
        self._db = db
        self._event_bus = event_bus

    def handle(self, command: Any) -> Order:
        if not isinstance(command, UpdateOrderStatusCommand):
            raise InvalidCommandError()
        command.queries = self._db
        command.event_bus = self._event_bus
        return command.execute()


def command_type(command: Any) -> str:
    """Return the name a command is registered under."""
    if isinstance(command, CreateOrderCommand):
        return "CreateOrder"
    if isinstance(command, UpdateOrderStatusCommand):
        return "UpdateOrderStatus"
    return "Unknown"


class CommandBus:
    """Routes each command to the handler registered for its type."""

    def __init__(self) -> None:
        self._handlers: dict[str, _CommandHandler] = {}
        self._lock = threading.Lock()

    def register(self, command_type: str, handler: _CommandHandler) -> None:
        with self._lock:
            self._handlers[command_type] = handler

    def dispatch(self, command: Any) -> Any:
        """Hand a command to its handler; raises InvalidCommandError if none."""
        with self._lock:
            handler = self._handlers.get(command_type(command))
        if handler is None:
            raise InvalidCommandError()
        return handler.handle(command)