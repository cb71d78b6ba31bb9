"""HTTP service accepting writes: users, tokens, dishes and orders."""

from __future__ import annotations

import json
import logging
import re
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

from flask import Flask, Response, g, request

from themenu.commands import (
    CreateOrderCommand,
    DishNotFoundError,
    OrderExistsError,
    UpdateOrderStatusCommand,
)
from themenu.convert import float_to_numeric, numeric_to_float, to_date, to_text
from themenu.database import CreateDishParams, CreateUserParams, UpdateDishParams, UpdateUserParams
from themenu.events import DishEventPayload, EventType, TokenEventPayload, UserEventPayload
from themenu.middleware import coerce_user_id, install_auth, install_request_logger
from themenu.reader import dish_to_dict

log = logging.getLogger(__name__)

ORDER_STATUSES = ("received", "confirmed", "preparing", "served", "cancelled")

_ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)
_TIME_PATTERN = re.compile(
    r"(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2})(?:\.(\d+))?(Z|[+-]\d{2}:\d{2})\Z"
)
_LABEL = r"[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?"
_EMAIL_PATTERN = re.compile(
    r"[A-Za-z0-9.!#$%&'*+/=?^_`{|}~-]+@" + _LABEL + r"(?:\." + _LABEL + r")*\Z"
)


class ValidationError(ValueError):
    """A request body does not hold what the endpoint needs."""


@dataclass(frozen=True)
class _DishRequest:
    name: str
    description: str
    price: float
    prep_time_minutes: int
    available_on: datetime


@dataclass(frozen=True)
class _UserRequest:
    name: str
    email: str


def is_valid_email(value: str) -> bool:
    """Return whether a string has the form of an e-mail address."""
    return isinstance(value, str) and _EMAIL_PATTERN.match(value) is not None


def _tag_error(field: str, tag: str) -> ValidationError:
    return ValidationError(
        f"Key: '{field}' Error:Field validation for '{field}' failed on the '{tag}' tag"
    )


def _object(data: Any) -> dict[str, Any]:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("request body must be a JSON object")
    return data


def _string(data: dict[str, Any], key: str, field: str, required: bool = True) -> str:
    value = data.get(key)
    if value is None:
        value = ""
    if not isinstance(value, str):
        raise ValidationError(f"field {key!r} must be a string")
    if required and not value:
        raise _tag_error(field, "required")
    return value


def _float(data: dict[str, Any], key: str, field: str) -> float:
    value = data.get(key)
    if value is None:
        value = 0.0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"field {key!r} must be a number")
    if value == 0:
        raise _tag_error(field, "required")
    return float(value)


def _int(data: dict[str, Any], key: str, field: str) -> int:
    value = data.get(key)
    if value is None:
        value = 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"field {key!r} must be an integer")
    if value == 0:
        raise _tag_error(field, "required")
    return value


def _parse_time(text: str) -> datetime:
    match = _TIME_PATTERN.match(text)
    if match is None:
        raise ValidationError(f"invalid time {text!r}")
    year, month, day, hour, minute, second, fraction, zone = match.groups()
    micro = int((fraction or "0")[:6].ljust(6, "0"))
    if zone == "Z":
        tz = timezone.utc
    else:
        sign = 1 if zone[0] == "+" else -1
        tz = timezone(sign * timedelta(hours=int(zone[1:3]), minutes=int(zone[4:6])))
    try:
        return datetime(int(year), int(month), int(day), int(hour), int(minute),
                        int(second), micro, tzinfo=tz)
    except ValueError as exc:
        raise ValidationError(f"invalid time {text!r}") from exc


def _time(data: dict[str, Any], key: str, field: str) -> datetime:
    value = data.get(key)
    if value is None:
        raise _tag_error(field, "required")
    if not isinstance(value, str):
        raise ValidationError(f"field {key!r} must be a time string")
    moment = _parse_time(value)
    if moment == _ZERO_TIME:
        raise _tag_error(field, "required")
    return moment


def parse_dish_request(data: Any) -> _DishRequest:
    """Validate the body of a dish create or update; raises ValidationError."""
    body = _object(data)
    return _DishRequest(
        name=_string(body, "name", "Name"),
        description=_string(body, "description", "Description", required=False),
        price=_float(body, "price", "Price"),
        prep_time_minutes=_int(body, "prep_time_minutes", "PrepTimeMinutes"),
        available_on=_time(body, "available_on", "AvailableOn"),
    )


def _email(body: dict[str, Any]) -> str:
    email = _string(body, "email", "Email")
    if not is_valid_email(email):
        raise _tag_error("Email", "email")
    return email


def parse_user_request(data: Any) -> _UserRequest:
    """Validate the body of a user create or update; raises ValidationError."""
    body = _object(data)
    return _UserRequest(name=_string(body, "name", "Name"), email=_email(body))


def parse_status_request(data: Any) -> str:
    """Return the order status a body asks for; raises ValidationError."""
    status = _string(_object(data), "status", "Status")
    if status not in ORDER_STATUSES:
        raise _tag_error("Status", "oneof")
    return status


def _read_json() -> Any:
    raw = request.get_data()
    try:
        return json.loads(raw)
    except (ValueError, UnicodeDecodeError) as exc:
        raise ValidationError(str(exc) or "invalid JSON") from exc


def _json_response(data: Any, status: int = 200) -> Response:
    body = json.dumps(data, ensure_ascii=False, separators=(",", ":"), sort_keys=True)
    return Response(body, status=status, mimetype="application/json")


def _error(message: str, status: int) -> Response:
    return _json_response({"error": message}, status)


def _rfc3339(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.astimezone()
    text = moment.strftime("%Y-%m-%dT%H:%M:%S")
    offset = moment.utcoffset() or timedelta(0)
    if offset == timedelta(0):
        return text + "Z"
    sign = "+" if offset > timedelta(0) else "-"
    minutes = abs(int(offset.total_seconds())) // 60
    return f"{text}{sign}{minutes // 60:02d}:{minutes % 60:02d}"


def _now() -> str:
    return _rfc3339(datetime.now().astimezone())


def _day_rfc3339(day: Optional[date]) -> str:
    if day is None:
        return "0001-01-01T00:00:00Z"
    return f"{day.year:04d}-{day.month:02d}-{day.day:02d}T00:00:00Z"


def _parse_id(value: str) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(value)
    except ValueError:
        return None


def _dish_response(dish: Any) -> dict[str, Any]:
    full = dish_to_dict(dish)
    return {key: value for key, value in full.items() if key not in ("created_at", "updated_at")}


def _dish_payload(dish_id: uuid.UUID, dish: Any) -> DishEventPayload:
    return DishEventPayload(
        dish_id=str(dish_id),
        name=dish.name,
        description=to_text(dish.description),
        price=numeric_to_float(dish.price),
        prep_time_minutes=int(dish.prep_time_minutes),
        available_on=_day_rfc3339(dish.available_on),
        timestamp=_now(),
    )


def _user_response(user: Any) -> dict[str, Any]:
    return {"id": str(user.id), "name": user.name, "email": user.email}


class WriterServer:
    """The write-side HTTP application for users, dishes and orders."""

    def __init__(self, command_bus: Any, db: Any, event_bus: Any) -> None:
        self.command_bus = command_bus
        self.db = db
        self.event_bus = event_bus
        self.app = Flask(__name__)
        install_request_logger(self.app)
        install_auth(self.app, db, exempt=[("POST", "/users"), ("POST", "/users/token")])
        rule = self.app.add_url_rule
        rule("/users", "create_user", self._create_user, methods=["POST"])
        rule("/users/token", "generate_token", self._generate_token, methods=["POST"])
        rule("/orders", "create_order", self._create_order, methods=["POST"])
        rule("/orders/<order_id>/status", "update_order_status",
             self._update_order_status, methods=["PATCH"])
        rule("/users/<user_id>", "update_user", self._update_user, methods=["PATCH"])
        rule("/dishes", "create_dish", self._create_dish, methods=["POST"])
        rule("/dishes/<dish_id>", "update_dish", self._update_dish, methods=["PUT"])
        rule("/dishes/<dish_id>", "delete_dish", self._delete_dish, methods=["DELETE"])

    # Users

    def _create_user(self) -> Response:
        try:
            body = parse_user_request(_read_json())
        except ValidationError:
            return _error("Datos de entrada inválidos", 400)
        user_id = uuid.uuid4()
        try:
            user = self.db.create_user(CreateUserParams(id=user_id, name=body.name,
                                                        email=body.email))
        except Exception as exc:
            log.error("Error creating user: %s", exc)
            return _error("Error al crear el usuario", 500)
        self.event_bus.publish_event(EventType.USER_CREATED, "success", UserEventPayload(
            user_id=str(user_id), name=user.name, email=user.email, timestamp=_now(),
        ))
        return _json_response(_user_response(user), 201)

    def _update_user(self, user_id: str) -> Response:
        ident = _parse_id(user_id)
        if ident is None:
            return _error("ID de usuario inválido", 400)
        try:
            body = parse_user_request(_read_json())
        except ValidationError:
            return _error("Datos de entrada inválidos", 400)
        try:
            user = self.db.update_user(UpdateUserParams(id=ident, name=body.name,
                                                        email=body.email))
        except Exception as exc:
            log.error("Error updating user: %s", exc)
            return _error("Error al actualizar el usuario", 500)
        self.event_bus.publish_event(EventType.USER_UPDATED, "success", UserEventPayload(
            user_id=str(ident), name=user.name, email=user.email, timestamp=_now(),
        ))
        return _json_response(_user_response(user))

    def _generate_token(self) -> Response:
        try:
            email = _email(_object(_read_json()))
        except ValidationError:
            return _error("Datos de entrada inválidos", 400)
        try:
            user = self.db.get_user_by_email(email)
        except Exception:
            return _error("Usuario no encontrado", 401)
        access = str(user.id)
        self.event_bus.publish_event(EventType.TOKEN_GENERATED, "success", TokenEventPayload(
            user_id=access, email=user.email, timestamp=_now(),
        ))
        return _json_response({"token": access})

    # Dishes

    def _create_dish(self) -> Response:
        try:
            body = parse_dish_request(_read_json())
        except ValidationError:
            return _error("Datos de entrada inválidos", 400)
        dish_id = uuid.uuid4()
        try:
            dish = self.db.create_dish(CreateDishParams(
                id=dish_id,
                name=body.name,
                description=body.description,
                price=float_to_numeric(body.price),
                prep_time_minutes=body.prep_time_minutes,
                available_on=to_date(body.available_on),
            ))
        except Exception as exc:
            log.error("Error creating dish: %s", exc)
            return _error("Error al crear el plato", 500)
        self.event_bus.publish_event(EventType.DISH_CREATED, "success",
                                     _dish_payload(dish_id, dish))
        return _json_response(_dish_response(dish), 201)

    def _update_dish(self, dish_id: str) -> Response:
        ident = _parse_id(dish_id)
        if ident is None:
            return _error("ID de plato inválido", 400)
        try:
            body = parse_dish_request(_read_json())
        except ValidationError:
            return _error("Datos de entrada inválidos", 400)
        try:
            dish = self.db.update_dish(UpdateDishParams(
                id=ident,
                name=body.name,
                description=body.description,
                price=float_to_numeric(body.price),
                prep_time_minutes=body.prep_time_minutes,
                available_on=to_date(body.available_on),
            ))
        except Exception as exc:
            log.error("Error updating dish: %s", exc)
            return _error("Error al actualizar el plato", 500)
        self.event_bus.publish_event(EventType.DISH_UPDATED, "success",
                                     _dish_payload(ident, dish))
        return _json_response(_dish_response(dish))

    def _delete_dish(self, dish_id: str) -> Response:
        ident = _parse_id(dish_id)
        if ident is None:
            return _error("ID de plato inválido", 400)
        try:
            dish = self.db.get_dish(ident)
        except Exception:
            return _error("Plato no encontrado", 404)
        try:
            self.db.delete_dish(ident)
        except Exception as exc:
            log.error("Error deleting dish: %s", exc)
            return _error("Error al eliminar el plato", 500)
        self.event_bus.publish_event(EventType.DISH_DELETED, "success",
                                     _dish_payload(ident, dish))
        return _json_response({"message": "Plato eliminado exitosamente"})

    # Orders

    def _create_order(self) -> Response:
        try:
            dish_text = _string(_object(_read_json()), "dish_id", "DishID")
        except ValidationError:
            return _error("Datos de entrada inválidos", 400)
        if "user_id" not in g:
            return _error("Usuario no autenticado", 401)
        try:
            user_id = coerce_user_id(g.user_id)
        except ValueError:
            return _error("Error interno del servidor: user_id string inválido", 500)
        except TypeError:
            return _error("Error interno del servidor: tipo de user_id inesperado", 500)
        dish_id = _parse_id(dish_text)
        if dish_id is None:
            return _error("ID de plato inválido", 400)
        try:
            self.command_bus.dispatch(CreateOrderCommand(user_id=user_id, dish_id=dish_id))
        except OrderExistsError:
            return _error("Ya tienes una orden activa", 409)
        except DishNotFoundError:
            return _error("Plato no encontrado", 404)
        except Exception as exc:
            log.error("Error creating order: %s", exc)
            return _error("Error al crear la orden", 500)
        return _json_response({"message": "Orden creada exitosamente"}, 201)

    def _update_order_status(self, order_id: str) -> Response:
        ident = _parse_id(order_id)
        if ident is None:
            log.warning("Invalid order id %r", order_id)
            return _error("ID de orden inválido", 400)
        try:
            status = parse_status_request(_read_json())
        except ValidationError as exc:
            return _error(str(exc), 400)
        try:
            self.command_bus.dispatch(UpdateOrderStatusCommand(order_id=ident, status=status))
        except Exception as exc:
            log.error("Error dispatching command: %s", exc)
            return _error(str(exc), 500)
        return _json_response({"message": "Estado de la orden actualizado"})

    def run(self, host: str = "0.0.0.0", port: int = 8080) -> None:
        """Serve the application until interrupted."""
        self.app.run(host=host, port=port)