"""HTTP service answering menu, order and dish reads."""

from __future__ import annotations

import json
import logging
import re
import uuid
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Optional

from flask import Flask, Response, g, request

from themenu.convert import numeric_to_float, to_text
from themenu.middleware import coerce_user_id, install_auth, install_request_logger
from themenu.queries import GetMenuQuery, GetUserOrdersQuery, MenuItem, MenuNotFoundError

log = logging.getLogger(__name__)

_ZERO_TIME = "0001-01-01T00:00:00Z"
_DATE_PATTERN = re.compile(r"\d{4}-\d{2}-\d{2}\Z")


def _timestamp_json(moment: Optional[datetime]) -> str:
    if moment is None:
        return _ZERO_TIME
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    text = (f"{moment.year:04d}-{moment.month:02d}-{moment.day:02d}"
            f"T{moment.hour:02d}:{moment.minute:02d}:{moment.second:02d}")
    fraction = f"{moment.microsecond:06d}".rstrip("0")
    if fraction:
        text += "." + fraction
    offset = moment.utcoffset() or timedelta(0)
    if offset == timedelta(0):
        return text + "Z"
    sign = "+" if offset > timedelta(0) else "-"
    minutes = abs(int(offset.total_seconds())) // 60
    return f"{text}{sign}{minutes // 60:02d}:{minutes % 60:02d}"


def _date_json(day: Optional[date]) -> str:
    if day is None:
        return _ZERO_TIME
    return f"{day.year:04d}-{day.month:02d}-{day.day:02d}T00:00:00Z"


def _jsonable(value: Any) -> Any:
    if isinstance(value, MenuItem):
        return {key: _jsonable(item) for key, item in value.to_dict().items()}
    if isinstance(value, dict):
        return {str(key): _jsonable(value[key]) for key in sorted(value, key=str)}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if isinstance(value, datetime):
        return _timestamp_json(value)
    if isinstance(value, date):
        return _date_json(value)
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, Decimal):
        return float(value)
    return value


def _json_response(data: Any, status: int = 200) -> Response:
    body = json.dumps(_jsonable(data), ensure_ascii=False, separators=(",", ":"))
    return Response(body, status=status, mimetype="application/json")


def dish_to_dict(dish: Any) -> dict[str, Any]:
    """Return a dish in the shape the dish listing sends."""
    return {
        "id": str(dish.id),
        "name": dish.name,
        "description": to_text(dish.description),
        "price": numeric_to_float(dish.price),
        "prep_time_minutes": int(dish.prep_time_minutes),
        "available_on": _date_json(dish.available_on),
        "created_at": _timestamp_json(dish.created_at),
        "updated_at": _timestamp_json(dish.updated_at),
    }


def parse_menu_date(value: Optional[str], today: Optional[date] = None) -> date:
    """Return the date asked for as YYYY-MM-DD, or today when none was given.

    Raises ValueError for any other form, the empty string included.
    """
    if value is None:
        return today if today is not None else date.today()
    if not _DATE_PATTERN.match(value):
        raise ValueError(f"invalid date {value!r}")
    return date.fromisoformat(value)


class ReaderServer:
    """The read-side HTTP application: ``/menu``, ``/orders`` and ``/dishes``."""

    def __init__(self, query_bus: Any, db: Any) -> None:
        self.query_bus = query_bus
        self.db = db
        self.app = Flask(__name__)
        install_request_logger(self.app)
        install_auth(self.app, db)
        self.app.add_url_rule("/menu", "menu", self._get_menu, methods=["GET"])
        self.app.add_url_rule("/orders", "orders", self._get_user_orders, methods=["GET"])
        self.app.add_url_rule("/dishes", "dishes", self._list_dishes, methods=["GET"])

    def _get_menu(self) -> Response:
        try:
            day = parse_menu_date(request.args.get("date"))
        except ValueError:
            return _json_response({"error": "Formato de fecha inválido"}, 400)
        try:
            result = self.query_bus.dispatch(GetMenuQuery(date=day))
        except MenuNotFoundError:
            return _json_response({"error": "No hay menú disponible para esta fecha"}, 404)
        except Exception as exc:
            log.error("Error fetching the menu: %s", exc)
            return _json_response({"error": "Error al obtener el menú"}, 500)
        return _json_response(result)

    def _get_user_orders(self) -> Response:
        if "user_id" not in g:
            return _json_response({"error": "Usuario no autenticado"}, 401)
        try:
            user_id = coerce_user_id(g.user_id)
        except ValueError:
            return _json_response(
                {"error": "Error interno del servidor: user_id string inválido"}, 500)
        except TypeError:
            return _json_response(
                {"error": "Error interno del servidor: tipo de user_id inesperado"}, 500)
        try:
            result = self.query_bus.dispatch(GetUserOrdersQuery(user_id=user_id))
        except Exception as exc:
            log.error("Error fetching orders: %s", exc)
            return _json_response({"error": "Error al obtener las órdenes"}, 500)
        return _json_response(result or None)

    def _list_dishes(self) -> Response:
        try:
            dishes = self.db.list_dishes()
        except Exception as exc:
            log.error("Error fetching dishes: %s", exc)
            return _json_response({"error": "Error al obtener los platos"}, 500)
        return _json_response([dish_to_dict(dish) for dish in dishes])

    def run(self, host: str = "0.0.0.0", port: int = 8080) -> None:
        """Serve the application until interrupted."""
        self.app.run(host=host, port=port)