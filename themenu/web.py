"""Dashboard web service: live events over SSE and order management."""

from __future__ import annotations

import argparse
import json
import logging
import os
import queue
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Iterator, Optional, Sequence

from flask import Flask, Response, request

from themenu.api_client import APIClient
from themenu.dashboard import render_dashboard
from themenu.eventbus import connect_event_bus

log = logging.getLogger(__name__)

DEFAULT_API_URL = "http://themenu-api:8080"
DEFAULT_PORT = 8082
DEFAULT_REDIS_URL = "redis://localhost:6379"
PING_INTERVAL = 10.0

_CORS_METHODS = "GET,POST,HEAD,PUT,DELETE,PATCH"


def format_sse(data: str) -> str:
    """Return one server-sent-events message carrying the given data."""
    return f"data: {data}\n\n"


def _format_time(moment: datetime) -> str:
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


def _order_json(order: Any) -> dict[str, Any]:
    return {
        "id": order.id,
        "user_id": order.user_id,
        "dish_id": order.dish_id,
        "status": order.status,
        "dish_name": order.dish_name,
        "dish_description": order.dish_description,
        "dish_price": order.dish_price,
        "created_at": _format_time(order.created_at),
        "updated_at": _format_time(order.updated_at),
    }


def _json_response(data: Any, status: int = 200, sort_keys: bool = True) -> Response:
    body = json.dumps(data, ensure_ascii=False, separators=(",", ":"), sort_keys=sort_keys)
    return Response(body, status=status, content_type="application/json")


class WebServer:
    """The dashboard application: ``/``, ``/events``, ``/orders`` and status updates."""

    def __init__(self, event_bus: Any, api_client: Any,
                 static_folder: Optional[str] = None) -> None:
        self.event_bus = event_bus
        self.api_client = api_client
        folder = Path(static_folder) if static_folder else Path("internal/web/static")
        self.app = Flask(__name__, static_folder=str(folder.resolve()),
                         static_url_path="/static")
        self.app.before_request(self._preflight)
        self.app.after_request(self._allow_origin)
        rule = self.app.add_url_rule
        rule("/", "dashboard", self._dashboard, methods=["GET"])
        rule("/events", "events", self._events, methods=["GET"])
        rule("/orders", "orders", self._orders, methods=["GET"])
        rule("/orders/<order_id>/status", "update_order_status",
             self._update_order_status, methods=["PATCH"])

    @staticmethod
    def _preflight() -> Optional[Response]:
        if request.method == "OPTIONS" and "Access-Control-Request-Method" in request.headers:
            response = Response(status=204)
            response.headers["Access-Control-Allow-Methods"] = _CORS_METHODS
            requested = request.headers.get("Access-Control-Request-Headers")
            if requested:
                response.headers["Access-Control-Allow-Headers"] = requested
            return response
        return None

    @staticmethod
    def _allow_origin(response: Response) -> Response:
        response.headers["Access-Control-Allow-Origin"] = "*"
        return response

    def _dashboard(self) -> Response:
        return Response(render_dashboard([]), content_type="text/html; charset=utf-8")

    def event_stream(self, subscriber: Any,
                     ping_interval: float = PING_INTERVAL) -> Iterator[str]:
        """Yield SSE messages: a greeting, then each event and a ping every interval.

        The stream ends when the subscriber yields None.
        """
        log.info("[SSE] Sending initial message")
        yield format_sse("connected")
        next_ping = time.monotonic() + ping_interval
        while True:
            remaining = next_ping - time.monotonic()
            if remaining <= 0:
                log.debug("[SSE] Sending ping")
                yield format_sse("ping")
                next_ping = time.monotonic() + ping_interval
                continue
            try:
                event = subscriber.get(timeout=remaining)
            except queue.Empty:
                continue
            if event is None:
                log.info("[SSE] Event channel closed")
                return
            try:
                data = event.to_json()
            except Exception as exc:
                log.error("[SSE] Error serialising event: %s", exc)
                continue
            if isinstance(data, (bytes, bytearray)):
                data = bytes(data).decode("utf-8")
            log.debug("[SSE] Event received: %s", getattr(event, "type", ""))
            yield format_sse(data)

    def _events(self) -> Response:
        log.info("[SSE] New connection")
        subscriber = self.event_bus.subscribe("*")

        def stream() -> Iterator[str]:
            try:
                yield from self.event_stream(subscriber)
            finally:
                try:
                    self.event_bus.unsubscribe("events", subscriber)
                except Exception as exc:
                    log.warning("[SSE] Error releasing subscriber: %s", exc)
                log.info("[SSE] Connection closed")

        return Response(stream(), content_type="text/event-stream",
                        headers={"Cache-Control": "no-cache"})

    def _orders(self) -> Response:
        try:
            orders = self.api_client.get_orders()
        except Exception as exc:
            log.error("Error getting orders: %s", exc)
            return _json_response({"error": "Failed to get orders"}, 500)
        return _json_response([_order_json(order) for order in orders], sort_keys=False)

    def _read_status(self) -> str:
        mimetype = request.mimetype
        if mimetype == "application/json" or mimetype.endswith("+json"):
            body = json.loads(request.get_data())
            if body is None:
                return ""
            if not isinstance(body, dict):
                raise ValueError("body must be a JSON object")
            status = body.get("status")
            if status is None:
                return ""
            if not isinstance(status, str):
                raise ValueError("status must be a string")
            return status
        if mimetype in ("application/x-www-form-urlencoded", "multipart/form-data"):
            return request.form.get("status", "")
        raise ValueError(f"unsupported content type {mimetype!r}")

    def _update_order_status(self, order_id: str) -> Response:
        try:
            status = self._read_status()
        except (ValueError, UnicodeDecodeError):
            return _json_response({"error": "Invalid request"}, 400)
        try:
            self.api_client.update_order_status(order_id, status)
        except Exception as exc:
            log.error("Error updating order status: %s", exc)
            return _json_response({
                "error": "Failed to update order status",
                "message": "Error updating order status",
            }, 500)
        return _json_response({"message": f"Order {order_id} updated to {status}"})

    def run(self, host: str = "0.0.0.0", port: int = DEFAULT_PORT) -> None:
        """Serve the application until interrupted."""
        self.app.run(host=host, port=port, threaded=True)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Start the dashboard service."""
    parser = argparse.ArgumentParser(prog="themenu-web",
                                     description="Serve the event dashboard.")
    parser.add_argument("--port", type=int,
                        default=os.environ.get("PORT") or str(DEFAULT_PORT))
    parser.add_argument("--api-url", default=DEFAULT_API_URL)
    parser.add_argument("--redis-url",
                        default=os.environ.get("REDIS_URL") or DEFAULT_REDIS_URL)
    args = parser.parse_args(argv)

    event_bus = connect_event_bus(args.redis_url)
    try:
        WebServer(event_bus, APIClient(args.api_url)).run(port=args.port)
    finally:
        event_bus.close()
    return 0