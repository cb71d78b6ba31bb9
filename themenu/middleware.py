"""Request authentication and request logging for the HTTP services."""

from __future__ import annotations

import logging
import time
import uuid
from datetime import timedelta
from typing import Any, Iterable, Optional

from flask import Flask, g, jsonify, request

log = logging.getLogger(__name__)


class AuthError(Exception):
    """A request could not be authenticated."""

    status = 401

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


def authenticate(db: Any, authorization: Optional[str]) -> Any:
    """Return the user named by a ``Bearer <user id>`` header; raises AuthError."""
    log.debug("Authorization header: %r", authorization)
    if not authorization:
        raise AuthError("Token no proporcionado")

    parts = authorization.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer":
        raise AuthError("Formato de token inválido")

    try:
        user_id = uuid.UUID(parts[1])
    except ValueError as exc:
        raise AuthError("Token inválido") from exc

    try:
        user = db.get_user(user_id)
    except Exception as exc:
        log.debug("Error fetching user %s: %s", user_id, exc)
        raise AuthError("Usuario no encontrado") from exc

    log.debug("Authenticated user: %r", user)
    return user


def coerce_user_id(value: Any) -> uuid.UUID:
    """Return a user id stored as a UUID, its 16 raw bytes or its text form.

    Raises ValueError for text that is not a UUID and TypeError for any other type.
    """
    if isinstance(value, uuid.UUID):
        return value
    if isinstance(value, (bytes, bytearray)) and len(value) == 16:
        return uuid.UUID(bytes=bytes(value))
    if isinstance(value, str):
        return uuid.UUID(value)
    raise TypeError(f"unexpected user id type {type(value).__name__}")


def install_auth(app: Flask, db: Any, exempt: Optional[Iterable[tuple[str, str]]] = None) -> None:
    """Require authentication on every request except the (method, path) pairs given.

    The authenticated user's id is kept in ``flask.g.user_id``.
    """
    skip = frozenset((method.upper(), path) for method, path in (exempt or ()))

    @app.before_request
    def _authenticate() -> Any:
        if (request.method, request.path) in skip:
            return None
        try:
            user = authenticate(db, request.headers.get("Authorization", ""))
        except AuthError as exc:
            return jsonify(error=exc.message), exc.status
        g.user_id = user.id
        return None


def _frac(value: int, precision: int) -> str:
    whole, fraction = divmod(value, 10 ** precision)
    digits = f"{fraction:0{precision}d}".rstrip("0")
    return f"{whole}.{digits}" if digits else str(whole)


def _format_duration(nanoseconds: int) -> str:
    if nanoseconds == 0:
        return "0s"
    sign = "-" if nanoseconds < 0 else ""
    ns = abs(nanoseconds)
    if ns < 1_000:
        return f"{sign}{ns}ns"
    if ns < 1_000_000:
        return f"{sign}{_frac(ns, 3)}µs"
    if ns < 1_000_000_000:
        return f"{sign}{_frac(ns, 6)}ms"
    seconds = _frac(ns % 60_000_000_000, 9) + "s"
    minutes = ns // 60_000_000_000
    if not minutes:
        return sign + seconds
    hours, minutes = divmod(minutes, 60)
    prefix = f"{hours}h" if hours else ""
    return f"{sign}{prefix}{minutes}m{seconds}"


def _to_nanoseconds(latency: timedelta | float | int) -> int:
    if isinstance(latency, timedelta):
        whole = latency.days * 86_400 + latency.seconds
        return whole * 1_000_000_000 + latency.microseconds * 1_000
    return round(latency * 1_000_000_000)


def format_request_log(method: str, path: str, client_ip: str, status: int,
                       latency: timedelta | float) -> str:
    """Return the one-line summary of a request; latency is a timedelta or seconds."""
    duration = _format_duration(_to_nanoseconds(latency))
    return f"[{method}] {path} {client_ip} {status} {duration}"


def install_request_logger(app: Flask) -> None:
    """Print a summary line for every request the app answers."""

    @app.before_request
    def _start_timer() -> None:
        g.request_started_ns = time.perf_counter_ns()

    @app.after_request
    def _log_request(response: Any) -> Any:
        started = g.get("request_started_ns")
        elapsed = 0 if started is None else time.perf_counter_ns() - started
        print(format_request_log(
            request.method,
            request.path,
            request.remote_addr or "",
            response.status_code,
            elapsed / 1_000_000_000,
        ))
        return response