"""HTTP client for the order endpoints of the menu API."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import requests

log = logging.getLogger(__name__)

# The API authenticates a caller by user id; the dashboard acts as this service user.
SERVICE_USER_ID = "aaaaaaaa-aaaa-aaaa-aaaa-aaaaaaaaaaaa"
REQUEST_TIMEOUT = 10.0

_ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)
_TIME_PATTERN = re.compile(
    r"(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2})(?:\.(\d{1,9}))?(Z|[+-]\d{2}:\d{2})\Z"
)


class APIError(Exception):
    """A call to the menu API failed."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def _parse_time(text: str) -> datetime:
    match = _TIME_PATTERN.match(text)
    if match is None:
        raise ValueError(f"invalid time {text!r}")
    year, month, day, hour, minute, second, fraction, zone = match.groups()
    micro = int((fraction or "0")[:6].ljust(6, "0"))
    if zone == "Z":
        tz = timezone.utc
    else:
        sign = 1 if zone[0] == "+" else -1
        tz = timezone(sign * timedelta(hours=int(zone[1:3]), minutes=int(zone[4:6])))
    return datetime(int(year), int(month), int(day), int(hour), int(minute),
                    int(second), micro, tzinfo=tz)


def _text(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise TypeError(f"field {key!r} must be a string")
    return value


def _number(data: dict[str, Any], key: str) -> float:
    value = data.get(key)
    if value is None:
        return 0.0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"field {key!r} must be a number")
    return float(value)


def _moment(data: dict[str, Any], key: str) -> datetime:
    value = data.get(key)
    if value is None:
        return _ZERO_TIME
    if not isinstance(value, str):
        raise TypeError(f"field {key!r} must be a time string")
    return _parse_time(value)


@dataclass(frozen=True)
class RemoteOrder:
    """An order as the API reports it, with its dish."""

    id: str
    user_id: str
    dish_id: str
    status: str
    dish_name: str
    dish_description: str
    dish_price: float
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_dict(cls, data: Any) -> "RemoteOrder":
        """Build an order from its JSON object; missing fields take empty values."""
        if not isinstance(data, dict):
            raise TypeError("an order must be a JSON object")
        return cls(
            id=_text(data, "id"),
            user_id=_text(data, "user_id"),
            dish_id=_text(data, "dish_id"),
            status=_text(data, "status"),
            dish_name=_text(data, "dish_name"),
            dish_description=_text(data, "dish_description"),
            dish_price=_number(data, "dish_price"),
            created_at=_moment(data, "created_at"),
            updated_at=_moment(data, "updated_at"),
        )


class APIClient:
    """Reads and updates orders through the menu API."""

    def __init__(self, base_url: str, session: Optional[Any] = None) -> None:
        self.base_url = base_url
        self._session = session if session is not None else requests.Session()

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {SERVICE_USER_ID}"}

    def get_orders(self) -> list[RemoteOrder]:
        """Return the orders the API lists; raises APIError on any failure."""
        try:
            response = self._session.request(
                "GET", f"{self.base_url}/orders",
                headers=self._headers(), timeout=REQUEST_TIMEOUT,
            )
        except requests.RequestException as exc:
            raise APIError(f"error fetching orders: {exc}") from exc

        if response.status_code != 200:
            raise APIError(f"unexpected status code: {response.status_code}",
                           response.status_code)

        try:
            data = response.json()
            if data is None:
                return []
            if not isinstance(data, list):
                raise TypeError("expected a JSON array of orders")
            return [RemoteOrder.from_dict({} if item is None else item) for item in data]
        except (ValueError, TypeError) as exc:
            raise APIError(f"error decoding response: {exc}") from exc

    def update_order_status(self, order_id: str, status: str) -> None:
        """Ask the API to move an order to a new status; raises APIError on failure."""
        headers = self._headers()
        headers["Content-Type"] = "application/json"
        body = json.dumps({"status": status}, separators=(",", ":")).encode("utf-8")
        try:
            response = self._session.request(
                "PATCH", f"{self.base_url}/orders/{order_id}/status",
                headers=headers, data=body, timeout=REQUEST_TIMEOUT,
            )
        except requests.RequestException as exc:
            raise APIError(f"error updating order status: {exc}") from exc

        if response.status_code != 200:
            log.warning("Response body: %s", response.text)
            raise APIError(f"unexpected status code: {response.status_code}",
                           response.status_code)