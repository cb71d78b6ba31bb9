"""Event bus that fans events out through a Redis channel to local subscribers."""

from __future__ import annotations

import dataclasses
import json
import logging
import os
import queue
import re
import threading
import time
import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Optional

import redis
from redis.backoff import ExponentialBackoff
from redis.exceptions import RedisError
from redis.retry import Retry

from themenu.events import EventType, payload_to_dict

log = logging.getLogger(__name__)

CHANNEL = "events"
DEFAULT_REDIS_URL = "redis://localhost:6379"
SUBSCRIBER_BUFFER = 100
BACKPRESSURE_DELAY = 0.1
RECONNECT_DELAY = 1.0

_ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)
_TIME_PATTERN = re.compile(
    r"(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2})(?:\.(\d+))?(Z|[+-]\d{2}:\d{2})\Z"
)


def _format_time(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    text = moment.strftime("%Y-%m-%dT%H:%M:%S")
    fraction = f"{moment.microsecond:06d}".rstrip("0")
    if fraction:
        text += "." + fraction
    offset = moment.utcoffset() or timedelta(0)
    if offset == timedelta(0):
        return text + "Z"
    sign = "+" if offset > timedelta(0) else "-"
    minutes = abs(int(offset.total_seconds())) // 60
    return f"{text}{sign}{minutes // 60:02d}:{minutes % 60:02d}"


def _parse_time(text: str) -> datetime:
    match = _TIME_PATTERN.match(text)
    if match is None:
        raise ValueError(f"invalid timestamp {text!r}")
    year, month, day, hour, minute, second, fraction, zone = match.groups()
    micro = int((fraction or "0")[:6].ljust(6, "0"))
    if zone == "Z":
        tz = timezone.utc
    else:
        sign = 1 if zone[0] == "+" else -1
        tz = timezone(sign * timedelta(hours=int(zone[1:3]), minutes=int(zone[4:6])))
    return datetime(int(year), int(month), int(day), int(hour), int(minute),
                    int(second), micro, tzinfo=tz)


def _json_default(value: Any) -> Any:
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, datetime):
        return _format_time(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, enum_types):
        return value.value
    raise TypeError(f"{type(value).__name__} is not JSON serialisable")


enum_types = (EventType,)


@dataclass(frozen=True)
class Event:
    """An event as carried on the bus; the payload is a JSON document."""

    id: str
    type: str
    status: str
    payload: str
    timestamp: datetime

    def to_json(self) -> str:
        """Return the event as a compact JSON object."""
        return json.dumps(
            {
                "id": self.id,
                "type": self.type,
                "status": self.status,
                "payload": self.payload,
                "timestamp": _format_time(self.timestamp),
            },
            separators=(",", ":"),
            ensure_ascii=False,
        )

    @classmethod
    def from_json(cls, data: str | bytes) -> "Event":
        """Parse an event; missing fields take empty values. Raises ValueError."""
        if isinstance(data, (bytes, bytearray)):
            data = bytes(data).decode("utf-8")
        document = json.loads(data)
        if not isinstance(document, dict):
            raise ValueError("an event must be a JSON object")
        values: dict[str, str] = {}
        for name in ("id", "type", "status", "payload"):
            value = document.get(name)
            if value is None:
                value = ""
            if not isinstance(value, str):
                raise ValueError(f"event field {name!r} must be a string")
            values[name] = value
        stamp = document.get("timestamp")
        if stamp is None:
            timestamp = _ZERO_TIME
        elif isinstance(stamp, str):
            timestamp = _parse_time(stamp)
        else:
            raise ValueError("event field 'timestamp' must be a string")
        return cls(timestamp=timestamp, **values)


def _channel_for(event_type: str) -> str:
    if event_type in ("", "*"):
        return CHANNEL
    return f"{CHANNEL}:{event_type}"


class EventBus:
    """Publishes events to Redis and forwards what Redis delivers to local queues.

    A subscriber is a bounded queue; ``None`` is put on it when it is unsubscribed.
    """

    def __init__(self, client: Any) -> None:
        self._client = client
        self._subscribers: dict[str, list[queue.Queue]] = {}
        self._lock = threading.Lock()
        self._gate = threading.Lock()
        self._stopped = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        """Check the Redis connection and start listening in the background."""
        try:
            self._client.ping()
        except RedisError as exc:
            log.error("Error connecting to Redis: %s", exc)
            raise
        self._stopped.clear()
        self._thread = threading.Thread(target=self._listen, name="eventbus", daemon=True)
        self._thread.start()

    def _listen(self) -> None:
        while not self._stopped.is_set():
            pubsub = self._client.pubsub(ignore_subscribe_messages=True)
            try:
                pubsub.subscribe(CHANNEL)
                while not self._stopped.is_set():
                    message = pubsub.get_message(timeout=1.0)
                    if message and message.get("type") == "message":
                        self.handle_message(message["data"])
            except RedisError as exc:
                log.warning("Redis subscription failed: %s", exc)
            finally:
                try:
                    pubsub.close()
                except RedisError:
                    pass
            if not self._stopped.is_set():
                log.info("Redis connection closed, reconnecting")
                self._stopped.wait(RECONNECT_DELAY)

    def close(self) -> None:
        """Stop listening and close the Redis connection."""
        self._stopped.set()
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None
        try:
            self._client.close()
        except RedisError as exc:
            log.error("Error closing the Redis connection: %s", exc)

    def subscribe(self, event_type: str) -> queue.Queue:
        """Register a subscriber; '' or '*' subscribes to every event."""
        subscriber: queue.Queue = queue.Queue(maxsize=SUBSCRIBER_BUFFER)
        with self._lock:
            self._subscribers.setdefault(_channel_for(event_type), []).append(subscriber)
        return subscriber

    def unsubscribe(self, channel: str, subscriber: queue.Queue) -> bool:
        """Remove a subscriber from a channel and end its stream."""
        with self._lock:
            subscribers = self._subscribers.get(channel, [])
            if not any(item is subscriber for item in subscribers):
                return False
            self._subscribers[channel] = [item for item in subscribers if item is not subscriber]
        try:
            subscriber.put_nowait(None)
        except queue.Full:
            subscriber.get_nowait()
            subscriber.put_nowait(None)
        return True

    def deliver(self, event: Event) -> int:
        """Hand an event to every local subscriber; return how many took it."""
        if not self._gate.acquire(blocking=False):
            log.warning("Backpressure active, dropping event")
            time.sleep(BACKPRESSURE_DELAY)
            return 0
        try:
            with self._lock:
                subscribers = list(self._subscribers.get(CHANNEL, ()))
            delivered = 0
            for subscriber in subscribers:
                try:
                    subscriber.put_nowait(event)
                    delivered += 1
                except queue.Full:
                    log.warning("Subscriber queue full, dropping event")
            return delivered
        finally:
            self._gate.release()

    def handle_message(self, data: str | bytes) -> Optional[Event]:
        """Decode a message from Redis and deliver it; bad messages are skipped."""
        try:
            event = Event.from_json(data)
        except ValueError as exc:
            log.warning("Error decoding event: %s", exc)
            return None
        self.deliver(event)
        return event

    def publish(self, event: Event) -> bool:
        """Publish an event on the shared channel; return whether Redis took it."""
        try:
            self._client.publish(CHANNEL, event.to_json())
        except RedisError as exc:
            log.error("Error publishing event to Redis: %s", exc)
            return False
        return True

    def publish_event(self, event_type: str, status: str, payload: Any) -> Event:
        """Build an event around a payload, publish it and return it."""
        if dataclasses.is_dataclass(payload) or isinstance(payload, Mapping):
            payload = payload_to_dict(payload)
        body = json.dumps(payload, default=_json_default, separators=(",", ":"),
                          ensure_ascii=False)
        kind = event_type.value if isinstance(event_type, EventType) else str(event_type)
        event = Event(
            id=str(uuid.uuid4()),
            type=kind,
            status=status,
            payload=body,
            timestamp=datetime.now().astimezone(),
        )
        self.publish(event)
        return event


def connect_event_bus(url: Optional[str] = None) -> EventBus:
    """Connect to Redis (REDIS_URL or localhost by default) and start an event bus."""
    url = url or os.environ.get("REDIS_URL") or DEFAULT_REDIS_URL
    client = redis.Redis.from_url(
        url,
        retry=Retry(ExponentialBackoff(cap=0.512, base=0.008), 3),
        socket_connect_timeout=5,
        socket_timeout=3,
        max_connections=10,
    )
    bus = EventBus(client)
    bus.start()
    return bus