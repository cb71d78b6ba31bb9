import dataclasses
import uuid

import pytest

from themenu.commands import CommandBus, CreateOrderHandler, UpdateOrderStatusHandler
from themenu.database import NotFoundError
from themenu.events import EventType
from themenu.models import Dish, Order, User, UserOrderRow
from themenu.writer import (
    ValidationError,
    WriterServer,
    is_valid_email,
    parse_dish_request,
    parse_status_request,
    parse_user_request,
)


class FakeDB:
    def __init__(self):
        self.users = {}
        self.dishes = {}
        self.orders = {}

    def add_user(self, name, email):
        user = User(id=uuid.uuid4(), name=name, email=email, created_at=None)
        self.users[user.id] = user
        return user

    def get_user(self, user_id):
        try:
            return self.users[user_id]
        except KeyError:
            raise NotFoundError("no rows in result set")

    def get_user_by_email(self, email):
        for user in self.users.values():
            if user.email == email:
                return user
        raise NotFoundError("no rows in result set")

    def create_user(self, params):
        user = User(id=params.id, name=params.name, email=params.email, created_at=None)
        self.users[user.id] = user
        return user

    def update_user(self, params):
        if params.id not in self.users:
            raise NotFoundError("no rows in result set")
        user = dataclasses.replace(self.users[params.id], name=params.name, email=params.email)
        self.users[user.id] = user
        return user

    def _dish(self, params):
        return Dish(id=params.id, name=params.name, description=params.description,
                    price=params.price, prep_time_minutes=params.prep_time_minutes,
                    available_on=params.available_on, created_at=None, updated_at=None)

    def create_dish(self, params):
        dish = self._dish(params)
        self.dishes[dish.id] = dish
        return dish

    def update_dish(self, params):
        if params.id not in self.dishes:
            raise NotFoundError("no rows in result set")
        dish = self._dish(params)
        self.dishes[dish.id] = dish
        return dish

    def get_dish(self, dish_id):
        try:
            return self.dishes[dish_id]
        except KeyError:
            raise NotFoundError("no rows in result set")

    def delete_dish(self, dish_id):
        self.dishes.pop(dish_id, None)

    def get_orders_by_user_id(self, user_id):
        rows = []
        for order in self.orders.values():
            if order.user_id != user_id:
                continue
            dish = self.dishes[order.dish_id]
            rows.append(UserOrderRow(
                id=order.id, user_id=order.user_id, dish_id=order.dish_id,
                status=order.status, created_at=None, updated_at=None,
                dish_name=dish.name, dish_description=dish.description,
                dish_price=dish.price,
            ))
        return rows

    def create_order(self, params):
        order = Order(id=params.id, user_id=params.user_id, dish_id=params.dish_id,
                      status=params.status, created_at=None, updated_at=None)
        self.orders[order.id] = order
        return order

    def get_order(self, order_id):
        try:
            return self.orders[order_id]
        except KeyError:
            raise NotFoundError("no rows in result set")

    def update_order_status(self, params):
        order = dataclasses.replace(self.orders[params.id], status=params.status)
        self.orders[order.id] = order
        return order


class FakeEventBus:
    def __init__(self):
        self.published = []

    def publish_event(self, event_type, status, payload):
        self.published.append((event_type, status, payload))


@pytest.fixture
def env():
    db = FakeDB()
    events = FakeEventBus()
    bus = CommandBus()
    bus.register("CreateOrder", CreateOrderHandler(db, events))
    bus.register("UpdateOrderStatus", UpdateOrderStatusHandler(db, events))
    server = WriterServer(bus, db, events)
    return server.app.test_client(), db, events


def _auth(user):
    return {"Authorization": "Bearer " + str(user.id)}


def _send_patch(client, path, body, headers):
    return client.open(path, method="PATCH", json=body, headers=headers)


DISH_BODY = {
    "name": "Cazuela",
    "description": "Lentejas",
    "price": 4500.0,
    "prep_time_minutes": 20,
    "available_on": "2024-05-01T12:30:00Z",
}


def test_is_valid_email():
    assert is_valid_email("cook@example.com")
    assert not is_valid_email("not-an-email")
    assert not is_valid_email("")


def test_parse_dish_request_valid():
    parsed = parse_dish_request(DISH_BODY)
    assert parsed.name == "Cazuela"
    assert parsed.description == "Lentejas"
    assert parsed.price == 4500.0
    assert parsed.prep_time_minutes == 20
    assert parsed.available_on.isoformat() == "2024-05-01T12:30:00+00:00"


@pytest.mark.parametrize("change", [
    {"name": ""},
    {"price": 0},
    {"prep_time_minutes": 1.5},
    {"available_on": "mayo"},
    {"available_on": None},
])
def test_parse_dish_request_rejects(change):
    with pytest.raises(ValidationError):
        parse_dish_request({**DISH_BODY, **change})


def test_parse_dish_request_rejects_non_object():
    with pytest.raises(ValidationError):
        parse_dish_request([1, 2])


def test_parse_user_request():
    parsed = parse_user_request({"name": "Ana", "email": "ana@example.com"})
    assert (parsed.name, parsed.email) == ("Ana", "ana@example.com")
    with pytest.raises(ValidationError):
        parse_user_request({"name": "Ana", "email": "ana"})
    with pytest.raises(ValidationError):
        parse_user_request({"email": "ana@example.com"})


def test_parse_status_request():
    assert parse_status_request({"status": "served"}) == "served"
    with pytest.raises(ValidationError, match="oneof"):
        parse_status_request({"status": "eaten"})
    with pytest.raises(ValidationError, match="required"):
        parse_status_request({})


def test_create_user_publishes_event(env):
    client, db, events = env
    resp = client.post("/users", json={"name": "Ana", "email": "ana@example.com"})
    assert resp.status_code == 201
    body = resp.get_json()
    assert body["email"] == "ana@example.com"
    assert uuid.UUID(body["id"]) in db.users
    event_type, status, payload = events.published[-1]
    assert event_type == EventType.USER_CREATED
    assert status == "success"
    assert payload.user_id == body["id"]


def test_create_user_invalid_email(env):
    client, _, events = env
    resp = client.post("/users", json={"name": "Ana", "email": "ana"})
    assert resp.status_code == 400
    assert resp.get_json() == {"error": "Datos de entrada inválidos"}
    assert events.published == []


def test_generate_token(env):
    client, db, events = env
    user = db.add_user("Ana", "ana@example.com")
    resp = client.post("/users/token", json={"email": "ana@example.com"})
    assert resp.status_code == 200
    assert resp.get_json() == {"token": str(user.id)}
    assert events.published[-1][0] == EventType.TOKEN_GENERATED

    missing = client.post("/users/token", json={"email": "nadie@example.com"})
    assert missing.status_code == 401
    assert missing.get_json() == {"error": "Usuario no encontrado"}


def test_protected_routes_need_auth(env):
    client, _, _ = env
    resp = client.post("/dishes", json=DISH_BODY)
    assert resp.status_code == 401
    assert resp.get_json() == {"error": "Token no proporcionado"}
    bad = client.post("/dishes", json=DISH_BODY, headers={"Authorization": "Bearer token"})
    assert bad.status_code == 401
    assert bad.get_json() == {"error": "Token inválido"}


def test_update_user(env):
    client, db, events = env
    user = db.add_user("Ana", "ana@example.com")
    resp = _send_patch(client, f"/users/{user.id}",
                       {"name": "Ana M", "email": "anam@example.com"}, _auth(user))
    assert resp.status_code == 200
    assert db.users[user.id].name == "Ana M"
    assert events.published[-1][0] == EventType.USER_UPDATED


def test_create_dish(env):
    client, db, events = env
    user = db.add_user("Ana", "ana@example.com")
    resp = client.post("/dishes", json=DISH_BODY, headers=_auth(user))
    assert resp.status_code == 201
    body = resp.get_json()
    assert set(body) == {"id", "name", "description", "price", "prep_time_minutes",
                         "available_on"}
    assert body["available_on"] == "2024-05-01T00:00:00Z"
    assert body["price"] == 4500.0
    assert uuid.UUID(body["id"]) in db.dishes
    event_type, _, payload = events.published[-1]
    assert event_type == EventType.DISH_CREATED
    assert payload.dish_id == body["id"]
    assert payload.available_on == body["available_on"]


def test_update_dish_invalid_id(env):
    client, db, _ = env
    user = db.add_user("Ana", "ana@example.com")
    resp = client.put("/dishes/abc", json=DISH_BODY, headers=_auth(user))
    assert resp.status_code == 400
    assert resp.get_json() == {"error": "ID de plato inválido"}


def test_delete_dish(env):
    client, db, events = env
    user = db.add_user("Ana", "ana@example.com")
    created = client.post("/dishes", json=DISH_BODY, headers=_auth(user)).get_json()
    missing = client.delete(f"/dishes/{uuid.uuid4()}", headers=_auth(user))
    assert missing.status_code == 404
    resp = client.delete(f"/dishes/{created['id']}", headers=_auth(user))
    assert resp.status_code == 200
    assert resp.get_json() == {"message": "Plato eliminado exitosamente"}
    assert uuid.UUID(created["id"]) not in db.dishes
    assert events.published[-1][0] == EventType.DISH_DELETED


def test_create_order_flow(env):
    client, db, _ = env
    user = db.add_user("Ana", "ana@example.com")
    dish_id = client.post("/dishes", json=DISH_BODY, headers=_auth(user)).get_json()["id"]

    first = client.post("/orders", json={"dish_id": dish_id}, headers=_auth(user))
    assert first.status_code == 201
    assert first.get_json() == {"message": "Orden creada exitosamente"}
    assert len(db.orders) == 1

    second = client.post("/orders", json={"dish_id": dish_id}, headers=_auth(user))
    assert second.status_code == 409
    assert second.get_json() == {"error": "Ya tienes una orden activa"}


def test_create_order_errors(env):
    client, db, _ = env
    user = db.add_user("Ana", "ana@example.com")
    unknown = client.post("/orders", json={"dish_id": str(uuid.uuid4())}, headers=_auth(user))
    assert unknown.status_code == 404
    invalid = client.post("/orders", json={"dish_id": "xyz"}, headers=_auth(user))
    assert invalid.status_code == 400
    assert invalid.get_json() == {"error": "ID de plato inválido"}
    empty = client.post("/orders", json={}, headers=_auth(user))
    assert empty.status_code == 400


def test_update_order_status(env):
    client, db, events = env
    user = db.add_user("Ana", "ana@example.com")
    dish_id = client.post("/dishes", json=DISH_BODY, headers=_auth(user)).get_json()["id"]
    client.post("/orders", json={"dish_id": dish_id}, headers=_auth(user))
    order_id = next(iter(db.orders))

    resp = _send_patch(client, f"/orders/{order_id}/status", {"status": "served"},
                       _auth(user))
    assert resp.status_code == 200
    assert db.orders[order_id].status == "served"
    assert events.published[-1][0] == EventType.ORDER_STATUS_UPDATED

    bad = _send_patch(client, f"/orders/{order_id}/status", {"status": "eaten"},
                      _auth(user))
    assert bad.status_code == 400
    assert "oneof" in bad.get_json()["error"]


def test_update_unknown_order(env):
    client, db, _ = env
    user = db.add_user("Ana", "ana@example.com")
    resp = _send_patch(client, f"/orders/{uuid.uuid4()}/status", {"status": "served"},
                       _auth(user))
    assert resp.status_code == 500
    assert resp.get_json() == {"error": "order not found"}