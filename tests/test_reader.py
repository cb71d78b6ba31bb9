import uuid
from datetime import date, datetime
from decimal import Decimal

import pytest

from themenu.database import NotFoundError
from themenu.models import Dish, User, UserOrderRow
from themenu.queries import GetMenuHandler, GetUserOrdersHandler, QueryBus
from themenu.reader import ReaderServer, dish_to_dict, parse_menu_date

USER_ID = uuid.UUID("11111111-2222-3333-4444-555555555555")
DISH_ID = uuid.UUID("66666666-7777-8888-9999-aaaaaaaaaaaa")
MENU_DAY = date(2024, 5, 1)


def _dish(description="Sopa de tomate"):
    return Dish(
        id=DISH_ID,
        name="Sopa",
        description=description,
        price=Decimal("12.5"),
        prep_time_minutes=15,
        available_on=MENU_DAY,
        created_at=datetime(2024, 5, 1, 10, 30),
        updated_at=datetime(2024, 5, 1, 10, 30),
    )


class FakeDB:
    def __init__(self):
        self.users = {
            USER_ID: User(id=USER_ID, name="Ana", email="ana@example.com",
                          created_at=datetime(2024, 1, 1, 9, 0)),
        }
        self.dishes = [_dish()]
        self.orders = []
        self.requested_dates = []
        self.fail_listing = False

    def get_user(self, user_id):
        try:
            return self.users[user_id]
        except KeyError:
            raise NotFoundError("no rows in result set") from None

    def get_dishes_by_date(self, available_on):
        self.requested_dates.append(available_on)
        return [dish for dish in self.dishes if dish.available_on == available_on]

    def get_orders_by_user_id(self, user_id):
        return [order for order in self.orders if order.user_id == user_id]

    def list_dishes(self):
        if self.fail_listing:
            raise RuntimeError("database down")
        return list(self.dishes)


def _auth_headers(user_id):
    return {"Authorization": "Bearer " + str(user_id)}


@pytest.fixture
def db():
    return FakeDB()


@pytest.fixture
def client(db):
    bus = QueryBus()
    bus.register("GetMenu", GetMenuHandler(db))
    bus.register("GetUserOrders", GetUserOrdersHandler(db))
    return ReaderServer(bus, db).app.test_client()


def test_dish_to_dict_fields():
    result = dish_to_dict(_dish())
    assert result["id"] == str(DISH_ID)
    assert result["name"] == "Sopa"
    assert result["description"] == "Sopa de tomate"
    assert result["price"] == 12.5
    assert result["prep_time_minutes"] == 15
    assert result["available_on"] == "2024-05-01T00:00:00Z"
    assert result["created_at"] == "2024-05-01T10:30:00Z"


def test_dish_to_dict_null_description_is_empty():
    assert dish_to_dict(_dish(description=None))["description"] == ""


def test_parse_menu_date_defaults_to_today():
    assert parse_menu_date(None, MENU_DAY) == MENU_DAY


def test_parse_menu_date_parses_iso_date():
    assert parse_menu_date("2024-05-01") == MENU_DAY


@pytest.mark.parametrize("value", ["", "2024-5-1", "01/05/2024", "20240501", "2024-13-01"])
def test_parse_menu_date_rejects_other_forms(value):
    with pytest.raises(ValueError):
        parse_menu_date(value)


def test_menu_requires_authentication(client):
    response = client.get("/menu")
    assert response.status_code == 401
    assert response.get_json() == {"error": "Token no proporcionado"}


def test_menu_rejects_bad_token(client):
    response = client.get("/menu", headers={"Authorization": "Bearer token"})
    assert response.status_code == 401
    assert response.get_json() == {"error": "Token inválido"}


def test_menu_for_date(client, db):
    response = client.get("/menu?date=2024-05-01", headers=_auth_headers(USER_ID))
    assert response.status_code == 200
    items = response.get_json()
    assert [item["id"] for item in items] == [str(DISH_ID)]
    assert items[0]["price"] == 12.5
    assert db.requested_dates == [MENU_DAY]


def test_menu_item_keys_keep_field_order(client):
    response = client.get("/menu?date=2024-05-01", headers=_auth_headers(USER_ID))
    assert list(response.get_json()[0]) == [
        "id", "name", "description", "price", "prep_time_minutes", "available_on",
    ]


def test_menu_defaults_to_today(client, db):
    db.dishes = []
    response = client.get("/menu", headers=_auth_headers(USER_ID))
    assert response.status_code == 404
    assert response.get_json() == {"error": "No hay menú disponible para esta fecha"}
    assert db.requested_dates == [date.today()]


def test_menu_bad_date(client):
    response = client.get("/menu?date=yesterday", headers=_auth_headers(USER_ID))
    assert response.status_code == 400
    assert response.get_json() == {"error": "Formato de fecha inválido"}


def test_menu_not_found(client):
    response = client.get("/menu?date=2030-01-01", headers=_auth_headers(USER_ID))
    assert response.status_code == 404
    assert response.get_json() == {"error": "No hay menú disponible para esta fecha"}


def test_orders_empty_is_null(client):
    response = client.get("/orders", headers=_auth_headers(USER_ID))
    assert response.status_code == 200
    assert response.get_data(as_text=True) == "null"


def test_orders_for_user(client, db):
    order_id = uuid.uuid4()
    created = datetime(2024, 5, 1, 12, 0)
    db.orders.append(UserOrderRow(
        id=order_id, user_id=USER_ID, dish_id=DISH_ID, status="received",
        created_at=created, updated_at=created, dish_name="Sopa",
        dish_description="Sopa de tomate", dish_price=Decimal("12.5"),
    ))
    response = client.get("/orders", headers=_auth_headers(USER_ID))
    assert response.status_code == 200
    orders = response.get_json()
    assert len(orders) == 1
    assert orders[0]["id"] == str(order_id)
    assert orders[0]["status"] == "received"
    assert orders[0]["dish_price"] == 12.5
    assert orders[0]["created_at"] == orders[0]["updated_at"]


def test_orders_unknown_user_is_rejected(client):
    response = client.get("/orders", headers=_auth_headers(uuid.uuid4()))
    assert response.status_code == 401
    assert response.get_json() == {"error": "Usuario no encontrado"}


def test_dishes_listing(client):
    response = client.get("/dishes", headers=_auth_headers(USER_ID))
    assert response.status_code == 200
    assert response.get_json() == [dish_to_dict(_dish())]


def test_dishes_listing_failure(client, db):
    db.fail_listing = True
    response = client.get("/dishes", headers=_auth_headers(USER_ID))
    assert response.status_code == 500
    assert response.get_json() == {"error": "Error al obtener los platos"}