import uuid
from datetime import date, datetime
from decimal import Decimal

import pytest

from themenu.models import Dish, UserOrderRow
from themenu.queries import (
    GetMenuHandler,
    GetMenuQuery,
    GetUserOrdersHandler,
    GetUserOrdersQuery,
    InvalidQueryError,
    MenuItem,
    MenuNotFoundError,
    QueryBus,
    QueryError,
    query_type,
)

NOW = datetime(2024, 5, 1, 12, 0, 0)
DAY = date(2024, 5, 1)


class FakeDB:
    def __init__(self, dishes=(), user_orders=()):
        self.dishes = list(dishes)
        self.user_orders = list(user_orders)
        self.requested_dates = []

    def get_dishes_by_date(self, available_on):
        self.requested_dates.append(available_on)
        return [dish for dish in self.dishes if dish.available_on == available_on]

    def get_orders_by_user_id(self, user_id):
        return [row for row in self.user_orders if row.user_id == user_id]


def make_dish(name, description="Tasty", price=Decimal("12.5"), available=DAY):
    return Dish(uuid.uuid4(), name, description, price, 15, available, NOW, NOW)


def test_menu_items_follow_dishes():
    dishes = [make_dish("Arroz"), make_dish("Sopa", description=None, price=None)]
    items = GetMenuHandler(FakeDB(dishes)).handle(GetMenuQuery(DAY))

    assert [item.name for item in items] == ["Arroz", "Sopa"]
    first, second = items
    assert first.id == str(dishes[0].id)
    assert first.description == "Tasty"
    assert first.price == 12.5
    assert first.prep_time_minutes == 15
    assert first.available_on == DAY
    assert second.description == ""
    assert second.price == 0.0


def test_menu_query_uses_calendar_date_of_datetime():
    db = FakeDB([make_dish("Arroz")])
    items = GetMenuHandler(db).handle(GetMenuQuery(datetime(2024, 5, 1, 18, 30)))
    assert db.requested_dates == [DAY]
    assert len(items) == 1


def test_empty_menu_raises():
    db = FakeDB([make_dish("Arroz", available=date(2024, 5, 2))])
    with pytest.raises(MenuNotFoundError) as info:
        GetMenuHandler(db).handle(GetMenuQuery(DAY))
    assert str(info.value) == "menú no encontrado para la fecha especificada"
    assert isinstance(info.value, QueryError)


def test_menu_item_to_dict():
    item = MenuItem("abc", "Arroz", "Tasty", 12.5, 15, DAY)
    assert item.to_dict() == {
        "id": "abc",
        "name": "Arroz",
        "description": "Tasty",
        "price": 12.5,
        "prep_time_minutes": 15,
        "available_on": "2024-05-01T00:00:00Z",
    }


def test_menu_item_without_date_uses_zero_time():
    item = MenuItem("abc", "Arroz", "", 0.0, 0, None)
    assert item.to_dict()["available_on"] == "0001-01-01T00:00:00Z"


def test_user_orders_are_converted():
    user_id = uuid.uuid4()
    row = UserOrderRow(uuid.uuid4(), user_id, uuid.uuid4(), "received", NOW, NOW,
                       "Arroz", "Tasty", Decimal("12.5"))
    other = UserOrderRow(uuid.uuid4(), uuid.uuid4(), uuid.uuid4(), "served", NOW, NOW,
                         "Sopa", None, None)
    result = GetUserOrdersHandler(FakeDB(user_orders=[row, other])).handle(
        GetUserOrdersQuery(user_id))

    assert result == [{
        "id": str(row.id),
        "user_id": str(user_id),
        "dish_id": str(row.dish_id),
        "dish_name": "Arroz",
        "dish_description": "Tasty",
        "dish_price": 12.5,
        "status": "received",
        "created_at": NOW,
        "updated_at": NOW,
    }]


def test_user_orders_keep_nulls():
    user_id = uuid.uuid4()
    row = UserOrderRow(uuid.uuid4(), user_id, uuid.uuid4(), "served", NOW, None,
                       "Sopa", None, None)
    [result] = GetUserOrdersHandler(FakeDB(user_orders=[row])).handle(GetUserOrdersQuery(user_id))
    assert result["dish_description"] is None
    assert result["dish_price"] is None
    assert result["updated_at"] is None


def test_user_without_orders_gets_empty_list():
    assert GetUserOrdersHandler(FakeDB()).handle(GetUserOrdersQuery(uuid.uuid4())) == []


def test_handlers_reject_wrong_query():
    db = FakeDB()
    with pytest.raises(InvalidQueryError):
        GetMenuHandler(db).handle(GetUserOrdersQuery(uuid.uuid4()))
    with pytest.raises(InvalidQueryError):
        GetUserOrdersHandler(db).handle(GetMenuQuery(DAY))


def test_query_type_names():
    assert query_type(GetMenuQuery(DAY)) == "GetMenu"
    assert query_type(GetUserOrdersQuery(uuid.uuid4())) == "GetUserOrders"
    assert query_type("something") == "Unknown"


def test_bus_dispatches_and_injects_database():
    db = FakeDB([make_dish("Arroz")])
    bus = QueryBus()
    bus.register("GetMenu", GetMenuHandler(db))
    query = GetMenuQuery(DAY)
    items = bus.dispatch(query)
    assert [item.name for item in items] == ["Arroz"]
    assert query.queries is db


def test_bus_without_handler_raises():
    bus = QueryBus()
    bus.register("GetMenu", GetMenuHandler(FakeDB()))
    with pytest.raises(InvalidQueryError) as info:
        bus.dispatch(GetUserOrdersQuery(uuid.uuid4()))
    assert str(info.value) == "consulta inválida"