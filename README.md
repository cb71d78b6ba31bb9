# themenu

A small service for ordering from a daily menu. It has three parts that share
one PostgreSQL database and one Redis channel:

- a **writer** API (`themenu.writer.WriterServer`) that creates users, dishes
  and orders and changes order status,
- a **reader** API (`themenu.reader.ReaderServer`) that serves the day's menu,
  the dish list and a user's orders,
- a **web** dashboard (`themenu.web.WebServer`) that relays events live over
  server-sent events and lets kitchen staff move orders through their states.

Every change made through the writer is published as an event on the Redis
channel `events`; the dashboard passes those events on to connected browsers.

## The dashboard

The package installs one command:

    themenu-web [--port PORT] [--api-url URL] [--redis-url URL]

The port defaults to the `PORT` environment variable, or 8082 when it is
unset. The Redis URL defaults to `REDIS_URL`, or `redis://localhost:6379`.
The API URL, where orders are read and updated, defaults to
`http://themenu-api:8080`. The command checks the Redis connection before it
starts serving.

| Method | Path                  | What it does                                   |
|--------|-----------------------|------------------------------------------------|
| GET    | `/`                   | the HTML dashboard                             |
| GET    | `/events`             | a `text/event-stream` of bus events: `data: connected` first, then each event as JSON, and `data: ping` every 10 seconds |
| GET    | `/orders`             | orders fetched from the API                    |
| PATCH  | `/orders/<id>/status` | forwards a `{"status": ...}` change to the API |
| GET    | `/static/...`         | static assets                                  |

Every response carries `Access-Control-Allow-Origin: *`.

The dashboard calls the API through `themenu.api_client.APIClient`, which
authenticates as the user whose id is `themenu.api_client.SERVICE_USER_ID`;
that user must exist in the database the API reads.

## Reader and writer APIs

Both servers take a database object with the methods of
`themenu.database.Querier`; `themenu.database.Queries` provides them over a
DB-API 2.0 connection whose driver uses `%s` placeholders. The writer also
needs a `CommandBus` and an `EventBus`, the reader a `QueryBus`.

```python
from themenu.database import Queries
from themenu.eventbus import connect_event_bus
from themenu.commands import CommandBus, CreateOrderHandler, UpdateOrderStatusHandler
from themenu.queries import QueryBus, GetMenuHandler, GetUserOrdersHandler
from themenu.writer import WriterServer
from themenu.reader import ReaderServer

db = Queries(conn)                      # a DB-API connection to PostgreSQL
bus = connect_event_bus("redis://localhost:6379")

commands = CommandBus()
commands.register("CreateOrder", CreateOrderHandler(db, bus))
commands.register("UpdateOrderStatus", UpdateOrderStatusHandler(db, bus))
WriterServer(commands, db, bus).run("0.0.0.0", 8080)

queries = QueryBus()
queries.register("GetMenu", GetMenuHandler(db))
queries.register("GetUserOrders", GetUserOrdersHandler(db))
ReaderServer(queries, db).run("0.0.0.0", 8081)
```

Each server also exposes its Flask application as `.app`.

### Writer routes

- `POST /users` with `name` and `email` (for example `ana@example.com`) – public
- `POST /users/token` with `email` – public; returns `{"token": ...}` for that user
- `PATCH /users/<id>` with `name` and `email`
- `POST /orders` with `dish_id`
- `PATCH /orders/<id>/status` with one of `received`, `confirmed`,
  `preparing`, `served`, `cancelled`
- `POST /dishes`, `PUT /dishes/<id>` with `name`, `description`, `price`,
  `prep_time_minutes` and `available_on` (an RFC 3339 time)
- `DELETE /dishes/<id>`

A user may hold only one active order at a time: creating a second one while
an earlier order is neither `served` nor `cancelled` answers 409. Ordering a
dish that does not exist answers 404.

### Reader routes

- `GET /menu?date=YYYY-MM-DD` – dishes available on that day, by name (today
  when omitted); 404 when there are none
- `GET /orders` – the caller's orders with dish name, description and price
  (`null` when there are none)
- `GET /dishes` – every dish, newest first

### Authentication

All routes other than the two public ones expect an `Authorization` header of
the form `Bearer <token>`, where the token is the user identifier returned by
`POST /users/token`. A missing header, a malformed header, a token that is not
a UUID or an unknown user all answer 401. Every request is also printed as a
one-line summary: method, path, client address, status and latency.

## Events

`themenu.eventbus.Event` carries an `id`, a `type`, a `status`, a JSON
`payload` and a `timestamp`. The types are listed in
`themenu.events.EventType`, among them `UserCreated`, `DishCreated`,
`DishUpdated`, `DishDeleted`, `OrderCreated`, `OrderStatusUpdated` and
`token.generated`.

`EventBus.publish_event(type, status, payload)` builds an event and publishes
it on the `events` channel. Events received from Redis are handed to local
subscribers: `EventBus.subscribe("*")` (or `""`) returns a bounded queue that
receives them, and `None` is put on it when it is unsubscribed. The bus drops
an event for a subscriber whose queue is full rather than blocking the others.

## What the package does not do

- It ships no database schema, migrations or seed data, and no PostgreSQL
  driver: you create the tables and pass in your own connection.
- There is no command that starts the reader or writer API; build them in
  Python as shown above.
- The dashboard page loads `/static/js/events.js` and `/static/js/dashboard.js`,
  which are not included. `themenu-web` serves static files from
  `internal/web/static` under the working directory; `WebServer` takes a
  `static_folder` argument to serve them from elsewhere.
- The dashboard page is rendered with an empty event list; live events reach
  the browser only through `/events`.

## Tests

The test suite uses pytest and needs no running database or Redis server:

    pip install -e ".[test]"
    pytest