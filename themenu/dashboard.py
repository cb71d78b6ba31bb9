"""HTML pages of the event dashboard."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable

DASHBOARD_TITLE = "Event Bus Dashboard"

_ESCAPES = str.maketrans({
    "&": "&amp;",
    "'": "&#39;",
    "<": "&lt;",
    ">": "&gt;",
    '"': "&#34;",
})

_HEAD_SCRIPTS = (
    '<script src="https://unpkg.com/htmx.org@2.0.4" '
    'integrity="sha384-HGfztofotfshcF7+8n44JQL2oJmowVChPTg48S+jvZoztPfvwD79OC/LTtG6dMp+" '
    'crossorigin="anonymous"></script>'
    '<script src="https://unpkg.com/htmx-ext-sse@2.2.3" '
    'integrity="sha384-Y4gc0CK6Kg+hmulDc6rZPJu0tqvk7EWlih0Oh+2OkAi1ZDlCbBDCQEE2uVk472Ky" '
    'crossorigin="anonymous"></script>'
    '<script src="https://unpkg.com/hyperscript.org@0.9.12"></script>'
    '<script src="https://cdn.tailwindcss.com"></script>'
    '<script src="/static/js/events.js"></script>'
)


def _escape(value: Any) -> str:
    return str(value).translate(_ESCAPES)


def render_layout(title: str, body: str) -> str:
    """Return the page shell with an escaped title around already-rendered HTML."""
    safe_title = _escape(title)
    return (
        '<!doctype html><html lang="es"><head><meta charset="UTF-8">'
        '<meta name="viewport" content="width=device-width, initial-scale=1.0">'
        f"<title>{safe_title}</title>"
        f"{_HEAD_SCRIPTS}"
        '</head><body class="bg-gray-100"><div class="container mx-auto px-4 py-8">'
        '<header class="mb-8"><h1 class="text-3xl font-bold text-gray-800">'
        f"{safe_title}</h1></header><main>{body}</main></div>"
        '<script src="/static/js/dashboard.js"></script></body></html>'
    )


def _clock(timestamp: Any) -> str:
    if isinstance(timestamp, datetime):
        return timestamp.strftime("%H:%M:%S")
    return str(timestamp)


def _event_card(event: Any) -> str:
    return (
        '<div class="border rounded p-4 bg-gray-50">'
        '<div class="flex justify-between items-center mb-2">'
        '<div class="flex items-center space-x-2">'
        '<span class="px-2 py-1 text-xs rounded-full bg-blue-100 text-blue-800">'
        f"{_escape(event.type)}</span> "
        '<span class="px-2 py-1 text-xs rounded-full bg-green-100 text-green-800">'
        f"{_escape(event.status)}</span></div>"
        f'<span class="text-sm text-gray-500">{_escape(_clock(event.timestamp))}</span></div>'
        '<div class="mt-2"><div class="text-xs text-gray-500 mb-1">ID: '
        f"{_escape(event.id)}</div>"
        f'<pre class="text-sm bg-white p-2 rounded border">{_escape(event.payload)}</pre>'
        "</div></div>"
    )


def render_dashboard(events: Iterable[Any]) -> str:
    """Return the dashboard page listing the given events."""
    cards = "".join(_event_card(event) for event in events)
    body = (
        '<div class="grid grid-cols-1 gap-8"><div class="bg-white rounded-lg shadow p-6">'
        '<h2 class="text-xl font-semibold mb-4">Eventos en Tiempo Real</h2>'
        f'<div id="events" class="space-y-4">{cards}</div></div>'
        '<div class="bg-white rounded-lg shadow p-6">'
        '<h2 class="text-xl font-semibold mb-4">Órdenes Entrantes</h2>'
        '<div id="orders" class="space-y-4">'
        "<!-- Aquí se mostrarán las órdenes activas --></div></div></div>"
    )
    return render_layout(DASHBOARD_TITLE, body)