"""Daily menu ordering service: read and write APIs, Redis event bus and live dashboard."""

__version__ = "0.1.0"