"""ASGI entry point: roomstay.api.app:app."""

from .factory import create_app

app = create_app()
