"""
Backend access for the service layer.

    from app.repositories import get_backend
    backend = get_backend()
    backend.tasks.select({"project_id": 7}, order_by=["-floor_position"])
"""

from flask import current_app

_EXTENSION_KEY = "elevator_backend"


def init_backend(app, backend=None):
    """Attach the backend bundle to the app (SQL implementation unless one is given)."""
    if backend is None:
        from app.repositories.sql import build_sql_backend
        backend = build_sql_backend()
    app.extensions[_EXTENSION_KEY] = backend
    return backend


def get_backend():
    return current_app.extensions[_EXTENSION_KEY]
