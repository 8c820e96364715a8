"""Database URL helpers for Alembic migrations.

Kept apart from env.py so they can be imported without an Alembic context.
"""

from __future__ import annotations

import os

from psycopg2.extensions import parse_dsn
from sqlalchemy.engine import URL

_DRIVER = "postgresql+psycopg2"


def dsn_to_url(dsn: str) -> str:
    """Convert a libpq key=value DSN to a SQLAlchemy URL string.

    A Unix socket host (leading "/") is passed as a query parameter.
    """
    params = parse_dsn(dsn)
    host = params.get("host", "localhost")
    port = params.get("port")
    query = {}
    if host.startswith("/"):
        query["host"] = host
        host = None
        port = None

    url = URL.create(
        _DRIVER,
        username=params.get("user") or None,
        password=params.get("password") or None,
        host=host,
        port=int(port) if port else None,
        database=params.get("dbname") or None,
        query=query,
    )
    return url.render_as_string(hide_password=False)


def normalize_url(url: str) -> str:
    """Pin URL-style DATABASE_URL values to the psycopg2 driver."""
    for scheme in ("postgres://", "postgresql://"):
        if url.startswith(scheme):
            return f"{_DRIVER}://" + url[len(scheme):]
    return url


def get_migration_url() -> str:
    url = os.environ.get("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL is required to run migrations")
    if "://" in url:
        return normalize_url(url)
    return dsn_to_url(url)
