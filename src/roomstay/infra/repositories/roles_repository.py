"""User roles lookup (user_roles table)."""

from psycopg2.extensions import cursor as PgCursor

from roomstay.infra.db import fetchone

ADMIN_ROLE = "admin"


def is_admin(cur: PgCursor, user_id: str) -> bool:
    row = fetchone(
        cur,
        "SELECT 1 FROM user_roles WHERE user_id = %s AND role = %s LIMIT 1",
        (user_id, ADMIN_ROLE),
    )
    return row is not None
