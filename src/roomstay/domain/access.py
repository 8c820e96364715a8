"""Admin capability check used by ledger mutations and admin listings.

The caller identity is resolved once at the API boundary and passed in
explicitly; there is no ambient "current user".
"""

from __future__ import annotations

import psycopg2
from psycopg2.extensions import cursor as PgCursor

from roomstay.domain.errors import AuthorizationError, UpstreamFetchError
from roomstay.infra.repositories.roles_repository import is_admin
from roomstay.observability.logging import get_logger

logger = get_logger(__name__)


def require_admin(cur: PgCursor, caller_id: str | None) -> None:
    """Raise AuthorizationError unless caller_id holds the admin role.

    Raises:
        AuthorizationError: Anonymous or non-admin caller.
        UpstreamFetchError: Role lookup failed.
    """
    if not caller_id:
        raise AuthorizationError("Authentication required")

    try:
        allowed = is_admin(cur, caller_id)
    except psycopg2.Error as exc:
        raise UpstreamFetchError("Could not verify caller role") from exc

    if not allowed:
        logger.warning(
            "admin capability denied",
            extra={"extra_fields": {"caller_id": caller_id}},
        )
        raise AuthorizationError()
