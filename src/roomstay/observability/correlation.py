"""Correlation ID propagation for request and notification tracing."""

import uuid
from contextvars import ContextVar, Token

# Visible across awaits and copied into asyncio tasks spawned by ChangeSync
correlation_id_var: ContextVar[str] = ContextVar("roomstay_correlation_id", default="")

CORRELATION_ID_HEADER = "X-Correlation-ID"


def generate_correlation_id() -> str:
    return str(uuid.uuid4())


def get_correlation_id() -> str:
    """Get current correlation ID from context ("" when none is set)."""
    return correlation_id_var.get()


def set_correlation_id(cid: str) -> Token[str]:
    return correlation_id_var.set(cid)


def reset_correlation_id(token: Token[str]) -> None:
    correlation_id_var.reset(token)
