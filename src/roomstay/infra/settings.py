"""Engine configuration loaded from the environment.

Values are read at call time so tests can patch os.environ.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum

from roomstay.observability.logging import get_logger

logger = get_logger(__name__)


class AvailabilityPolicy(str, Enum):
    """How days without a ledger row are treated.

    OPT_OUT: bookable unless occupied or blocked (default).
    OPT_IN: bookable only when the ledger explicitly marks them available.
    """

    OPT_OUT = "opt_out"
    OPT_IN = "opt_in"


@dataclass(frozen=True)
class EngineSettings:
    availability_policy: AvailabilityPolicy = AvailabilityPolicy.OPT_OUT
    change_sync_delay: float = 0.0
    change_listener: str = "none"
    max_stay_nights: int = 90


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(
            "invalid integer setting, using default",
            extra={"extra_fields": {"setting": name, "default": default}},
        )
        return default


def get_settings() -> EngineSettings:
    """Build EngineSettings from environment variables.

    AVAILABILITY_POLICY: opt_out | opt_in
    CHANGE_SYNC_DELAY_MS: coalescing delay for ChangeSync recomputes
    CHANGE_LISTENER: none | postgres
    MAX_STAY_NIGHTS: upper bound on a single booking
    """
    raw_policy = os.environ.get("AVAILABILITY_POLICY", AvailabilityPolicy.OPT_OUT.value)
    try:
        policy = AvailabilityPolicy(raw_policy.strip().lower())
    except ValueError:
        raise RuntimeError(f"Unknown AVAILABILITY_POLICY: {raw_policy}")

    listener = os.environ.get("CHANGE_LISTENER", "none").strip().lower()
    if listener not in ("none", "postgres"):
        raise RuntimeError(f"Unknown CHANGE_LISTENER: {listener}")

    return EngineSettings(
        availability_policy=policy,
        change_sync_delay=max(0, _int_env("CHANGE_SYNC_DELAY_MS", 0)) / 1000.0,
        change_listener=listener,
        max_stay_nights=max(1, _int_env("MAX_STAY_NIGHTS", 90)),
    )
