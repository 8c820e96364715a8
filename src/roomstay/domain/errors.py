"""Engine error taxonomy.

ValidationError (client-correctable, never reaches storage)
  InvalidRange    check-out not after check-in, bad month anchor
  RoomNotFound    unknown room id
AvailabilityConflict  requested span is no longer bookable
AuthorizationError    caller is not an admin
UpstreamError         store unreachable or rejected the operation
  UpstreamFetchError
  UpstreamWriteError
"""

from __future__ import annotations

from datetime import date


class EngineError(Exception):
    """Base class for all engine errors; carries a human-readable reason."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


class ValidationError(EngineError):
    """Raised when a request is structurally invalid.

    Attributes:
        fields: Names of the fields at fault.
    """

    def __init__(self, reason: str, fields: list[str] | None = None) -> None:
        self.fields = list(fields or [])
        super().__init__(reason)


class InvalidRange(ValidationError):
    def __init__(
        self,
        start: date | None = None,
        end: date | None = None,
        reason: str | None = None,
        fields: list[str] | None = None,
    ) -> None:
        self.start = start
        self.end = end
        if reason is None:
            reason = f"check-out ({end}) must be after check-in ({start})"
        super().__init__(reason, fields=fields or ["check_in_date", "check_out_date"])


class RoomNotFound(ValidationError):
    def __init__(self, room_id: str) -> None:
        self.room_id = room_id
        super().__init__(f"Room {room_id} not found", fields=["room_id"])


class AvailabilityConflict(EngineError):
    """Raised when at least one requested night is not bookable.

    Attributes:
        room_id: Room that was requested.
        conflicting_date: First night (ascending) that cannot be booked.
    """

    def __init__(self, room_id: str, conflicting_date: date, reason: str | None = None) -> None:
        self.room_id = room_id
        self.conflicting_date = conflicting_date
        super().__init__(reason or f"Room {room_id} is not available on {conflicting_date.isoformat()}")


class AuthorizationError(EngineError):
    def __init__(self, reason: str = "Admin privileges required") -> None:
        super().__init__(reason)


class UpstreamError(EngineError):
    pass


class UpstreamFetchError(UpstreamError):
    pass


class UpstreamWriteError(UpstreamError):
    pass
