"""Booking admission - validated, conflict-checked creation of reservations.

State machine:  draft -> validated -> admitted
                draft -> rejected          (ValidationError, AuthorizationError)
                validated -> rejected      (AvailabilityConflict)

Admission runs in a single transaction:
1. Lock the room row (FOR UPDATE) to serialise admissions for one room.
2. Idempotency lookup, scoped to the caller: a replayed key returns the
   reservation written by the first attempt, so a client retry after a
   store hiccup can never double-submit. It runs under the room lock, so
   an attempt with the same key still in flight has committed by then.
3. Re-resolve availability for the stay span (never a cached view).
4. Price every night (override or base rate) and insert as pending.

The bookings table carries an exclusion constraint over
daterange(check_in_date, check_out_date, '[)') for active statuses. It is
the authoritative overlap guard; steps 1 and 3 are a fast pre-filter
that also yields the first conflicting date. An ExclusionViolation is
translated into AvailabilityConflict.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum

import psycopg2
from psycopg2 import errors as pg_errors
from psycopg2.extensions import cursor as PgCursor

from roomstay.domain.dates import ONE_DAY, enumerate_nights, nights_between
from roomstay.domain.errors import (
    AuthorizationError,
    AvailabilityConflict,
    InvalidRange,
    RoomNotFound,
    UpstreamFetchError,
    UpstreamWriteError,
    ValidationError,
)
from roomstay.domain.models import Reservation, Room
from roomstay.domain.reservations import first_overlap
from roomstay.domain.resolver import Resolution, resolve_window
from roomstay.infra.db import txn
from roomstay.infra.repositories.bookings_repository import (
    get_booking_by_idempotency_key,
    insert_booking,
    list_active_bookings,
)
from roomstay.infra.repositories.rooms_repository import get_room
from roomstay.infra.settings import AvailabilityPolicy, get_settings
from roomstay.observability.logging import get_logger
from roomstay.observability.redaction import safe_log_context
from roomstay.sync.feed import BOOKINGS_TABLE, get_change_feed

logger = get_logger(__name__)


class AdmissionState(str, Enum):
    DRAFT = "draft"
    VALIDATED = "validated"
    ADMITTED = "admitted"
    REJECTED = "rejected"


@dataclass(frozen=True)
class BookingDraft:
    """A stay request as submitted by the guest."""

    room_id: str
    guest_name: str
    guest_email: str
    guest_phone: str
    guests_count: int
    check_in_date: date
    check_out_date: date
    special_requests: str | None = None


@dataclass(frozen=True)
class StayQuote:
    room_id: str
    check_in_date: date
    check_out_date: date
    nights: int
    nightly_prices: dict[date, Decimal]
    total_price: Decimal

    def to_dict(self) -> dict:
        return {
            "room_id": self.room_id,
            "check_in_date": self.check_in_date.isoformat(),
            "check_out_date": self.check_out_date.isoformat(),
            "nights": self.nights,
            "nightly_prices": {d.isoformat(): str(p) for d, p in sorted(self.nightly_prices.items())},
            "total_price": str(self.total_price),
        }


@dataclass(frozen=True)
class AdmissionResult:
    """Outcome of admit_booking.

    ok=True carries the reservation; ok=False carries a human-readable
    reason and either the faulty fields or the first conflicting date.
    """

    ok: bool
    state: AdmissionState
    reservation: Reservation | None = None
    reason: str | None = None
    conflicting_date: date | None = None
    fields: list[str] = field(default_factory=list)
    replayed: bool = False

    def to_dict(self) -> dict:
        if self.ok:
            return {
                "ok": True,
                "reservation": self.reservation.to_dict() if self.reservation else None,
                "replayed": self.replayed,
            }
        body: dict = {"ok": False, "reason": self.reason}
        if self.conflicting_date is not None:
            body["conflicting_date"] = self.conflicting_date.isoformat()
        if self.fields:
            body["fields"] = self.fields
        return body


def validate_draft(draft: BookingDraft, *, max_stay_nights: int | None = None) -> None:
    """Structural checks that need no storage.

    Every faulty field is reported at once.

    Raises:
        InvalidRange: If check-out is not after check-in (and nothing else is wrong).
        ValidationError: Otherwise, listing the fields at fault.
    """
    problems: list[tuple[str, str]] = []

    if not draft.room_id or not str(draft.room_id).strip():
        problems.append(("room_id", "room is required"))
    for name in ("guest_name", "guest_email", "guest_phone"):
        value = getattr(draft, name)
        if value is None or not str(value).strip():
            problems.append((name, f"{name} is required"))
    if draft.guest_email and draft.guest_email.strip() and "@" not in draft.guest_email:
        problems.append(("guest_email", "guest_email is not a valid address"))
    if draft.guests_count is None or draft.guests_count < 1:
        problems.append(("guests_count", "guests_count must be at least 1"))

    range_ok = draft.check_out_date > draft.check_in_date
    if range_ok and max_stay_nights is not None:
        nights = (draft.check_out_date - draft.check_in_date).days
        if nights > max_stay_nights:
            problems.append(("check_out_date", f"stay cannot exceed {max_stay_nights} nights"))

    if not range_ok and not problems:
        raise InvalidRange(draft.check_in_date, draft.check_out_date)
    if not range_ok:
        problems.append(("check_out_date", "check-out must be after check-in"))

    if problems:
        fields = list(dict.fromkeys(name for name, _ in problems))
        raise ValidationError("; ".join(message for _, message in problems), fields=fields)


def validate_room(room: Room | None, room_id: str) -> Room:
    """Raise unless room exists and is active."""
    if room is None:
        raise RoomNotFound(room_id)
    if not room.is_active:
        raise ValidationError(f"Room {room_id} is not open for booking", fields=["room_id"])
    return room


def price_stay(resolution: Resolution, check_in: date, check_out: date) -> StayQuote:
    """Price every night of [check_in, check_out) against a resolution.

    Raises:
        AvailabilityConflict: Naming the first night that is not bookable.
    """
    prices: dict[date, Decimal] = {}
    for night in enumerate_nights(check_in, check_out):
        if not resolution.is_bookable(night):
            raise AvailabilityConflict(resolution.room_id, night)
        prices[night] = resolution.price_by_date[night]

    return StayQuote(
        room_id=resolution.room_id,
        check_in_date=check_in,
        check_out_date=check_out,
        nights=len(prices),
        nightly_prices=prices,
        total_price=sum(prices.values(), Decimal("0")),
    )


def quote_stay(
    room_id: str,
    check_in: date,
    check_out: date,
    *,
    policy: AvailabilityPolicy | None = None,
    max_stay_nights: int | None = None,
) -> StayQuote:
    """Price a prospective stay without writing anything.

    Stays longer than admission accepts are refused before any lookup.

    Raises:
        InvalidRange: If check_out <= check_in.
        ValidationError: Stay longer than max_stay_nights (MAX_STAY_NIGHTS by
            default), or an inactive room.
        RoomNotFound: Unknown room.
        AvailabilityConflict: A night is not bookable.
        UpstreamFetchError: Store failure.
    """
    nights = nights_between(check_in, check_out)
    limit = get_settings().max_stay_nights if max_stay_nights is None else max_stay_nights
    if nights > limit:
        raise ValidationError(f"stay cannot exceed {limit} nights", fields=["check_out_date"])
    try:
        with txn() as cur:
            room = validate_room(get_room(cur, room_id), room_id)
            resolution = resolve_window(
                cur, room_id=room_id, start=check_in, end=check_out - ONE_DAY, policy=policy, room=room
            )
    except psycopg2.Error as exc:
        raise UpstreamFetchError(f"Could not quote room {room_id}") from exc
    return price_stay(resolution, check_in, check_out)


class BookingAdmission:
    """One admission attempt, driven through draft -> validated -> admitted/rejected."""

    def __init__(
        self,
        draft: BookingDraft,
        *,
        caller_id: str | None,
        idempotency_key: str,
        policy: AvailabilityPolicy | None = None,
    ) -> None:
        self.draft = draft
        self.caller_id = caller_id
        self.idempotency_key = idempotency_key
        self.policy = policy
        self.state = AdmissionState.DRAFT
        self.reservation: Reservation | None = None
        self.replayed = False

    def validate(self) -> None:
        """draft -> validated (or rejected, raising ValidationError/AuthorizationError)."""
        if self.state is not AdmissionState.DRAFT:
            raise RuntimeError(f"Cannot validate admission in state {self.state.value}")

        try:
            if not self.caller_id:
                raise AuthorizationError("Authentication required to book")
            if not self.idempotency_key or not self.idempotency_key.strip():
                raise ValidationError("idempotency key is required", fields=["idempotency_key"])
            validate_draft(self.draft, max_stay_nights=get_settings().max_stay_nights)
        except (ValidationError, AuthorizationError):
            self.state = AdmissionState.REJECTED
            raise

        self.state = AdmissionState.VALIDATED

    def admit(self) -> Reservation:
        """validated -> admitted (or rejected, raising AvailabilityConflict/ValidationError)."""
        if self.state is not AdmissionState.VALIDATED:
            raise RuntimeError(f"Cannot admit booking in state {self.state.value}")

        draft = self.draft
        try:
            with txn() as cur:
                reservation, created = self._admit_in_txn(cur)
        except (AvailabilityConflict, ValidationError):
            self.state = AdmissionState.REJECTED
            raise
        except pg_errors.ExclusionViolation:
            # Lost a race the pre-filter could not see; the store is authoritative.
            self.state = AdmissionState.REJECTED
            raise self._conflict_from_store() from None
        except psycopg2.Error as exc:
            logger.error(
                "booking write failed",
                extra={"extra_fields": {"room_id": draft.room_id, "error": type(exc).__name__}},
            )
            raise UpstreamWriteError(f"Could not create booking for room {draft.room_id}") from exc

        self.state = AdmissionState.ADMITTED
        self.reservation = reservation
        self.replayed = not created

        logger.info(
            "booking admitted" if created else "booking replayed",
            extra={
                "extra_fields": {
                    "reservation_id": reservation.id,
                    "room_id": reservation.room_id,
                    "check_in_date": reservation.check_in_date.isoformat(),
                    "check_out_date": reservation.check_out_date.isoformat(),
                    "total_price": str(reservation.total_price),
                    **safe_log_context(guest_email=draft.guest_email, caller_id=self.caller_id),
                },
            },
        )

        if created:
            get_change_feed().publish(
                BOOKINGS_TABLE,
                {
                    "room_id": reservation.room_id,
                    "check_in_date": reservation.check_in_date.isoformat(),
                    "check_out_date": reservation.check_out_date.isoformat(),
                },
            )
        return reservation

    def _admit_in_txn(self, cur: PgCursor) -> tuple[Reservation, bool]:
        draft = self.draft

        room = get_room(cur, draft.room_id, lock=True)
        existing = get_booking_by_idempotency_key(cur, self.caller_id, self.idempotency_key)
        if existing is not None:
            return self._replay(existing), False

        room = validate_room(room, draft.room_id)
        resolution = resolve_window(
            cur,
            room_id=draft.room_id,
            start=draft.check_in_date,
            end=draft.check_out_date - ONE_DAY,
            policy=self.policy,
            room=room,
        )
        quote = price_stay(resolution, draft.check_in_date, draft.check_out_date)

        reservation, created = insert_booking(
            cur,
            room_id=draft.room_id,
            user_id=self.caller_id,
            guest_name=draft.guest_name.strip(),
            guest_email=draft.guest_email.strip(),
            guest_phone=draft.guest_phone.strip(),
            guests_count=draft.guests_count,
            special_requests=(draft.special_requests or "").strip() or None,
            check_in_date=draft.check_in_date,
            check_out_date=draft.check_out_date,
            total_price=quote.total_price,
            idempotency_key=self.idempotency_key,
        )
        if not created:
            # Same key committed for another room in the meantime.
            return self._replay(reservation), False
        return reservation, True

    def _replay(self, existing: Reservation) -> Reservation:
        """Return the caller's earlier reservation if it is for this very stay."""
        draft = self.draft
        if (
            existing.room_id != str(draft.room_id)
            or existing.check_in_date != draft.check_in_date
            or existing.check_out_date != draft.check_out_date
        ):
            raise ValidationError(
                "idempotency key was already used for a different booking",
                fields=["idempotency_key"],
            )
        return existing

    def _conflict_from_store(self) -> AvailabilityConflict:
        """Find the first night taken by the booking that won the race."""
        draft = self.draft
        conflicting = draft.check_in_date
        try:
            with txn() as cur:
                reservations = list_active_bookings(
                    cur, room_id=draft.room_id, start=draft.check_in_date, end=draft.check_out_date
                )
            conflicting = first_overlap(reservations, draft.check_in_date, draft.check_out_date) or conflicting
        except psycopg2.Error:
            logger.exception(
                "could not locate conflicting booking",
                extra={"extra_fields": {"room_id": draft.room_id}},
            )

        logger.warning(
            "booking rejected by overlap constraint",
            extra={
                "extra_fields": {
                    "room_id": draft.room_id,
                    "requested_check_in": draft.check_in_date.isoformat(),
                    "requested_check_out": draft.check_out_date.isoformat(),
                    "conflicting_date": conflicting.isoformat(),
                },
            },
        )
        return AvailabilityConflict(draft.room_id, conflicting)


def admit_booking(
    draft: BookingDraft,
    *,
    caller_id: str | None,
    idempotency_key: str,
    policy: AvailabilityPolicy | None = None,
) -> AdmissionResult:
    """Validate and admit a booking request.

    Rejections (validation, availability) come back as ok=False results;
    store failures raise UpstreamFetchError/UpstreamWriteError and a missing
    caller raises AuthorizationError. Retrying after an upstream error is
    safe only with the same caller and idempotency_key.
    """
    admission = BookingAdmission(draft, caller_id=caller_id, idempotency_key=idempotency_key, policy=policy)
    try:
        admission.validate()
        reservation = admission.admit()
    except AvailabilityConflict as exc:
        return AdmissionResult(
            ok=False,
            state=admission.state,
            reason=exc.reason,
            conflicting_date=exc.conflicting_date,
        )
    except ValidationError as exc:
        return AdmissionResult(ok=False, state=admission.state, reason=exc.reason, fields=exc.fields)

    return AdmissionResult(
        ok=True,
        state=admission.state,
        reservation=reservation,
        replayed=admission.replayed,
    )
