"""
Tentative hold lifecycle.

A hold is a provider-visible placeholder for one candidate on one account.

    held -> committed   (candidate confirmed)
    held -> released    (session cancelled or another candidate committed)
    held -> expired     (timeout reached)

Only ``held`` can transition; every other status is terminal. Placeholder
writes and deletes go to the write queue as idempotent messages keyed by
hold id, so redelivery is harmless.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Literal
from uuid import uuid4

from app.features.scheduling.domain.models import Hold, HoldStatus
from app.features.scheduling.errors import (
    HoldExtensionError,
    HoldTimeoutError,
    InvalidHoldTransitionError,
)
from app.utils.time_helpers import overlaps, to_iso, utc_now

DEFAULT_HOLD_TIMEOUT = timedelta(hours=24)
MIN_HOLD_TIMEOUT = timedelta(minutes=5)
HOLD_DURATION_MIN_HOURS = 1
HOLD_DURATION_MAX_HOURS = 72
HOLD_DURATION_DEFAULT_HOURS = 24
APPROACHING_EXPIRY_THRESHOLD = timedelta(hours=1)

HOLD_TRANSITIONS: dict[HoldStatus, frozenset[HoldStatus]] = {
    HoldStatus.HELD: frozenset({HoldStatus.COMMITTED, HoldStatus.RELEASED, HoldStatus.EXPIRED}),
    HoldStatus.COMMITTED: frozenset(),
    HoldStatus.RELEASED: frozenset(),
    HoldStatus.EXPIRED: frozenset(),
}


@dataclass(frozen=True, slots=True)
class HoldWriteMessage:
    canonical_event_id: str
    target_account_id: str
    target_calendar_id: str
    projected_payload: dict[str, Any]
    idempotency_key: str
    type: Literal["UPSERT_MIRROR"] = "UPSERT_MIRROR"

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "canonical_event_id": self.canonical_event_id,
            "target_account_id": self.target_account_id,
            "target_calendar_id": self.target_calendar_id,
            "projected_payload": self.projected_payload,
            "idempotency_key": self.idempotency_key,
        }


@dataclass(frozen=True, slots=True)
class HoldDeleteMessage:
    canonical_event_id: str
    target_account_id: str
    provider_event_id: str
    idempotency_key: str
    type: Literal["DELETE_MIRROR"] = "DELETE_MIRROR"

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "canonical_event_id": self.canonical_event_id,
            "target_account_id": self.target_account_id,
            "provider_event_id": self.provider_event_id,
            "idempotency_key": self.idempotency_key,
        }


@dataclass(frozen=True, slots=True)
class HoldConflict:
    hold_id: str
    session_id: str
    hold_start: datetime
    hold_end: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "hold_id": self.hold_id,
            "session_id": self.session_id,
            "hold_start": to_iso(self.hold_start),
            "hold_end": to_iso(self.hold_end),
        }


def is_valid_transition(current: HoldStatus, target: HoldStatus) -> bool:
    return HoldStatus(target) in HOLD_TRANSITIONS.get(HoldStatus(current), frozenset())


def transition_hold(current: HoldStatus, target: HoldStatus) -> HoldStatus:
    """Return ``target`` if the move is allowed, otherwise raise naming both states."""
    if not is_valid_transition(current, target):
        raise InvalidHoldTransitionError(str(current), str(target))
    return HoldStatus(target)


def validate_hold_duration_hours(hours: float) -> float:
    if hours < HOLD_DURATION_MIN_HOURS or hours > HOLD_DURATION_MAX_HOURS:
        raise HoldTimeoutError(
            f"Hold duration must be between {HOLD_DURATION_MIN_HOURS} and "
            f"{HOLD_DURATION_MAX_HOURS} hours, got {hours:g}"
        )
    return hours


def _ms(delta: timedelta) -> int:
    return int(delta / timedelta(milliseconds=1))


def resolve_hold_timeout(
    hold_timeout_ms: int | None = None, hold_duration_hours: float | None = None
) -> timedelta | None:
    """
    Turn the caller's hold policy into a timeout.

    ``hold_duration_hours`` wins when given and must be within 1-72 hours.
    Otherwise ``hold_timeout_ms`` is used: None means the 24h default, 0 means
    no holds at all (returns None), anything else must be at least 5 minutes.

    Raises:
        HoldTimeoutError: If the duration or timeout is outside its bounds
    """
    if hold_duration_hours is not None:
        return timedelta(hours=validate_hold_duration_hours(hold_duration_hours))

    if hold_timeout_ms is None:
        return DEFAULT_HOLD_TIMEOUT

    if hold_timeout_ms == 0:
        return None

    timeout = timedelta(milliseconds=hold_timeout_ms)
    if timeout < MIN_HOLD_TIMEOUT:
        raise HoldTimeoutError(
            f"Hold timeout ({hold_timeout_ms}ms) is below minimum ({_ms(MIN_HOLD_TIMEOUT)}ms)"
        )
    return timeout


def create_hold_record(
    session_id: str,
    account_id: str,
    candidate_start: datetime,
    candidate_end: datetime,
    hold_timeout_ms: int | None = None,
    now: datetime | None = None,
) -> Hold:
    """
    Create a fresh ``held`` hold with no provider event yet.

    Raises:
        HoldTimeoutError: If the timeout is below the 5-minute minimum
    """
    timeout = (
        DEFAULT_HOLD_TIMEOUT if hold_timeout_ms is None else timedelta(milliseconds=hold_timeout_ms)
    )
    if timeout < MIN_HOLD_TIMEOUT:
        raise HoldTimeoutError(
            f"Hold timeout ({hold_timeout_ms}ms) is below minimum ({_ms(MIN_HOLD_TIMEOUT)}ms)"
        )

    return Hold(
        hold_id=f"hold_{uuid4().hex}",
        session_id=session_id,
        account_id=account_id,
        provider_event_id=None,
        expires_at=(now or utc_now()) + timeout,
        status=HoldStatus.HELD,
        candidate_start=candidate_start,
        candidate_end=candidate_end,
    )


def hold_event_id(hold: Hold) -> str:
    return f"hold_{hold.hold_id}"


def build_hold_upsert_message(hold: Hold, title: str, calendar_id: str) -> HoldWriteMessage:
    """Placeholder event write for a hold, rendered as an opaque ``[Hold]`` event."""
    event_id = hold_event_id(hold)
    payload = {
        "summary": f"[Hold] {title}",
        "start": {"dateTime": to_iso(hold.candidate_start)},
        "end": {"dateTime": to_iso(hold.candidate_end)},
        "status": "tentative",
        "transparency": "opaque",
        "visibility": "default",
        "extendedProperties": {
            "private": {
                "tminus": "true",
                "managed": "true",
                "canonical_event_id": event_id,
                "origin_account_id": hold.account_id,
            }
        },
    }

    return HoldWriteMessage(
        canonical_event_id=event_id,
        target_account_id=hold.account_id,
        target_calendar_id=calendar_id,
        projected_payload=payload,
        idempotency_key=f"hold_create_{hold.hold_id}",
    )


def build_hold_delete_message(hold: Hold) -> HoldDeleteMessage | None:
    """Delete message for the hold's provider event, or None when none was created."""
    if not hold.provider_event_id:
        return None

    return HoldDeleteMessage(
        canonical_event_id=hold_event_id(hold),
        target_account_id=hold.account_id,
        provider_event_id=hold.provider_event_id,
        idempotency_key=f"hold_delete_{hold.hold_id}",
    )


def is_hold_expired(hold: Hold, now: datetime | None = None) -> bool:
    return hold.expires_at <= (now or utc_now())


def find_expired_holds(holds: list[Hold], now: datetime | None = None) -> list[Hold]:
    """Holds still ``held`` whose expiry has passed; these need cleanup."""
    now = now or utc_now()
    return [h for h in holds if h.status == HoldStatus.HELD and is_hold_expired(h, now)]


def is_approaching_expiry(hold: Hold, now: datetime | None = None) -> bool:
    # Already-expired held holds count as approaching
    if hold.status != HoldStatus.HELD:
        return False
    remaining = hold.expires_at - (now or utc_now())
    return remaining <= APPROACHING_EXPIRY_THRESHOLD


def compute_extended_expiry(
    hold: Hold, duration_hours: float, now: datetime | None = None
) -> datetime:
    """
    New expiry for an extended hold, counted from now rather than the old expiry.

    Raises:
        HoldExtensionError: If the hold is no longer ``held``
        HoldTimeoutError: If the duration is outside 1-72 hours
    """
    if hold.status != HoldStatus.HELD:
        raise HoldExtensionError(
            f"Only holds in 'held' status can be extended. Current status: '{hold.status}'"
        )
    validate_hold_duration_hours(duration_hours)
    return (now or utc_now()) + timedelta(hours=duration_hours)


def detect_hold_conflicts(
    event_start: datetime, event_end: datetime, holds: list[Hold]
) -> list[HoldConflict]:
    """
    Held holds whose candidate window overlaps the proposed event.

    Touching boundaries do not conflict. Holds without a known window and
    holds in a terminal status are ignored.
    """
    conflicts = []
    for hold in holds:
        if hold.status != HoldStatus.HELD:
            continue
        if hold.candidate_start is None or hold.candidate_end is None:
            continue
        if overlaps(event_start, event_end, hold.candidate_start, hold.candidate_end):
            conflicts.append(
                HoldConflict(
                    hold_id=hold.hold_id,
                    session_id=hold.session_id,
                    hold_start=hold.candidate_start,
                    hold_end=hold.candidate_end,
                )
            )
    return conflicts
