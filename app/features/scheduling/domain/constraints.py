"""
Solver constraints.

Each constraint kind is a small frozen dataclass carrying a literal ``kind``
discriminant, and ``SolverConstraint`` is the closed union of all of them.
The solver dispatches on ``kind`` with a ``match`` statement.

Raw rows come from the store actor's constraint and VIP policy tables and
are converted here; unknown kinds are dropped.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

from app.infrastructure.observability.logging import get_logger
from app.utils.time_helpers import overlaps, parse_iso, parse_iso_optional, to_iso

logger = get_logger(__name__)

BufferType = Literal["travel", "prep", "cooldown"]


@dataclass(frozen=True, slots=True)
class WorkingHoursConstraint:
    """Working window on the listed weekdays (0=Sunday ... 6=Saturday)."""

    days: tuple[int, ...]
    start_time: str  # "HH:MM"
    end_time: str  # "HH:MM"
    timezone: str = "UTC"
    kind: Literal["working_hours"] = field(default="working_hours", init=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "config": {
                "days": list(self.days),
                "start_time": self.start_time,
                "end_time": self.end_time,
                "timezone": self.timezone,
            },
        }


@dataclass(frozen=True, slots=True)
class TripConstraint:
    """Absolute exclusion window, independent of busy-interval coverage."""

    active_from: datetime
    active_to: datetime
    kind: Literal["trip"] = field(default="trip", init=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "activeFrom": to_iso(self.active_from),
            "activeTo": to_iso(self.active_to),
        }


@dataclass(frozen=True, slots=True)
class BufferConstraint:
    type: BufferType
    minutes: int
    applies_to: str = "all"
    kind: Literal["buffer"] = field(default="buffer", init=False)

    @property
    def direction(self) -> Literal["before", "after"]:
        return "after" if self.type == "cooldown" else "before"

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "config": {"type": self.type, "minutes": self.minutes, "applies_to": self.applies_to},
        }


@dataclass(frozen=True, slots=True)
class NoMeetingsAfterConstraint:
    time: str  # "HH:MM"
    timezone: str = "UTC"
    kind: Literal["no_meetings_after"] = field(default="no_meetings_after", init=False)

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "config": {"time": self.time, "timezone": self.timezone}}


@dataclass(frozen=True, slots=True)
class OverrideConstraint:
    """Manual window in which the working-hours penalty is waived."""

    reason: str
    slot_start: datetime
    slot_end: datetime
    timezone: str = "UTC"
    kind: Literal["override"] = field(default="override", init=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "config": {
                "reason": self.reason,
                "slot_start": to_iso(self.slot_start),
                "slot_end": to_iso(self.slot_end),
                "timezone": self.timezone,
            },
        }


@dataclass(frozen=True, slots=True)
class VipOverrideConstraint:
    participant_hash: str
    display_name: str
    priority_weight: float
    allow_after_hours: bool = False
    min_notice_hours: float = 0
    override_deep_work: bool = False
    kind: Literal["vip_override"] = field(default="vip_override", init=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "config": {
                "participant_hash": self.participant_hash,
                "display_name": self.display_name,
                "priority_weight": self.priority_weight,
                "allow_after_hours": self.allow_after_hours,
                "min_notice_hours": self.min_notice_hours,
                "override_deep_work": self.override_deep_work,
            },
        }


SolverConstraint = (
    WorkingHoursConstraint
    | TripConstraint
    | BufferConstraint
    | NoMeetingsAfterConstraint
    | OverrideConstraint
    | VipOverrideConstraint
)


def convert_to_solver_constraints(
    rows: Iterable[dict[str, Any]],
    window_start: datetime,
    window_end: datetime,
) -> list[SolverConstraint]:
    """
    Convert raw store constraint rows into typed solver constraints.

    Trips are kept only when they overlap the scheduling window. Working
    hours, buffers and daily cutoffs are time-of-day rules and always pass.
    Overrides need an explicit slot window. Unknown kinds and malformed
    rows are skipped.

    Args:
        rows: Items from ``list_constraints`` (kind, config_json, active_from, active_to)
        window_start: Start of the scheduling window
        window_end: End of the scheduling window
    """
    results: list[SolverConstraint] = []

    for row in rows:
        try:
            constraint = _convert_row(row, window_start, window_end)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(
                "Skipping malformed constraint",
                kind=row.get("kind"),
                constraint_id=row.get("constraint_id"),
                error=str(e),
            )
            continue
        if constraint is not None:
            results.append(constraint)

    return results


def _convert_row(
    row: dict[str, Any], window_start: datetime, window_end: datetime
) -> SolverConstraint | None:
    kind = row.get("kind")
    config = row.get("config_json") or {}

    match kind:
        case "working_hours":
            return WorkingHoursConstraint(
                days=tuple(int(d) for d in config.get("days", [])),
                start_time=config["start_time"],
                end_time=config["end_time"],
                timezone=config.get("timezone") or "UTC",
            )
        case "trip":
            active_from = parse_iso_optional(row.get("active_from"))
            active_to = parse_iso_optional(row.get("active_to"))
            if active_from and active_to and overlaps(
                active_from, active_to, window_start, window_end
            ):
                return TripConstraint(active_from=active_from, active_to=active_to)
            return None
        case "buffer":
            return BufferConstraint(
                type=config["type"],
                minutes=int(config.get("minutes", 0)),
                applies_to=config.get("applies_to", "all"),
            )
        case "no_meetings_after":
            return NoMeetingsAfterConstraint(
                time=config["time"],
                timezone=config.get("timezone") or "UTC",
            )
        case "override":
            if config.get("slot_start") and config.get("slot_end"):
                return OverrideConstraint(
                    reason=config.get("reason", "manual override"),
                    slot_start=parse_iso(config["slot_start"]),
                    slot_end=parse_iso(config["slot_end"]),
                    timezone=config.get("timezone") or "UTC",
                )
            return None
        case _:
            logger.debug("Skipping unknown constraint kind", kind=kind)
            return None


def vip_policies_to_constraints(rows: Iterable[dict[str, Any]]) -> list[VipOverrideConstraint]:
    """
    Turn VIP policy rows into ``vip_override`` constraints for the solver.

    Rows without a participant hash or with a non-numeric weight are
    skipped with a warning, like malformed constraint rows.
    """
    constraints = []
    for row in rows:
        try:
            constraints.append(_convert_vip_row(row))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(
                "Skipping malformed VIP policy",
                policy_id=row.get("policy_id"),
                error=str(e),
            )
    return constraints


def _convert_vip_row(row: dict[str, Any]) -> VipOverrideConstraint:
    participant_hash = row["participant_hash"]
    if not participant_hash or not isinstance(participant_hash, str):
        raise ValueError("participant_hash must be a non-empty string")

    conditions = row.get("conditions_json") or {}
    return VipOverrideConstraint(
        participant_hash=participant_hash,
        display_name=row.get("display_name") or "VIP",
        priority_weight=float(row.get("priority_weight", 1.0)),
        allow_after_hours=bool(conditions.get("allow_after_hours", False)),
        min_notice_hours=float(conditions.get("min_notice_hours") or 0),
        override_deep_work=bool(conditions.get("override_deep_work", False)),
    )
