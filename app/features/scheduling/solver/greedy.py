"""
Greedy slot solver.

Enumerates slots aligned to a 30-minute step from the window start, drops
slots that overlap a busy interval of any required account or any trip,
and scores the survivors by summing independent components:

    time of day       08-12 UTC +20, 12-17 UTC +10, otherwise +0
    adjacency         -5 per busy interval ending/starting < 30 min away
    early in window   max(0, 7 - whole days since window start)
    working hours     +15 covered, -10 outside, 0 when no rule applies that day
    buffers           +10 all satisfied, -5 any violated
    daily cutoff      -20 when the slot starts at/after a no-meetings-after time
    VIP override      reverses the working-hours penalty for after-hours VIPs,
                      and always adds round(priority_weight * 10)

Results are sorted by score descending then start ascending and truncated.
The solver is a pure function: same input, same ordered output.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.features.scheduling.domain.constraints import (
    BufferConstraint,
    NoMeetingsAfterConstraint,
    OverrideConstraint,
    SolverConstraint,
    TripConstraint,
    VipOverrideConstraint,
    WorkingHoursConstraint,
)
from app.features.scheduling.domain.models import (
    BusyInterval,
    ScoredCandidate,
    SolverInput,
    candidate_sort_key,
)
from app.infrastructure.observability.logging import get_logger
from app.utils.time_helpers import overlaps

logger = get_logger(__name__)

SLOT_STEP = timedelta(minutes=30)
ADJACENCY_THRESHOLD = timedelta(minutes=30)
DEFAULT_MAX_CANDIDATES = 5
MINUTES_PER_DAY = 24 * 60

CONSTRAINT_SCORES = {
    "morning": 20,
    "afternoon": 10,
    "adjacency_penalty": -5,
    "early_window_max": 7,
    "working_hours_bonus": 15,
    "working_hours_penalty": -10,
    "buffer_satisfied": 10,
    "buffer_violated": -5,
    "no_meetings_after_penalty": -20,
    "vip_after_hours_bonus": 5,
    "vip_priority_multiplier": 10,
}


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _signed(delta: int) -> str:
    return f"+{delta}" if delta >= 0 else str(delta)


def _parse_hhmm(value: str) -> int:
    hours, minutes = value.split(":", 1)
    return int(hours) * 60 + int(minutes)


@lru_cache(maxsize=64)
def _zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown constraint timezone, using UTC", timezone=name)
        return ZoneInfo("UTC")


@dataclass(slots=True)
class _ConstraintSet:
    """Constraints bucketed by kind once per solve."""

    working_hours: list[WorkingHoursConstraint] = field(default_factory=list)
    trips: list[TripConstraint] = field(default_factory=list)
    before_buffer: timedelta = timedelta(0)
    after_buffer: timedelta = timedelta(0)
    has_buffers: bool = False
    cutoffs: list[NoMeetingsAfterConstraint] = field(default_factory=list)
    overrides: list[OverrideConstraint] = field(default_factory=list)
    vips: list[VipOverrideConstraint] = field(default_factory=list)

    @classmethod
    def build(cls, constraints: tuple[SolverConstraint, ...]) -> _ConstraintSet:
        bucketed = cls()
        for constraint in constraints:
            match constraint.kind:
                case "working_hours":
                    bucketed.working_hours.append(constraint)
                case "trip":
                    bucketed.trips.append(constraint)
                case "buffer":
                    bucketed.has_buffers = True
                    gap = timedelta(minutes=constraint.minutes)
                    if constraint.direction == "before":
                        bucketed.before_buffer = max(bucketed.before_buffer, gap)
                    else:
                        bucketed.after_buffer = max(bucketed.after_buffer, gap)
                case "no_meetings_after":
                    bucketed.cutoffs.append(constraint)
                case "override":
                    bucketed.overrides.append(constraint)
                case "vip_override":
                    bucketed.vips.append(constraint)
        return bucketed


def greedy_solve(
    solver_input: SolverInput, max_candidates: int = DEFAULT_MAX_CANDIDATES
) -> list[ScoredCandidate]:
    """
    Enumerate, filter and score candidate slots.

    Complexity is O(slots x (busy + constraints)); a one-week window at
    30-minute steps is about 336 slots.

    Args:
        solver_input: Window, duration, busy intervals and constraints
        max_candidates: Maximum number of candidates to return

    Returns:
        Candidates sorted by score descending, start ascending
    """
    duration = timedelta(minutes=solver_input.duration_minutes)
    required = set(solver_input.required_account_ids)
    participants = set(solver_input.participant_hashes)
    constraints = _ConstraintSet.build(solver_input.constraints)

    candidates: list[ScoredCandidate] = []
    slot_start = solver_input.window_start

    while slot_start + duration <= solver_input.window_end:
        slot_end = slot_start + duration

        if not _is_excluded(
            slot_start, slot_end, solver_input.busy_intervals, required, constraints.trips
        ):
            score, explanation = score_slot(
                slot_start,
                slot_end,
                solver_input.window_start,
                solver_input.busy_intervals,
                constraints,
                participants,
            )
            candidates.append(
                ScoredCandidate(
                    start=slot_start, end=slot_end, score=score, explanation=explanation
                )
            )

        slot_start += SLOT_STEP

    candidates.sort(key=candidate_sort_key)
    return candidates[:max_candidates]


def _is_excluded(
    slot_start: datetime,
    slot_end: datetime,
    busy_intervals: tuple[BusyInterval, ...],
    required: set[str],
    trips: list[TripConstraint],
) -> bool:
    for busy in busy_intervals:
        if overlaps(slot_start, slot_end, busy.start, busy.end) and required.intersection(
            busy.account_ids
        ):
            return True

    # Trips exclude even when the busy data is missing them
    return any(overlaps(slot_start, slot_end, t.active_from, t.active_to) for t in trips)


def score_slot(
    slot_start: datetime,
    slot_end: datetime,
    window_start: datetime,
    busy_intervals: tuple[BusyInterval, ...],
    constraints: _ConstraintSet,
    participants: set[str],
) -> tuple[int, str]:
    """Sum the scoring components for one slot and explain each."""
    score = 0
    reasons: list[str] = []

    # Time of day, UTC hour of the slot start
    hour = slot_start.hour
    if 8 <= hour < 12:
        score += CONSTRAINT_SCORES["morning"]
        reasons.append(f"morning slot (+{CONSTRAINT_SCORES['morning']})")
    elif 12 <= hour < 17:
        score += CONSTRAINT_SCORES["afternoon"]
        reasons.append(f"afternoon slot (+{CONSTRAINT_SCORES['afternoon']})")
    else:
        reasons.append("evening/early slot (+0)")

    adjacent = 0
    for busy in busy_intervals:
        gap_before = slot_start - busy.end
        if timedelta(0) <= gap_before < ADJACENCY_THRESHOLD:
            adjacent += 1
        gap_after = busy.start - slot_end
        if timedelta(0) <= gap_after < ADJACENCY_THRESHOLD:
            adjacent += 1
    if adjacent:
        penalty = adjacent * CONSTRAINT_SCORES["adjacency_penalty"]
        score += penalty
        reasons.append(f"adjacent to {adjacent} event(s) ({penalty})")

    days_from_start = (slot_start - window_start) / timedelta(days=1)
    day_bonus = max(0, CONSTRAINT_SCORES["early_window_max"] - math.floor(days_from_start))
    if day_bonus:
        score += day_bonus
        reasons.append(f"early in window (+{day_bonus})")

    wh_delta, wh_reason, outside_hours = _score_working_hours(slot_start, slot_end, constraints)
    score += wh_delta
    if wh_reason:
        reasons.append(wh_reason)

    if constraints.has_buffers:
        delta, reason = _score_buffers(slot_start, slot_end, busy_intervals, constraints)
        score += delta
        reasons.append(reason)

    cutoff = _violated_cutoff(slot_start, constraints.cutoffs)
    if cutoff is not None:
        penalty = CONSTRAINT_SCORES["no_meetings_after_penalty"]
        score += penalty
        reasons.append(f"after {cutoff.time} cutoff ({penalty})")

    vip_delta, vip_reasons = _score_vip_override(constraints.vips, participants, outside_hours)
    score += vip_delta
    reasons.extend(vip_reasons)

    return score, ", ".join(reasons)


def _working_hours_window(
    constraint: WorkingHoursConstraint, slot_start: datetime, slot_end: datetime
) -> tuple[bool, bool]:
    """Return (applies to the slot's local weekday, fully covers the slot)."""
    zone = _zone(constraint.timezone)
    local_start = slot_start.astimezone(zone)
    weekday = local_start.isoweekday() % 7  # 0=Sunday
    if weekday not in constraint.days:
        return False, False

    local_end = slot_end.astimezone(zone)
    start_minutes = local_start.hour * 60 + local_start.minute
    day_offset = (local_end.date() - local_start.date()).days
    end_minutes = day_offset * MINUTES_PER_DAY + local_end.hour * 60 + local_end.minute

    covers = start_minutes >= _parse_hhmm(constraint.start_time) and end_minutes <= _parse_hhmm(
        constraint.end_time
    )
    return True, covers


def _score_working_hours(
    slot_start: datetime, slot_end: datetime, constraints: _ConstraintSet
) -> tuple[int, str | None, bool]:
    """Working-hours delta, explanation and whether the outside-hours penalty applied."""
    if not constraints.working_hours:
        return 0, None, False

    any_applies = False
    for constraint in constraints.working_hours:
        applies, covers = _working_hours_window(constraint, slot_start, slot_end)
        if covers:
            bonus = CONSTRAINT_SCORES["working_hours_bonus"]
            return bonus, f"within working hours (+{bonus})", False
        any_applies = any_applies or applies

    if not any_applies:
        return 0, None, False

    for override in constraints.overrides:
        if override.slot_start <= slot_start and slot_end <= override.slot_end:
            return 0, f"working hours override: {override.reason} (+0)", False

    penalty = CONSTRAINT_SCORES["working_hours_penalty"]
    return penalty, f"outside working hours ({penalty})", True


def _score_buffers(
    slot_start: datetime,
    slot_end: datetime,
    busy_intervals: tuple[BusyInterval, ...],
    constraints: _ConstraintSet,
) -> tuple[int, str]:
    violated = False
    for busy in busy_intervals:
        if busy.end <= slot_start and slot_start - busy.end < constraints.before_buffer:
            violated = True
            break
        if busy.start >= slot_end and busy.start - slot_end < constraints.after_buffer:
            violated = True
            break

    if violated:
        penalty = CONSTRAINT_SCORES["buffer_violated"]
        return penalty, f"insufficient buffer time ({penalty})"
    bonus = CONSTRAINT_SCORES["buffer_satisfied"]
    return bonus, f"buffer time respected (+{bonus})"


def _violated_cutoff(
    slot_start: datetime, cutoffs: list[NoMeetingsAfterConstraint]
) -> NoMeetingsAfterConstraint | None:
    """Earliest daily cutoff the slot start falls at or after, if any."""
    violated = None
    for cutoff in cutoffs:
        local = slot_start.astimezone(_zone(cutoff.timezone))
        cutoff_minutes = _parse_hhmm(cutoff.time)
        if local.hour * 60 + local.minute >= cutoff_minutes:
            if violated is None or cutoff_minutes < _parse_hhmm(violated.time):
                violated = cutoff
    return violated


def _score_vip_override(
    vips: list[VipOverrideConstraint], participants: set[str], outside_hours: bool
) -> tuple[int, list[str]]:
    if not vips or not participants:
        return 0, []

    matching = [v for v in vips if v.participant_hash in participants]
    if not matching:
        return 0, []

    best = matching[0]
    for vip in matching[1:]:
        if vip.priority_weight > best.priority_weight:
            best = vip

    delta = 0
    reasons = []
    if outside_hours and best.allow_after_hours:
        reversal = abs(CONSTRAINT_SCORES["working_hours_penalty"]) + CONSTRAINT_SCORES[
            "vip_after_hours_bonus"
        ]
        delta += reversal
        reasons.append(f"VIP after-hours override: {best.display_name} (+{reversal})")

    priority = round_half_up(best.priority_weight * CONSTRAINT_SCORES["vip_priority_multiplier"])
    delta += priority
    reasons.append(f"VIP priority: {best.display_name} ({_signed(priority)})")
    return delta, reasons
