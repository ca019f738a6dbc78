"""
Tests for the greedy slot solver.
"""

from app.features.scheduling.domain.constraints import (
    BufferConstraint,
    NoMeetingsAfterConstraint,
    OverrideConstraint,
    TripConstraint,
    VipOverrideConstraint,
    WorkingHoursConstraint,
)
from app.features.scheduling.domain.models import BusyInterval, SolverInput
from app.features.scheduling.solver.greedy import greedy_solve, round_half_up
from app.utils.time_helpers import parse_iso

WEEKDAYS = (1, 2, 3, 4, 5)


def _input(start, end, duration=60, busy=(), constraints=(), participants=(), accounts=("acc-1",)):
    return SolverInput(
        window_start=parse_iso(start),
        window_end=parse_iso(end),
        duration_minutes=duration,
        busy_intervals=tuple(busy),
        required_account_ids=tuple(accounts),
        constraints=tuple(constraints),
        participant_hashes=tuple(participants),
    )


def _busy(start, end, *accounts):
    return BusyInterval(start=parse_iso(start), end=parse_iso(end), account_ids=accounts or ("acc-1",))


def _starts(candidates):
    return [c.start for c in candidates]


def test_busy_overlap_excludes_slot_and_morning_slot_scores():
    solver_input = _input(
        "2026-03-02T08:00:00Z",
        "2026-03-06T18:00:00Z",
        busy=[_busy("2026-03-02T09:00:00Z", "2026-03-02T09:30:00Z")],
    )

    candidates = greedy_solve(solver_input, max_candidates=1000)
    by_start = {c.start: c for c in candidates}

    assert parse_iso("2026-03-02T09:00:00Z") not in by_start
    assert parse_iso("2026-03-02T08:30:00Z") not in by_start

    early = by_start[parse_iso("2026-03-02T08:00:00Z")]
    assert early.score == 22
    assert early.explanation == (
        "morning slot (+20), adjacent to 1 event(s) (-5), early in window (+7)"
    )
    assert len(candidates) == 209


def test_default_truncation_keeps_best_five():
    solver_input = _input(
        "2026-03-02T08:00:00Z",
        "2026-03-06T18:00:00Z",
        busy=[_busy("2026-03-02T09:00:00Z", "2026-03-02T09:30:00Z")],
    )

    candidates = greedy_solve(solver_input)

    assert _starts(candidates) == [
        parse_iso("2026-03-02T10:00:00Z"),
        parse_iso("2026-03-02T10:30:00Z"),
        parse_iso("2026-03-02T11:00:00Z"),
        parse_iso("2026-03-02T11:30:00Z"),
        parse_iso("2026-03-03T08:00:00Z"),
    ]
    assert [c.score for c in candidates] == [27, 27, 27, 27, 26]


def test_results_are_deterministic_and_ordered():
    solver_input = _input(
        "2026-03-02T06:00:00Z",
        "2026-03-04T20:00:00Z",
        duration=45,
        busy=[
            _busy("2026-03-02T10:00:00Z", "2026-03-02T11:00:00Z"),
            _busy("2026-03-03T14:00:00Z", "2026-03-03T15:30:00Z", "acc-2"),
        ],
        constraints=[WorkingHoursConstraint(days=WEEKDAYS, start_time="09:00", end_time="17:00")],
    )

    first = greedy_solve(solver_input, max_candidates=50)
    second = greedy_solve(solver_input, max_candidates=50)

    assert first == second
    for a, b in zip(first, first[1:]):
        assert a.score > b.score or (a.score == b.score and a.start <= b.start)


def test_busy_interval_of_non_required_account_does_not_exclude():
    solver_input = _input(
        "2026-03-02T10:00:00Z",
        "2026-03-02T11:00:00Z",
        busy=[_busy("2026-03-02T10:00:00Z", "2026-03-02T11:00:00Z", "acc-other")],
    )

    candidates = greedy_solve(solver_input)

    assert _starts(candidates) == [parse_iso("2026-03-02T10:00:00Z")]


def test_window_shorter_than_duration_yields_nothing():
    solver_input = _input("2026-03-02T10:00:00Z", "2026-03-02T10:45:00Z", duration=60)
    assert greedy_solve(solver_input) == []


def test_trip_excludes_slots_without_busy_data():
    solver_input = _input(
        "2026-03-02T08:00:00Z",
        "2026-03-02T14:00:00Z",
        constraints=[
            TripConstraint(
                active_from=parse_iso("2026-03-02T08:00:00Z"), active_to=parse_iso("2026-03-02T12:00:00Z")
            )
        ],
    )

    candidates = greedy_solve(solver_input, max_candidates=100)

    assert candidates
    assert all(c.start >= parse_iso("2026-03-02T12:00:00Z") for c in candidates)


def test_working_hours_evaluated_in_constraint_timezone():
    # 14:00Z is 09:00 in New York before the March DST switch
    solver_input = _input(
        "2026-03-02T13:00:00Z",
        "2026-03-02T15:00:00Z",
        constraints=[
            WorkingHoursConstraint(
                days=WEEKDAYS, start_time="09:00", end_time="17:00", timezone="America/New_York"
            )
        ],
    )

    candidates = greedy_solve(solver_input)

    assert [(c.start, c.score) for c in candidates] == [
        (parse_iso("2026-03-02T14:00:00Z"), 32),
        (parse_iso("2026-03-02T13:00:00Z"), 7),
        (parse_iso("2026-03-02T13:30:00Z"), 7),
    ]
    assert candidates[0].explanation.endswith("within working hours (+15)")
    assert candidates[1].explanation.endswith("outside working hours (-10)")


def test_working_hours_weekday_uses_local_date():
    # 03:00Z on Tuesday is still Monday evening in New York
    window = ("2026-03-03T03:00:00Z", "2026-03-03T04:00:00Z")

    monday_only = _input(
        *window,
        constraints=[
            WorkingHoursConstraint(
                days=(1,), start_time="09:00", end_time="17:00", timezone="America/New_York"
            )
        ],
    )
    tuesday_only = _input(
        *window,
        constraints=[
            WorkingHoursConstraint(
                days=(2,), start_time="09:00", end_time="17:00", timezone="America/New_York"
            )
        ],
    )

    assert "outside working hours (-10)" in greedy_solve(monday_only)[0].explanation
    assert "working hours" not in greedy_solve(tuesday_only)[0].explanation


def test_buffer_before_meeting():
    solver_input = _input(
        "2026-03-02T11:00:00Z",
        "2026-03-02T13:00:00Z",
        busy=[_busy("2026-03-02T10:00:00Z", "2026-03-02T11:00:00Z")],
        constraints=[BufferConstraint(type="travel", minutes=30)],
    )

    candidates = greedy_solve(solver_input)

    assert [(c.start, c.score) for c in candidates] == [
        (parse_iso("2026-03-02T11:30:00Z"), 37),
        (parse_iso("2026-03-02T12:00:00Z"), 27),
        (parse_iso("2026-03-02T11:00:00Z"), 17),
    ]
    assert candidates[0].explanation.endswith("buffer time respected (+10)")
    assert candidates[-1].explanation.endswith("insufficient buffer time (-5)")


def test_cooldown_buffer_checks_time_after_slot():
    solver_input = _input(
        "2026-03-02T12:00:00Z",
        "2026-03-02T13:00:00Z",
        busy=[_busy("2026-03-02T13:10:00Z", "2026-03-02T14:00:00Z", "acc-2")],
        constraints=[BufferConstraint(type="cooldown", minutes=15)],
    )

    (candidate,) = greedy_solve(solver_input)

    assert candidate.explanation.endswith("insufficient buffer time (-5)")


def test_daily_cutoff_penalizes_late_starts():
    solver_input = _input(
        "2026-03-02T16:00:00Z",
        "2026-03-02T19:00:00Z",
        constraints=[NoMeetingsAfterConstraint(time="17:00")],
    )

    candidates = greedy_solve(solver_input, max_candidates=10)
    by_start = {c.start: c for c in candidates}

    assert by_start[parse_iso("2026-03-02T16:30:00Z")].score == 17
    late = by_start[parse_iso("2026-03-02T17:00:00Z")]
    assert late.score == -13
    assert late.explanation == (
        "evening/early slot (+0), early in window (+7), after 17:00 cutoff (-20)"
    )


def test_vip_reverses_after_hours_penalty_and_adds_priority():
    constraints = [
        WorkingHoursConstraint(days=WEEKDAYS, start_time="09:00", end_time="17:00"),
        VipOverrideConstraint(
            participant_hash="p-vip",
            display_name="Board Chair",
            priority_weight=2.0,
            allow_after_hours=True,
        ),
    ]

    with_vip = _input(
        "2026-03-02T18:00:00Z", "2026-03-02T19:00:00Z", constraints=constraints, participants=["p-vip"]
    )
    without_vip = _input(
        "2026-03-02T18:00:00Z", "2026-03-02T19:00:00Z", constraints=constraints, participants=["p-x"]
    )

    (vip_candidate,) = greedy_solve(with_vip)
    (plain_candidate,) = greedy_solve(without_vip)

    assert vip_candidate.score == 32
    assert vip_candidate.explanation == (
        "evening/early slot (+0), early in window (+7), outside working hours (-10), "
        "VIP after-hours override: Board Chair (+15), VIP priority: Board Chair (+20)"
    )
    assert plain_candidate.score == -3


def test_vip_without_after_hours_keeps_penalty():
    constraints = [
        WorkingHoursConstraint(days=WEEKDAYS, start_time="09:00", end_time="17:00"),
        VipOverrideConstraint(participant_hash="p-a", display_name="A", priority_weight=1.2),
        VipOverrideConstraint(participant_hash="p-b", display_name="B", priority_weight=1.55),
    ]
    solver_input = _input(
        "2026-03-02T18:00:00Z",
        "2026-03-02T19:00:00Z",
        constraints=constraints,
        participants=["p-a", "p-b"],
    )

    (candidate,) = greedy_solve(solver_input)

    # highest weight wins: round(1.55 * 10) == 16
    assert candidate.score == 7 - 10 + 16
    assert candidate.explanation.endswith("VIP priority: B (+16)")


def test_override_waives_working_hours_penalty():
    solver_input = _input(
        "2026-03-02T18:00:00Z",
        "2026-03-02T19:00:00Z",
        constraints=[
            WorkingHoursConstraint(days=WEEKDAYS, start_time="09:00", end_time="17:00"),
            OverrideConstraint(
                reason="Customer escalation",
                slot_start=parse_iso("2026-03-02T18:00:00Z"),
                slot_end=parse_iso("2026-03-02T20:00:00Z"),
            ),
        ],
    )

    (candidate,) = greedy_solve(solver_input)

    assert candidate.score == 7
    assert candidate.explanation.endswith("working hours override: Customer escalation (+0)")


def test_round_half_up():
    assert round_half_up(2.5) == 3
    assert round_half_up(14.5) == 15
    assert round_half_up(0.49) == 0
    assert round_half_up(-2.5) == -2
