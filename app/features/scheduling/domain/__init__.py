"""
Domain subpackage for the scheduling feature.
"""

from .constraints import (
    BufferConstraint,
    NoMeetingsAfterConstraint,
    OverrideConstraint,
    SolverConstraint,
    TripConstraint,
    VipOverrideConstraint,
    WorkingHoursConstraint,
    convert_to_solver_constraints,
    vip_policies_to_constraints,
)
from .models import (
    BusyInterval,
    Hold,
    HoldStatus,
    ScoredCandidate,
    SchedulingHistoryEntry,
    SchedulingOutcome,
    SchedulingParams,
    SchedulingSession,
    SessionStatus,
    SolverInput,
    SolverResult,
    StoredCandidate,
    VipPolicy,
    candidate_sort_key,
    transition_session,
)

__all__ = [
    "BufferConstraint",
    "BusyInterval",
    "Hold",
    "HoldStatus",
    "NoMeetingsAfterConstraint",
    "OverrideConstraint",
    "ScoredCandidate",
    "SchedulingHistoryEntry",
    "SchedulingOutcome",
    "SchedulingParams",
    "SchedulingSession",
    "SessionStatus",
    "SolverConstraint",
    "SolverInput",
    "SolverResult",
    "StoredCandidate",
    "TripConstraint",
    "VipOverrideConstraint",
    "VipPolicy",
    "WorkingHoursConstraint",
    "candidate_sort_key",
    "convert_to_solver_constraints",
    "transition_session",
    "vip_policies_to_constraints",
]
