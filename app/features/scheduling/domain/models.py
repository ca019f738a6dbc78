"""
Domain models for the scheduling feature.

Lightweight dataclasses describing sessions, candidates, holds and the
fairness ledger. Each model knows how to convert itself to and from the
JSON shapes exchanged with the store actor and the write queue.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any, Literal

from app.features.scheduling.domain.constraints import SolverConstraint
from app.features.scheduling.errors import SessionStateError
from app.utils.time_helpers import parse_iso, parse_iso_optional, to_iso

SolverName = Literal["local", "remote"]


class SessionStatus(StrEnum):
    OPEN = "open"
    CANDIDATES_READY = "candidates_ready"
    COMMITTED = "committed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class HoldStatus(StrEnum):
    HELD = "held"
    COMMITTED = "committed"
    RELEASED = "released"
    EXPIRED = "expired"


SESSION_TRANSITIONS: dict[SessionStatus, frozenset[SessionStatus]] = {
    SessionStatus.OPEN: frozenset(
        {SessionStatus.CANDIDATES_READY, SessionStatus.CANCELLED, SessionStatus.EXPIRED}
    ),
    SessionStatus.CANDIDATES_READY: frozenset(
        {SessionStatus.COMMITTED, SessionStatus.CANCELLED, SessionStatus.EXPIRED}
    ),
    SessionStatus.COMMITTED: frozenset(),
    SessionStatus.CANCELLED: frozenset(),
    SessionStatus.EXPIRED: frozenset(),
}

TERMINAL_SESSION_STATUSES = frozenset(
    {SessionStatus.COMMITTED, SessionStatus.CANCELLED, SessionStatus.EXPIRED}
)


def transition_session(current: SessionStatus, target: SessionStatus) -> SessionStatus:
    """Validate a session status change against the transition table."""
    current = SessionStatus(current)
    target = SessionStatus(target)
    if target not in SESSION_TRANSITIONS[current]:
        raise SessionStateError(
            f"Invalid session transition: '{current}' -> '{target}'", status=str(current)
        )
    return target


@dataclass(frozen=True, slots=True)
class BusyInterval:
    """Occupied range for one or more accounts, from the availability query."""

    start: datetime
    end: datetime
    account_ids: tuple[str, ...]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BusyInterval:
        return cls(
            start=parse_iso(data["start"]),
            end=parse_iso(data["end"]),
            account_ids=tuple(data.get("account_ids", [])),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "start": to_iso(self.start),
            "end": to_iso(self.end),
            "account_ids": list(self.account_ids),
        }


@dataclass(frozen=True, slots=True)
class ScoredCandidate:
    start: datetime
    end: datetime
    score: float
    explanation: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ScoredCandidate:
        return cls(
            start=parse_iso(data["start"]),
            end=parse_iso(data["end"]),
            score=data["score"],
            explanation=data.get("explanation", ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "start": to_iso(self.start),
            "end": to_iso(self.end),
            "score": self.score,
            "explanation": self.explanation,
        }


def candidate_sort_key(candidate: ScoredCandidate | StoredCandidate) -> tuple[float, datetime]:
    """Score descending, then start ascending."""
    return (-candidate.score, candidate.start)


@dataclass(frozen=True, slots=True)
class SolverInput:
    window_start: datetime
    window_end: datetime
    duration_minutes: int
    busy_intervals: tuple[BusyInterval, ...]
    required_account_ids: tuple[str, ...]
    constraints: tuple[SolverConstraint, ...] = ()
    participant_hashes: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        """Wire shape sent to the remote solver."""
        return {
            "windowStart": to_iso(self.window_start),
            "windowEnd": to_iso(self.window_end),
            "durationMinutes": self.duration_minutes,
            "busyIntervals": [b.to_dict() for b in self.busy_intervals],
            "requiredAccountIds": list(self.required_account_ids),
            "constraints": [c.to_dict() for c in self.constraints],
            "participantHashes": list(self.participant_hashes),
        }


@dataclass(frozen=True, slots=True)
class SolverResult:
    candidates: list[ScoredCandidate]
    solver_used: SolverName
    solver_time_ms: int


@dataclass(frozen=True, slots=True)
class StoredCandidate:
    candidate_id: str
    session_id: str
    start: datetime
    end: datetime
    score: float
    explanation: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StoredCandidate:
        return cls(
            candidate_id=data["candidate_id"],
            session_id=data["session_id"],
            start=parse_iso(data["start"]),
            end=parse_iso(data["end"]),
            score=data["score"],
            explanation=data.get("explanation", ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "candidate_id": self.candidate_id,
            "session_id": self.session_id,
            "start": to_iso(self.start),
            "end": to_iso(self.end),
            "score": self.score,
            "explanation": self.explanation,
        }


@dataclass(frozen=True, slots=True)
class Hold:
    """
    Tentative placeholder for one candidate on one account.

    ``provider_event_id`` stays None until the placeholder write succeeds.
    ``candidate_start``/``candidate_end`` record the held window when known.
    """

    hold_id: str
    session_id: str
    account_id: str
    provider_event_id: str | None
    expires_at: datetime
    status: HoldStatus
    candidate_start: datetime | None = None
    candidate_end: datetime | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Hold:
        return cls(
            hold_id=data["hold_id"],
            session_id=data["session_id"],
            account_id=data["account_id"],
            provider_event_id=data.get("provider_event_id"),
            expires_at=parse_iso(data["expires_at"]),
            status=HoldStatus(data["status"]),
            candidate_start=parse_iso_optional(data.get("candidate_start")),
            candidate_end=parse_iso_optional(data.get("candidate_end")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "hold_id": self.hold_id,
            "session_id": self.session_id,
            "account_id": self.account_id,
            "provider_event_id": self.provider_event_id,
            "expires_at": to_iso(self.expires_at),
            "status": str(self.status),
            "candidate_start": to_iso(self.candidate_start) if self.candidate_start else None,
            "candidate_end": to_iso(self.candidate_end) if self.candidate_end else None,
        }


@dataclass(frozen=True, slots=True)
class SchedulingParams:
    """Caller input for one scheduling negotiation."""

    user_id: str
    title: str
    duration_minutes: int
    window_start: datetime
    window_end: datetime
    required_account_ids: tuple[str, ...]
    max_candidates: int = 5
    # None means the default 24h timeout; 0 skips hold creation
    hold_timeout_ms: int | None = None
    hold_duration_hours: float | None = None
    target_calendar_id: str | None = None
    participant_hashes: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SchedulingParams:
        return cls(
            user_id=data["user_id"],
            title=data["title"],
            duration_minutes=int(data["duration_minutes"]),
            window_start=parse_iso(data["window_start"]),
            window_end=parse_iso(data["window_end"]),
            required_account_ids=tuple(data.get("required_account_ids", [])),
            max_candidates=int(data.get("max_candidates", 5)),
            hold_timeout_ms=data.get("hold_timeout_ms"),
            hold_duration_hours=data.get("hold_duration_hours"),
            target_calendar_id=data.get("target_calendar_id"),
            participant_hashes=tuple(data.get("participant_hashes") or []),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "title": self.title,
            "duration_minutes": self.duration_minutes,
            "window_start": to_iso(self.window_start),
            "window_end": to_iso(self.window_end),
            "required_account_ids": list(self.required_account_ids),
            "max_candidates": self.max_candidates,
            "hold_timeout_ms": self.hold_timeout_ms,
            "hold_duration_hours": self.hold_duration_hours,
            "target_calendar_id": self.target_calendar_id,
            "participant_hashes": list(self.participant_hashes),
        }


@dataclass(frozen=True, slots=True)
class SchedulingSession:
    session_id: str
    status: SessionStatus
    params: SchedulingParams
    candidates: list[StoredCandidate]
    created_at: datetime
    committed_candidate_id: str | None = None
    committed_event_id: str | None = None
    holds: list[Hold] = field(default_factory=list)

    def find_candidate(self, candidate_id: str) -> StoredCandidate | None:
        return next((c for c in self.candidates if c.candidate_id == candidate_id), None)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_SESSION_STATUSES

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SchedulingSession:
        return cls(
            session_id=data["session_id"],
            status=SessionStatus(data["status"]),
            params=SchedulingParams.from_dict(data["params"]),
            candidates=[StoredCandidate.from_dict(c) for c in data.get("candidates", [])],
            created_at=parse_iso(data["created_at"]),
            committed_candidate_id=data.get("committed_candidate_id"),
            committed_event_id=data.get("committed_event_id"),
            holds=[Hold.from_dict(h) for h in data.get("holds") or []],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "status": str(self.status),
            "params": self.params.to_dict(),
            "candidates": [c.to_dict() for c in self.candidates],
            "created_at": to_iso(self.created_at),
            "committed_candidate_id": self.committed_candidate_id,
            "committed_event_id": self.committed_event_id,
            "holds": [h.to_dict() for h in self.holds],
        }


@dataclass(frozen=True, slots=True)
class VipPolicy:
    participant_hash: str
    display_name: str
    priority_weight: float


@dataclass(frozen=True, slots=True)
class SchedulingHistoryEntry:
    """Aggregated fairness ledger row for one participant."""

    participant_hash: str
    sessions_participated: int
    sessions_preferred: int
    last_session_ts: datetime | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SchedulingHistoryEntry:
        return cls(
            participant_hash=data["participant_hash"],
            sessions_participated=int(data.get("sessions_participated", 0)),
            sessions_preferred=int(data.get("sessions_preferred", 0)),
            last_session_ts=parse_iso_optional(data.get("last_session_ts")),
        )


@dataclass(frozen=True, slots=True)
class SchedulingOutcome:
    """Who got their preferred slot in one committed session."""

    session_id: str
    participant_hash: str
    got_preferred: bool
    scheduled_ts: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "participant_hash": self.participant_hash,
            "got_preferred": self.got_preferred,
            "scheduled_ts": to_iso(self.scheduled_ts),
        }
