"""
Scheduling API request and response models.
"""

from datetime import datetime

from pydantic import BaseModel, Field, model_validator

from app.features.scheduling.domain.models import Hold, SchedulingSession, StoredCandidate
from app.features.scheduling.services.holds import HoldConflict, is_approaching_expiry


class CreateSessionRequest(BaseModel):
    """Request for starting a scheduling negotiation."""

    title: str = Field(..., min_length=1, max_length=200, description="Meeting title")
    duration_minutes: int = Field(..., description="Meeting length (15-480 minutes)")
    window_start: datetime = Field(..., description="Earliest acceptable start")
    window_end: datetime = Field(..., description="Latest acceptable end")
    required_account_ids: list[str] = Field(..., description="Accounts that must all be free")
    max_candidates: int = Field(default=5, ge=1, le=50, description="Candidates to return")
    hold_timeout_ms: int | None = Field(
        default=None, ge=0, description="Hold lifetime in ms; 0 disables holds (default 24h)"
    )
    hold_duration_hours: float | None = Field(
        default=None, description="Hold lifetime in hours (1-72); overrides hold_timeout_ms"
    )
    target_calendar_id: str | None = Field(default=None, description="Calendar for holds")
    participant_hashes: list[str] | None = Field(
        default=None, description="Pre-hashed participants, organizer first"
    )
    participant_emails: list[str] | None = Field(
        default=None, description="Participant emails, hashed server-side; organizer first"
    )

    @model_validator(mode="after")
    def _one_participant_source(self) -> "CreateSessionRequest":
        if self.participant_hashes and self.participant_emails:
            raise ValueError("Provide participant_hashes or participant_emails, not both")
        return self


class CommitRequest(BaseModel):
    candidate_id: str = Field(..., min_length=1)


class ExtendHoldsRequest(BaseModel):
    duration_hours: float = Field(..., description="New hold lifetime from now (1-72 hours)")


class HoldConflictRequest(BaseModel):
    start: datetime
    end: datetime


class CandidateResponse(BaseModel):
    candidate_id: str
    start: datetime
    end: datetime
    score: float
    explanation: str

    @classmethod
    def from_domain(cls, candidate: StoredCandidate) -> "CandidateResponse":
        return cls(
            candidate_id=candidate.candidate_id,
            start=candidate.start,
            end=candidate.end,
            score=candidate.score,
            explanation=candidate.explanation,
        )


class HoldResponse(BaseModel):
    hold_id: str
    account_id: str
    status: str
    expires_at: datetime
    provider_event_id: str | None = None
    candidate_start: datetime | None = None
    candidate_end: datetime | None = None
    approaching_expiry: bool = False

    @classmethod
    def from_domain(cls, hold: Hold, now: datetime) -> "HoldResponse":
        return cls(
            hold_id=hold.hold_id,
            account_id=hold.account_id,
            status=str(hold.status),
            expires_at=hold.expires_at,
            provider_event_id=hold.provider_event_id,
            candidate_start=hold.candidate_start,
            candidate_end=hold.candidate_end,
            approaching_expiry=is_approaching_expiry(hold, now),
        )


class SessionResponse(BaseModel):
    session_id: str
    status: str
    title: str
    duration_minutes: int
    window_start: datetime
    window_end: datetime
    created_at: datetime
    candidates: list[CandidateResponse]
    holds: list[HoldResponse]
    committed_candidate_id: str | None = None
    committed_event_id: str | None = None

    @classmethod
    def from_domain(cls, session: SchedulingSession, now: datetime) -> "SessionResponse":
        return cls(
            session_id=session.session_id,
            status=str(session.status),
            title=session.params.title,
            duration_minutes=session.params.duration_minutes,
            window_start=session.params.window_start,
            window_end=session.params.window_end,
            created_at=session.created_at,
            candidates=[CandidateResponse.from_domain(c) for c in session.candidates],
            holds=[HoldResponse.from_domain(h, now) for h in session.holds],
            committed_candidate_id=session.committed_candidate_id,
            committed_event_id=session.committed_event_id,
        )


class CommitResponse(BaseModel):
    event_id: str
    session: SessionResponse


class ExtendHoldsResponse(BaseModel):
    session_id: str
    extended: int


class HoldConflictItem(BaseModel):
    hold_id: str
    session_id: str
    hold_start: datetime
    hold_end: datetime

    @classmethod
    def from_domain(cls, conflict: HoldConflict) -> "HoldConflictItem":
        return cls(
            hold_id=conflict.hold_id,
            session_id=conflict.session_id,
            hold_start=conflict.hold_start,
            hold_end=conflict.hold_end,
        )


class HoldConflictResponse(BaseModel):
    conflicts: list[HoldConflictItem]
