"""
Scheduling API routes.

HTTP surface over the scheduling orchestrator. Every route is scoped to the
authenticated user (JWT ``sub``); the orchestrator is injected through
``get_scheduling_orchestrator`` so tests can override it.
"""

from fastapi import APIRouter, Depends, HTTPException, status

from app.auth.verify import auth_dependency
from app.features.scheduling.api.schemas import (
    CommitRequest,
    CommitResponse,
    CreateSessionRequest,
    ExtendHoldsRequest,
    ExtendHoldsResponse,
    HoldConflictItem,
    HoldConflictRequest,
    HoldConflictResponse,
    SessionResponse,
)
from app.features.scheduling.domain.models import SchedulingParams
from app.features.scheduling.errors import (
    CandidateNotFoundError,
    HoldExtensionError,
    HoldTimeoutError,
    InvalidHoldTransitionError,
    SchedulingError,
    SchedulingStoreError,
    SessionNotFoundError,
    SessionStateError,
    SessionValidationError,
)
from app.features.scheduling.repository.write_queue import WriteQueueError
from app.features.scheduling.services.orchestrator import (
    SchedulingOrchestrator,
    get_scheduling_orchestrator,
)
from app.infrastructure.observability.logging import get_logger
from app.security.hashing import HashingError, hash_participants
from app.utils.time_helpers import ensure_utc, utc_now

logger = get_logger(__name__)

router = APIRouter(prefix="/scheduling", tags=["scheduling"])

_STATUS_BY_ERROR: list[tuple[type[Exception], int]] = [
    (SessionValidationError, status.HTTP_400_BAD_REQUEST),
    (HoldTimeoutError, status.HTTP_400_BAD_REQUEST),
    (SessionNotFoundError, status.HTTP_404_NOT_FOUND),
    (CandidateNotFoundError, status.HTTP_404_NOT_FOUND),
    (SessionStateError, status.HTTP_409_CONFLICT),
    (InvalidHoldTransitionError, status.HTTP_409_CONFLICT),
    (HoldExtensionError, status.HTTP_409_CONFLICT),
    (SchedulingStoreError, status.HTTP_502_BAD_GATEWAY),
]


def _user_id(claims: dict) -> str:
    user_id = claims.get("sub")
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    return user_id


def _to_http_error(error: Exception, operation: str) -> HTTPException:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return HTTPException(status_code=status_code, detail=str(error))

    if isinstance(error, WriteQueueError):
        logger.error(f"Scheduling {operation} could not enqueue writes", error=str(error))
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Calendar write queue unavailable",
        )

    logger.error(
        f"Scheduling {operation} failed",
        error=str(error),
        error_type=type(error).__name__,
    )
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to {operation.replace('_', ' ')}",
    )


@router.post("/sessions", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def create_session(
    request: CreateSessionRequest,
    claims: dict = Depends(auth_dependency),
    orchestrator: SchedulingOrchestrator = Depends(get_scheduling_orchestrator),
):
    """Start a negotiation: solve for candidates and place tentative holds."""
    user_id = _user_id(claims)

    participant_hashes = request.participant_hashes or []
    if request.participant_emails:
        try:
            participant_hashes = hash_participants(request.participant_emails)
        except HashingError as e:
            logger.error("Participant hashing unavailable", error=str(e))
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Participant hashing is not configured",
            ) from e

    params = SchedulingParams(
        user_id=user_id,
        title=request.title,
        duration_minutes=request.duration_minutes,
        window_start=ensure_utc(request.window_start),
        window_end=ensure_utc(request.window_end),
        required_account_ids=tuple(request.required_account_ids),
        max_candidates=request.max_candidates,
        hold_timeout_ms=request.hold_timeout_ms,
        hold_duration_hours=request.hold_duration_hours,
        target_calendar_id=request.target_calendar_id,
        participant_hashes=tuple(participant_hashes),
    )

    try:
        session = await orchestrator.create_session(params)
    except (SchedulingError, WriteQueueError) as e:
        raise _to_http_error(e, "create_session") from e

    return SessionResponse.from_domain(session, utc_now())


@router.get("/sessions/{session_id}", response_model=SessionResponse)
async def get_session(
    session_id: str,
    claims: dict = Depends(auth_dependency),
    orchestrator: SchedulingOrchestrator = Depends(get_scheduling_orchestrator),
):
    """Current session state with candidates and holds."""
    user_id = _user_id(claims)
    try:
        session = await orchestrator.get_candidates(user_id, session_id)
    except SchedulingError as e:
        raise _to_http_error(e, "get_session") from e

    return SessionResponse.from_domain(session, utc_now())


@router.post("/sessions/{session_id}/commit", response_model=CommitResponse)
async def commit_candidate(
    session_id: str,
    request: CommitRequest,
    claims: dict = Depends(auth_dependency),
    orchestrator: SchedulingOrchestrator = Depends(get_scheduling_orchestrator),
):
    user_id = _user_id(claims)
    try:
        result = await orchestrator.commit_candidate(user_id, session_id, request.candidate_id)
    except (SchedulingError, WriteQueueError) as e:
        raise _to_http_error(e, "commit_candidate") from e

    return CommitResponse(
        event_id=result.event_id,
        session=SessionResponse.from_domain(result.session, utc_now()),
    )


@router.post("/sessions/{session_id}/cancel", response_model=SessionResponse)
async def cancel_session(
    session_id: str,
    claims: dict = Depends(auth_dependency),
    orchestrator: SchedulingOrchestrator = Depends(get_scheduling_orchestrator),
):
    user_id = _user_id(claims)
    try:
        session = await orchestrator.cancel_session(user_id, session_id)
    except (SchedulingError, WriteQueueError) as e:
        raise _to_http_error(e, "cancel_session") from e

    return SessionResponse.from_domain(session, utc_now())


@router.post("/sessions/{session_id}/holds/extend", response_model=ExtendHoldsResponse)
async def extend_holds(
    session_id: str,
    request: ExtendHoldsRequest,
    claims: dict = Depends(auth_dependency),
    orchestrator: SchedulingOrchestrator = Depends(get_scheduling_orchestrator),
):
    """Extend the session's active holds to now + duration_hours."""
    user_id = _user_id(claims)
    try:
        extended = await orchestrator.extend_session_holds(
            user_id, session_id, request.duration_hours
        )
    except SchedulingError as e:
        raise _to_http_error(e, "extend_holds") from e

    return ExtendHoldsResponse(session_id=session_id, extended=extended)


@router.post("/sessions/{session_id}/holds/conflicts", response_model=HoldConflictResponse)
async def find_hold_conflicts(
    session_id: str,
    request: HoldConflictRequest,
    claims: dict = Depends(auth_dependency),
    orchestrator: SchedulingOrchestrator = Depends(get_scheduling_orchestrator),
):
    """Active holds of the session that a proposed event would overlap."""
    user_id = _user_id(claims)
    try:
        conflicts = await orchestrator.find_hold_conflicts(
            user_id, session_id, ensure_utc(request.start), ensure_utc(request.end)
        )
    except SchedulingError as e:
        raise _to_http_error(e, "find_hold_conflicts") from e

    return HoldConflictResponse(conflicts=[HoldConflictItem.from_domain(c) for c in conflicts])
