"""
Scheduling orchestrator.

Runs one negotiation from parameters to a committed canonical event:

    open -> candidates_ready -> committed | cancelled | expired

The orchestrator owns no state. Sessions, holds and events live behind the
user's store actor; placeholder writes go to the write queue. Availability
and event-store failures are fatal, while constraints, VIP policies and
fairness history are best-effort and degrade to empty data.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Any, TypeVar
from uuid import uuid4

from app.config import Settings, settings
from app.features.scheduling.domain.constraints import (
    convert_to_solver_constraints,
    vip_policies_to_constraints,
)
from app.features.scheduling.domain.models import (
    Hold,
    HoldStatus,
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
from app.features.scheduling.errors import (
    CandidateNotFoundError,
    SessionStateError,
    SessionValidationError,
)
from app.features.scheduling.repository.scheduling_store import HttpSchedulingStore, SchedulingStore
from app.features.scheduling.repository.write_queue import RedisWriteQueue, WriteQueue
from app.features.scheduling.services.fairness import (
    record_scheduling_outcome,
    rescore_candidates,
)
from app.features.scheduling.services.holds import (
    HoldConflict,
    build_hold_delete_message,
    build_hold_upsert_message,
    compute_extended_expiry,
    create_hold_record,
    detect_hold_conflicts,
    find_expired_holds,
    resolve_hold_timeout,
    transition_hold,
    validate_hold_duration_hours,
)
from app.features.scheduling.solver.strategies import (
    LocalSolver,
    RemoteSolver,
    SchedulingSolver,
    create_remote_solver,
    select_solver,
)
from app.infrastructure.observability.logging import get_logger
from app.utils.time_helpers import to_iso, utc_now

logger = get_logger(__name__)

T = TypeVar("T")

MIN_DURATION_MINUTES = 15
MAX_DURATION_MINUTES = 480


@dataclass(frozen=True, slots=True)
class CommitResult:
    event_id: str
    session: SchedulingSession


@dataclass(frozen=True, slots=True)
class HoldSweepResult:
    holds_expired: int
    sessions_expired: int


def validate_params(params: SchedulingParams) -> timedelta | None:
    """
    Reject unusable session parameters before any side effect.

    Returns:
        The resolved hold timeout, or None when holds are disabled

    Raises:
        SessionValidationError: For missing or out-of-range fields
        HoldTimeoutError: For a hold timeout or duration outside its bounds
    """
    if not params.user_id:
        raise SessionValidationError("user_id is required")
    if not params.title or not params.title.strip():
        raise SessionValidationError("title is required")
    if not MIN_DURATION_MINUTES <= params.duration_minutes <= MAX_DURATION_MINUTES:
        raise SessionValidationError(
            f"duration_minutes must be between {MIN_DURATION_MINUTES} and {MAX_DURATION_MINUTES}"
        )
    if params.window_start >= params.window_end:
        raise SessionValidationError("window_start must be before window_end")
    if not params.required_account_ids:
        raise SessionValidationError("At least one required_account_id is needed")
    if params.max_candidates < 1:
        raise SessionValidationError("max_candidates must be at least 1")

    return resolve_hold_timeout(params.hold_timeout_ms, params.hold_duration_hours)


def build_canonical_event(
    session: SchedulingSession, candidate: StoredCandidate, event_id: str, now: datetime
) -> dict[str, Any]:
    """Confirmed canonical event for the committed candidate; the organizer is the origin."""
    params = session.params
    origin_account = params.required_account_ids[0] if params.required_account_ids else "internal"
    timestamp = to_iso(now)
    return {
        "canonical_event_id": event_id,
        "origin_account_id": origin_account,
        "origin_event_id": f"scheduled_{session.session_id}",
        "title": params.title,
        "start": {"dateTime": to_iso(candidate.start)},
        "end": {"dateTime": to_iso(candidate.end)},
        "all_day": False,
        "status": "confirmed",
        "visibility": "default",
        "transparency": "opaque",
        "source": "system",
        "version": 1,
        "created_at": timestamp,
        "updated_at": timestamp,
    }


class SchedulingOrchestrator:
    """Session-level workflow over a store, a write queue and the solvers."""

    def __init__(
        self,
        store: SchedulingStore,
        write_queue: WriteQueue,
        remote_solver: SchedulingSolver | None = None,
        local_solver: SchedulingSolver | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.write_queue = write_queue
        self.remote_solver = remote_solver
        self.local_solver = local_solver or LocalSolver()
        self._clock = clock

    async def close(self) -> None:
        if isinstance(self.remote_solver, RemoteSolver):
            await self.remote_solver.close()
        if isinstance(self.store, HttpSchedulingStore):
            await self.store.close()
        if isinstance(self.write_queue, RedisWriteQueue):
            await self.write_queue.close()

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def create_session(self, params: SchedulingParams) -> SchedulingSession:
        """
        Validate, gather data, solve, persist, and place holds.

        Args:
            params: Caller input for the negotiation

        Returns:
            The new session, ``candidates_ready`` when any candidate was
            found, otherwise ``open``

        Raises:
            SessionValidationError / HoldTimeoutError: Before any side effect
            SchedulingStoreError: If availability or persistence fails
        """
        hold_timeout = validate_params(params)

        session_id = f"session_{uuid4().hex}"
        now = self._clock()
        user_id = params.user_id
        participants = list(params.participant_hashes)

        busy_intervals, constraint_rows, vip_rows, history = await asyncio.gather(
            self.store.compute_availability(
                user_id, params.window_start, params.window_end, list(params.required_account_ids)
            ),
            self._best_effort("list_constraints", user_id, self.store.list_constraints(user_id)),
            self._best_effort("list_vip_policies", user_id, self.store.list_vip_policies(user_id)),
            self._best_effort(
                "get_scheduling_history",
                user_id,
                self.store.get_scheduling_history(user_id, participants),
            )
            if participants
            else _empty(),
        )

        constraints = convert_to_solver_constraints(
            constraint_rows, params.window_start, params.window_end
        )
        vip_constraints = vip_policies_to_constraints(vip_rows)
        constraints.extend(vip_constraints)
        vip_policies = [
            VipPolicy(c.participant_hash, c.display_name, c.priority_weight)
            for c in vip_constraints
        ]

        solver_input = SolverInput(
            window_start=params.window_start,
            window_end=params.window_end,
            duration_minutes=params.duration_minutes,
            busy_intervals=tuple(busy_intervals),
            required_account_ids=tuple(params.required_account_ids),
            constraints=tuple(constraints),
            participant_hashes=tuple(participants),
        )
        result = await self._solve(solver_input, params.max_candidates)

        candidates = [
            StoredCandidate(
                candidate_id=f"candidate_{uuid4().hex}",
                session_id=session_id,
                start=c.start,
                end=c.end,
                score=c.score,
                explanation=c.explanation,
            )
            for c in result.candidates
        ]
        candidates = rescore_candidates(candidates, history, vip_policies, participants)

        status = SessionStatus.OPEN
        if candidates:
            status = transition_session(SessionStatus.OPEN, SessionStatus.CANDIDATES_READY)

        session = SchedulingSession(
            session_id=session_id,
            status=status,
            params=params,
            candidates=candidates,
            created_at=now,
        )
        await self.store.store_scheduling_session(user_id, session)

        holds: list[Hold] = []
        if candidates and hold_timeout is not None:
            holds = await self._create_holds(session, hold_timeout, now)

        logger.info(
            "Scheduling session created",
            session_id=session_id,
            user_id=user_id,
            status=str(status),
            solver=result.solver_used,
            solver_time_ms=result.solver_time_ms,
            candidate_count=len(candidates),
            hold_count=len(holds),
        )
        return replace(session, holds=holds)

    async def get_candidates(self, user_id: str, session_id: str) -> SchedulingSession:
        """Read the persisted session with its current holds."""
        session = await self.store.get_scheduling_session(user_id, session_id)
        holds = await self.store.get_holds_by_session(user_id, session_id)
        return replace(session, holds=holds)

    async def commit_candidate(
        self, user_id: str, session_id: str, candidate_id: str
    ) -> CommitResult:
        """
        Turn one candidate into a confirmed canonical event.

        Raises:
            SessionStateError: If the session is committed, cancelled or expired
            CandidateNotFoundError: If the candidate is not part of the session
        """
        session = await self.store.get_scheduling_session(user_id, session_id)

        if session.status == SessionStatus.COMMITTED:
            raise SessionStateError(
                f"Session {session_id} is already committed",
                session_id=session_id,
                status=str(session.status),
            )
        if session.status in (SessionStatus.CANCELLED, SessionStatus.EXPIRED):
            raise SessionStateError(
                f"Session {session_id} is {session.status}",
                session_id=session_id,
                status=str(session.status),
            )

        candidate = session.find_candidate(candidate_id)
        if candidate is None:
            raise CandidateNotFoundError(candidate_id, session_id)

        transition_session(session.status, SessionStatus.COMMITTED)

        await self._release_holds(user_id, session_id)

        event_id = f"event_{uuid4().hex}"
        now = self._clock()
        await self.store.upsert_canonical_event(
            user_id, build_canonical_event(session, candidate, event_id, now), source="system"
        )
        await self.store.commit_scheduling_session(user_id, session_id, candidate_id, event_id)

        participants = list(session.params.participant_hashes)
        if participants:
            outcomes = record_scheduling_outcome(
                session_id, participants, participants[0], candidate.start
            )
            await self.store.record_scheduling_history(user_id, outcomes)

        logger.info(
            "Scheduling session committed",
            session_id=session_id,
            user_id=user_id,
            candidate_id=candidate_id,
            event_id=event_id,
        )

        updated = await self.get_candidates(user_id, session_id)
        return CommitResult(event_id=event_id, session=updated)

    async def cancel_session(self, user_id: str, session_id: str) -> SchedulingSession:
        """Release every hold, then mark the session cancelled."""
        session = await self.store.get_scheduling_session(user_id, session_id)

        if session.status == SessionStatus.COMMITTED:
            raise SessionStateError(
                f"Session {session_id} is already committed",
                session_id=session_id,
                status=str(session.status),
            )
        if session.is_terminal:
            raise SessionStateError(
                f"Session {session_id} is {session.status}",
                session_id=session_id,
                status=str(session.status),
            )
        transition_session(session.status, SessionStatus.CANCELLED)

        await self._release_holds(user_id, session_id)
        await self.store.cancel_scheduling_session(user_id, session_id)

        logger.info("Scheduling session cancelled", session_id=session_id, user_id=user_id)
        return await self.get_candidates(user_id, session_id)

    # ------------------------------------------------------------------
    # Hold maintenance
    # ------------------------------------------------------------------

    async def expire_holds(self, user_id: str, now: datetime | None = None) -> HoldSweepResult:
        """
        Expire ``held`` holds past their deadline and delete their placeholders.

        Safe to re-run: holds already expired are no longer ``held`` and are skipped.
        """
        now = now or self._clock()
        expired = find_expired_holds(await self.store.get_expired_holds(user_id), now)
        if not expired:
            return HoldSweepResult(holds_expired=0, sessions_expired=0)

        messages = [
            message.to_dict()
            for message in (build_hold_delete_message(h) for h in expired)
            if message is not None
        ]
        if messages:
            await self.write_queue.send_batch(messages)

        for hold in expired:
            status = transition_hold(hold.status, HoldStatus.EXPIRED)
            await self.store.update_hold_status(user_id, hold.hold_id, status)

        sessions_expired = 0
        for session_id in sorted({h.session_id for h in expired}):
            if await self.store.expire_session_if_all_holds_terminal(user_id, session_id):
                sessions_expired += 1

        logger.info(
            "Expired scheduling holds",
            user_id=user_id,
            hold_count=len(expired),
            delete_count=len(messages),
            sessions_expired=sessions_expired,
        )
        return HoldSweepResult(holds_expired=len(expired), sessions_expired=sessions_expired)

    async def extend_session_holds(
        self,
        user_id: str,
        session_id: str,
        duration_hours: float,
        now: datetime | None = None,
    ) -> int:
        """Push every ``held`` hold of an active session to ``now + duration_hours``."""
        validate_hold_duration_hours(duration_hours)

        session = await self.store.get_scheduling_session(user_id, session_id)
        if session.is_terminal:
            raise SessionStateError(
                f"Session {session_id} is {session.status}",
                session_id=session_id,
                status=str(session.status),
            )

        now = now or self._clock()
        holds = await self.store.get_holds_by_session(user_id, session_id)
        extensions = [
            (hold.hold_id, compute_extended_expiry(hold, duration_hours, now))
            for hold in holds
            if hold.status == HoldStatus.HELD
        ]
        if not extensions:
            return 0

        extended = await self.store.extend_holds(user_id, session_id, extensions)
        logger.info(
            "Extended scheduling holds",
            session_id=session_id,
            user_id=user_id,
            hold_count=extended,
            duration_hours=duration_hours,
        )
        return extended

    async def find_hold_conflicts(
        self, user_id: str, session_id: str, start: datetime, end: datetime
    ) -> list[HoldConflict]:
        if start >= end:
            raise SessionValidationError("start must be before end")
        holds = await self.store.get_holds_by_session(user_id, session_id)
        return detect_hold_conflicts(start, end, holds)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _solve(self, solver_input: SolverInput, max_candidates: int) -> SolverResult:
        result = await self._run_solver(solver_input, max_candidates)
        # remote solvers make no ordering promise
        ordered = sorted(result.candidates, key=candidate_sort_key)[:max_candidates]
        return replace(result, candidates=ordered)

    async def _run_solver(self, solver_input: SolverInput, max_candidates: int) -> SolverResult:
        choice = select_solver(solver_input)

        if choice == "remote" and self.remote_solver is not None:
            try:
                return await self.remote_solver.solve(solver_input, max_candidates)
            except Exception as e:
                logger.warning(
                    "Remote solver failed, falling back to local",
                    error=str(e),
                    error_type=type(e).__name__,
                )

        return await self.local_solver.solve(solver_input, max_candidates)

    async def _best_effort(self, operation: str, user_id: str, call: Awaitable[list[T]]) -> list[T]:
        try:
            return await call
        except Exception as e:
            logger.warning(
                "Optional scheduling data unavailable, continuing without it",
                operation=operation,
                user_id=user_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return []

    async def _create_holds(
        self, session: SchedulingSession, timeout: timedelta, now: datetime
    ) -> list[Hold]:
        params = session.params
        timeout_ms = int(timeout / timedelta(milliseconds=1))
        holds: list[Hold] = []
        messages: list[dict[str, Any]] = []

        for candidate in session.candidates:
            for account_id in params.required_account_ids:
                hold = create_hold_record(
                    session.session_id,
                    account_id,
                    candidate.start,
                    candidate.end,
                    hold_timeout_ms=timeout_ms,
                    now=now,
                )
                holds.append(hold)
                calendar_id = params.target_calendar_id or f"primary_{account_id}"
                messages.append(build_hold_upsert_message(hold, params.title, calendar_id).to_dict())

        # Not transactional with the session: a failure here leaves
        # candidates_ready without holds
        await self.store.store_holds(params.user_id, holds)
        await self.write_queue.send_batch(messages)

        logger.info(
            "Scheduling holds created",
            session_id=session.session_id,
            hold_count=len(holds),
            expires_at=to_iso(now + timeout),
        )
        return holds

    async def _release_holds(self, user_id: str, session_id: str) -> None:
        holds = await self.store.get_holds_by_session(user_id, session_id)
        held = [h for h in holds if h.status == HoldStatus.HELD]

        messages = [
            message.to_dict()
            for message in (build_hold_delete_message(h) for h in held)
            if message is not None
        ]
        if messages:
            await self.write_queue.send_batch(messages)

        await self.store.release_session_holds(user_id, session_id)
        logger.info(
            "Scheduling holds released",
            session_id=session_id,
            hold_count=len(held),
            delete_count=len(messages),
        )


async def _empty() -> list:
    return []


def build_scheduling_orchestrator(config: Settings = settings) -> SchedulingOrchestrator:
    """Wire the production store, write queue and optional remote solver."""
    return SchedulingOrchestrator(
        store=HttpSchedulingStore.from_settings(config),
        write_queue=RedisWriteQueue.from_settings(config),
        remote_solver=create_remote_solver(config),
    )


_orchestrator: SchedulingOrchestrator | None = None


def get_scheduling_orchestrator() -> SchedulingOrchestrator:
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = build_scheduling_orchestrator()
    return _orchestrator


async def close_scheduling_orchestrator() -> None:
    global _orchestrator
    if _orchestrator is None:
        return
    await _orchestrator.close()
    _orchestrator = None
