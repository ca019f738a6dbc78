from dataclasses import replace
from datetime import UTC, datetime

import pytest

from app.auth.verify import auth_dependency
from app.features.scheduling.domain.models import (
    BusyInterval,
    HoldStatus,
    SchedulingParams,
    SessionStatus,
)
from app.features.scheduling.errors import (
    SchedulingStoreError,
    SessionNotFoundError,
    SessionStateError,
)
from app.features.scheduling.repository.write_queue import WriteQueueError
from app.features.scheduling.services.holds import transition_hold
from app.features.scheduling.services.orchestrator import SchedulingOrchestrator
from app.utils.time_helpers import parse_iso

FIXED_NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def auth_override():
    def _override():
        return {"sub": "user-123"}

    return _override


@pytest.fixture
def apply_auth_override(auth_override):
    def _apply(app):
        app.dependency_overrides[auth_dependency] = auth_override

    return _apply


class InMemorySchedulingStore:
    """Store actor stand-in keeping one user's data in dicts."""

    def __init__(self):
        self.busy_intervals: list[BusyInterval] = []
        self.constraint_rows: list[dict] = []
        self.vip_rows: list[dict] = []
        self.history = []
        self.recorded_history = []
        self.sessions = {}
        self.holds = {}
        self.events = []
        self.calls: list[str] = []
        self.failing: set[str] = set()

    def _record(self, operation: str) -> None:
        self.calls.append(operation)
        if operation in self.failing:
            raise SchedulingStoreError(f"{operation} failed (500): boom", operation, 500)

    async def compute_availability(self, user_id, start, end, accounts):
        self._record("compute_availability")
        return list(self.busy_intervals)

    async def list_constraints(self, user_id):
        self._record("list_constraints")
        return list(self.constraint_rows)

    async def list_vip_policies(self, user_id):
        self._record("list_vip_policies")
        return list(self.vip_rows)

    async def get_scheduling_history(self, user_id, participant_hashes):
        self._record("get_scheduling_history")
        return [h for h in self.history if h.participant_hash in participant_hashes]

    async def record_scheduling_history(self, user_id, entries):
        self._record("record_scheduling_history")
        self.recorded_history.extend(entries)

    async def store_scheduling_session(self, user_id, session):
        self._record("store_scheduling_session")
        self.sessions[session.session_id] = replace(session, holds=[])

    async def get_scheduling_session(self, user_id, session_id):
        self._record("get_scheduling_session")
        if session_id not in self.sessions:
            raise SessionNotFoundError(session_id)
        return self.sessions[session_id]

    async def commit_scheduling_session(self, user_id, session_id, candidate_id, event_id):
        self._record("commit_scheduling_session")
        self.sessions[session_id] = replace(
            self.sessions[session_id],
            status=SessionStatus.COMMITTED,
            committed_candidate_id=candidate_id,
            committed_event_id=event_id,
        )

    async def cancel_scheduling_session(self, user_id, session_id):
        self._record("cancel_scheduling_session")
        session = self.sessions[session_id]
        if session.is_terminal:
            raise SessionStateError(f"Session {session_id} is {session.status}")
        self.sessions[session_id] = replace(session, status=SessionStatus.CANCELLED)

    async def store_holds(self, user_id, holds):
        self._record("store_holds")
        for hold in holds:
            self.holds[hold.hold_id] = hold

    async def get_holds_by_session(self, user_id, session_id):
        self._record("get_holds_by_session")
        return [h for h in self.holds.values() if h.session_id == session_id]

    async def release_session_holds(self, user_id, session_id):
        self._record("release_session_holds")
        for hold_id, hold in list(self.holds.items()):
            if hold.session_id == session_id and hold.status == HoldStatus.HELD:
                self.holds[hold_id] = replace(hold, status=HoldStatus.RELEASED)

    async def get_expired_holds(self, user_id):
        self._record("get_expired_holds")
        return [h for h in self.holds.values() if h.status == HoldStatus.HELD]

    async def update_hold_status(self, user_id, hold_id, status):
        self._record("update_hold_status")
        hold = self.holds[hold_id]
        self.holds[hold_id] = replace(hold, status=transition_hold(hold.status, status))

    async def extend_holds(self, user_id, session_id, extensions):
        self._record("extend_holds")
        extended = 0
        for hold_id, expires_at in extensions:
            hold = self.holds.get(hold_id)
            if hold and hold.session_id == session_id and hold.status == HoldStatus.HELD:
                self.holds[hold_id] = replace(hold, expires_at=expires_at)
                extended += 1
        return extended

    async def expire_session_if_all_holds_terminal(self, user_id, session_id):
        self._record("expire_session_if_all_holds_terminal")
        session = self.sessions.get(session_id)
        if session is None or session.status != SessionStatus.CANDIDATES_READY:
            return False
        holds = [h for h in self.holds.values() if h.session_id == session_id]
        if any(h.status == HoldStatus.HELD for h in holds):
            return False
        self.sessions[session_id] = replace(session, status=SessionStatus.EXPIRED)
        return True

    async def upsert_canonical_event(self, user_id, event, source="system"):
        self._record("upsert_canonical_event")
        self.events.append((event, source))

    def set_provider_event(self, hold_id: str, provider_event_id: str) -> None:
        """Simulate the write consumer recording the created placeholder."""
        self.holds[hold_id] = replace(self.holds[hold_id], provider_event_id=provider_event_id)


class FakeWriteQueue:
    def __init__(self):
        self.batches: list[list[dict]] = []
        self.fail = False

    async def send_batch(self, messages):
        if self.fail:
            raise WriteQueueError("queue down")
        self.batches.append(list(messages))

    @property
    def messages(self) -> list[dict]:
        return [m for batch in self.batches for m in batch]


@pytest.fixture
def store():
    return InMemorySchedulingStore()


@pytest.fixture
def write_queue():
    return FakeWriteQueue()


@pytest.fixture
def orchestrator(store, write_queue):
    return SchedulingOrchestrator(store=store, write_queue=write_queue, clock=lambda: FIXED_NOW)


@pytest.fixture
def make_params():
    def _make(**overrides) -> SchedulingParams:
        values = {
            "user_id": "user-123",
            "title": "Quarterly review",
            "duration_minutes": 60,
            "window_start": parse_iso("2026-03-02T08:00:00Z"),
            "window_end": parse_iso("2026-03-06T18:00:00Z"),
            "required_account_ids": ("acc-1",),
        }
        values.update(overrides)
        return SchedulingParams(**values)

    return _make
