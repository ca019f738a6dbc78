import json

import httpx
import pytest

from app.features.scheduling.domain.models import (
    BusyInterval,
    HoldStatus,
    SchedulingSession,
    SessionStatus,
    StoredCandidate,
)
from app.features.scheduling.errors import SchedulingStoreError, SessionNotFoundError
from app.features.scheduling.repository.scheduling_store import HttpSchedulingStore
from app.utils.time_helpers import parse_iso

FIXED_NOW = parse_iso("2026-03-01T12:00:00Z")

BASE_URL = "http://store.test"


def _url(operation: str) -> str:
    return f"{BASE_URL}/user-123/{operation}"


@pytest.mark.asyncio
async def test_compute_availability(httpx_mock):
    store = HttpSchedulingStore(BASE_URL + "/")
    httpx_mock.add_response(
        method="POST",
        url=_url("computeAvailability"),
        json={
            "busy_intervals": [
                {
                    "start": "2026-03-02T09:00:00Z",
                    "end": "2026-03-02T09:30:00Z",
                    "account_ids": ["acc-1"],
                }
            ]
        },
    )

    busy = await store.compute_availability(
        "user-123", parse_iso("2026-03-02T08:00:00Z"), parse_iso("2026-03-06T18:00:00Z"), ["acc-1"]
    )
    await store.close()

    assert busy == [
        BusyInterval(parse_iso("2026-03-02T09:00:00Z"), parse_iso("2026-03-02T09:30:00Z"), ("acc-1",))
    ]
    assert json.loads(httpx_mock.get_request().content) == {
        "start": "2026-03-02T08:00:00Z",
        "end": "2026-03-06T18:00:00Z",
        "accounts": ["acc-1"],
    }


@pytest.mark.asyncio
async def test_session_round_trip(httpx_mock, make_params):
    store = HttpSchedulingStore(BASE_URL)
    session = SchedulingSession(
        session_id="session_1",
        status=SessionStatus.CANDIDATES_READY,
        params=make_params(participant_hashes=("p-1",)),
        candidates=[
            StoredCandidate(
                "candidate_1",
                "session_1",
                parse_iso("2026-03-02T10:00:00Z"),
                parse_iso("2026-03-02T11:00:00Z"),
                27,
                "morning slot (+20)",
            )
        ],
        created_at=FIXED_NOW,
    )
    httpx_mock.add_response(method="POST", url=_url("storeSchedulingSession"), json={"ok": True})
    httpx_mock.add_response(
        method="POST", url=_url("getSchedulingSession"), json=session.to_dict()
    )

    await store.store_scheduling_session("user-123", session)
    loaded = await store.get_scheduling_session("user-123", "session_1")
    await store.close()

    assert loaded == session
    stored_body = json.loads(httpx_mock.get_requests()[0].content)
    assert stored_body["status"] == "candidates_ready"
    assert stored_body["params"]["window_start"] == "2026-03-02T08:00:00Z"


@pytest.mark.asyncio
async def test_missing_session_is_not_found(httpx_mock):
    store = HttpSchedulingStore(BASE_URL)
    httpx_mock.add_response(
        method="POST", url=_url("getSchedulingSession"), status_code=404, json={"error": "nope"}
    )

    with pytest.raises(SessionNotFoundError):
        await store.get_scheduling_session("user-123", "session_missing")
    await store.close()


@pytest.mark.asyncio
async def test_error_status_names_operation(httpx_mock):
    store = HttpSchedulingStore(BASE_URL)
    httpx_mock.add_response(
        method="POST", url=_url("listConstraints"), status_code=500, text="actor crashed"
    )

    with pytest.raises(SchedulingStoreError) as exc:
        await store.list_constraints("user-123")
    await store.close()

    assert exc.value.operation == "listConstraints"
    assert exc.value.status_code == 500
    assert "actor crashed" in str(exc.value)


@pytest.mark.asyncio
async def test_transport_error_is_store_error(httpx_mock):
    store = HttpSchedulingStore(BASE_URL)
    httpx_mock.add_exception(httpx.ConnectError("refused"), url=_url("getExpiredHolds"))

    with pytest.raises(SchedulingStoreError, match="getExpiredHolds request failed"):
        await store.get_expired_holds("user-123")
    await store.close()


@pytest.mark.asyncio
async def test_holds_and_extension(httpx_mock):
    store = HttpSchedulingStore(BASE_URL)
    hold_row = {
        "hold_id": "h1",
        "session_id": "session_1",
        "account_id": "acc-1",
        "provider_event_id": "gcal-1",
        "expires_at": "2026-03-02T12:00:00Z",
        "status": "held",
        "candidate_start": "2026-03-02T10:00:00Z",
        "candidate_end": "2026-03-02T11:00:00Z",
    }
    httpx_mock.add_response(method="POST", url=_url("getHoldsBySession"), json={"holds": [hold_row]})
    httpx_mock.add_response(method="POST", url=_url("extendHolds"), json={"extended": 1})
    httpx_mock.add_response(method="POST", url=_url("updateHoldStatus"), status_code=204)

    (hold,) = await store.get_holds_by_session("user-123", "session_1")
    extended = await store.extend_holds(
        "user-123", "session_1", [("h1", parse_iso("2026-03-04T12:00:00Z"))]
    )
    await store.update_hold_status("user-123", "h1", HoldStatus.EXPIRED)
    await store.close()

    assert hold.status == HoldStatus.HELD
    assert hold.provider_event_id == "gcal-1"
    assert extended == 1

    requests = httpx_mock.get_requests()
    assert json.loads(requests[1].content) == {
        "session_id": "session_1",
        "holds": [{"hold_id": "h1", "expires_at": "2026-03-04T12:00:00Z"}],
    }
    assert json.loads(requests[2].content) == {"hold_id": "h1", "status": "expired"}


@pytest.mark.asyncio
async def test_expire_session_flag(httpx_mock):
    store = HttpSchedulingStore(BASE_URL)
    httpx_mock.add_response(
        method="POST", url=_url("expireSessionIfAllHoldsTerminal"), json={"expired": True}
    )

    assert await store.expire_session_if_all_holds_terminal("user-123", "session_1") is True
    await store.close()
