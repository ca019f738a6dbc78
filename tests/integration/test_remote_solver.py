import json

import httpx
import pytest

from app.features.scheduling.domain.models import BusyInterval, SolverInput
from app.features.scheduling.errors import RemoteSolverError
from app.features.scheduling.solver.strategies import RemoteSolver
from app.utils.time_helpers import parse_iso

SOLVER_URL = "https://solver.test/solve"


def _input() -> SolverInput:
    return SolverInput(
        window_start=parse_iso("2026-03-02T08:00:00Z"),
        window_end=parse_iso("2026-03-06T18:00:00Z"),
        duration_minutes=60,
        busy_intervals=(
            BusyInterval(parse_iso("2026-03-02T09:00:00Z"), parse_iso("2026-03-02T09:30:00Z"), ("acc-1",)),
        ),
        required_account_ids=("acc-1",),
        participant_hashes=("p-1", "p-2", "p-3", "p-4"),
    )


def _candidate(hour: int, score: int) -> dict:
    return {
        "start": f"2026-03-03T{hour:02d}:00:00Z",
        "end": f"2026-03-03T{hour + 1:02d}:00:00Z",
        "score": score,
        "explanation": "remote",
    }


@pytest.mark.asyncio
async def test_remote_solver_success(httpx_mock):
    solver = RemoteSolver(SOLVER_URL)
    httpx_mock.add_response(
        method="POST",
        url=SOLVER_URL,
        json={
            "candidates": [_candidate(10, 40), _candidate(11, 30), _candidate(12, 20)],
            "solver_time_ms": 42,
        },
    )

    result = await solver.solve(_input(), max_candidates=2)
    await solver.close()

    assert result.solver_used == "remote"
    assert result.solver_time_ms == 42
    assert [c.score for c in result.candidates] == [40, 30]
    assert result.candidates[0].start == parse_iso("2026-03-03T10:00:00Z")

    body = json.loads(httpx_mock.get_request().content)
    assert body["maxCandidates"] == 2
    assert body["input"]["windowStart"] == "2026-03-02T08:00:00Z"
    assert body["input"]["durationMinutes"] == 60
    assert body["input"]["busyIntervals"] == [
        {"start": "2026-03-02T09:00:00Z", "end": "2026-03-02T09:30:00Z", "account_ids": ["acc-1"]}
    ]
    assert body["input"]["participantHashes"] == ["p-1", "p-2", "p-3", "p-4"]


@pytest.mark.asyncio
async def test_remote_solver_orders_before_truncating(httpx_mock):
    solver = RemoteSolver(SOLVER_URL)
    httpx_mock.add_response(
        method="POST",
        url=SOLVER_URL,
        json={"candidates": [_candidate(12, 5), _candidate(14, 40), _candidate(10, 40)]},
    )

    result = await solver.solve(_input(), max_candidates=2)
    await solver.close()

    assert [(c.start, c.score) for c in result.candidates] == [
        (parse_iso("2026-03-03T10:00:00Z"), 40),
        (parse_iso("2026-03-03T14:00:00Z"), 40),
    ]


@pytest.mark.asyncio
async def test_remote_solver_http_error(httpx_mock):
    solver = RemoteSolver(SOLVER_URL)
    httpx_mock.add_response(method="POST", url=SOLVER_URL, status_code=500, text="boom")

    with pytest.raises(RemoteSolverError, match="HTTP 500") as exc:
        await solver.solve(_input())
    await solver.close()

    assert exc.value.status_code == 500
    assert exc.value.recoverable is True


@pytest.mark.asyncio
async def test_remote_solver_missing_candidates(httpx_mock):
    solver = RemoteSolver(SOLVER_URL)
    httpx_mock.add_response(method="POST", url=SOLVER_URL, json={"result": []})

    with pytest.raises(RemoteSolverError, match="missing candidates array"):
        await solver.solve(_input())
    await solver.close()


@pytest.mark.asyncio
async def test_remote_solver_invalid_json(httpx_mock):
    solver = RemoteSolver(SOLVER_URL)
    httpx_mock.add_response(method="POST", url=SOLVER_URL, text="<html>oops</html>")

    with pytest.raises(RemoteSolverError, match="invalid JSON"):
        await solver.solve(_input())
    await solver.close()


@pytest.mark.asyncio
async def test_remote_solver_malformed_candidate(httpx_mock):
    solver = RemoteSolver(SOLVER_URL)
    httpx_mock.add_response(
        method="POST", url=SOLVER_URL, json={"candidates": [{"start": "2026-03-03T10:00:00Z"}]}
    )

    with pytest.raises(RemoteSolverError, match="malformed candidate"):
        await solver.solve(_input())
    await solver.close()


@pytest.mark.asyncio
async def test_remote_solver_timeout(httpx_mock):
    solver = RemoteSolver(SOLVER_URL, timeout=30)
    httpx_mock.add_exception(httpx.ReadTimeout("timed out"), method="POST", url=SOLVER_URL)

    with pytest.raises(RemoteSolverError, match="timed out after 30s"):
        await solver.solve(_input())
    await solver.close()


@pytest.mark.asyncio
async def test_remote_solver_connection_error(httpx_mock):
    solver = RemoteSolver(SOLVER_URL)
    httpx_mock.add_exception(httpx.ConnectError("refused"), method="POST", url=SOLVER_URL)

    with pytest.raises(RemoteSolverError, match="request failed"):
        await solver.solve(_input())
    await solver.close()
