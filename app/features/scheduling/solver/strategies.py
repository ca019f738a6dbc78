"""
Solver strategies.

Two interchangeable strategies share one contract,
``await solver.solve(input, max_candidates) -> SolverResult``:

- ``LocalSolver`` runs the greedy solver in-process and always succeeds.
- ``RemoteSolver`` POSTs ``{"input": ..., "maxCandidates": n}`` to a
  configured endpoint under a deadline. Any failure raises
  ``RemoteSolverError``; it never substitutes data. Falling back to the
  local solver is the orchestrator's job.
"""

import asyncio
import time
from typing import Any, Literal, Protocol

import httpx

from app.config import Settings, settings
from app.features.scheduling.domain.models import (
    ScoredCandidate,
    SolverInput,
    SolverResult,
    candidate_sort_key,
)
from app.features.scheduling.errors import RemoteSolverError
from app.features.scheduling.solver.greedy import DEFAULT_MAX_CANDIDATES, greedy_solve
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

# Selection thresholds, exclusive: exactly 3 participants / 5 constraints stays local
REMOTE_PARTICIPANT_THRESHOLD = 3
REMOTE_CONSTRAINT_THRESHOLD = 5
REMOTE_SOLVER_TIMEOUT = 30.0  # seconds


class SchedulingSolver(Protocol):
    async def solve(
        self, solver_input: SolverInput, max_candidates: int = DEFAULT_MAX_CANDIDATES
    ) -> SolverResult: ...


class LocalSolver:
    """In-process greedy solver."""

    async def solve(
        self, solver_input: SolverInput, max_candidates: int = DEFAULT_MAX_CANDIDATES
    ) -> SolverResult:
        started = time.perf_counter()
        candidates = greedy_solve(solver_input, max_candidates)
        elapsed_ms = int((time.perf_counter() - started) * 1000)
        return SolverResult(candidates=candidates, solver_used="local", solver_time_ms=elapsed_ms)


class RemoteSolver:
    """
    Remote solver reached over HTTP.

    The response must be a JSON object with a ``candidates`` list; each item
    carries ``start``, ``end``, ``score`` and ``explanation``.
    ``solver_time_ms`` is optional and defaults to the measured round trip.
    """

    def __init__(
        self,
        endpoint: str,
        timeout: float = REMOTE_SOLVER_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ):
        self.endpoint = endpoint
        self.timeout = timeout
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))

    async def close(self) -> None:
        await self._client.aclose()

    async def solve(
        self, solver_input: SolverInput, max_candidates: int = DEFAULT_MAX_CANDIDATES
    ) -> SolverResult:
        body = {"input": solver_input.to_dict(), "maxCandidates": max_candidates}
        started = time.perf_counter()

        try:
            response = await asyncio.wait_for(
                self._client.post(
                    self.endpoint,
                    json=body,
                    headers={"Content-Type": "application/json"},
                ),
                timeout=self.timeout,
            )
        except (TimeoutError, httpx.TimeoutException) as e:
            raise RemoteSolverError(f"External solver timed out after {self.timeout:g}s") from e
        except httpx.RequestError as e:
            raise RemoteSolverError(f"External solver request failed: {e}") from e

        elapsed_ms = int((time.perf_counter() - started) * 1000)
        data = self._handle_response(response)

        try:
            candidates = [ScoredCandidate.from_dict(item) for item in data["candidates"]]
        except (KeyError, TypeError, ValueError) as e:
            raise RemoteSolverError(f"External solver returned malformed candidate: {e}") from e

        logger.debug(
            "Remote solver responded",
            endpoint=self.endpoint,
            candidate_count=len(candidates),
            elapsed_ms=elapsed_ms,
        )

        return SolverResult(
            candidates=sorted(candidates, key=candidate_sort_key)[:max_candidates],
            solver_used="remote",
            solver_time_ms=int(data.get("solver_time_ms", elapsed_ms)),
        )

    def _handle_response(self, response: httpx.Response) -> dict[str, Any]:
        if not response.is_success:
            raise RemoteSolverError(
                f"External solver returned HTTP {response.status_code}: "
                f"{response.text[:200] if response.text else ''}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise RemoteSolverError(f"External solver returned invalid JSON: {e}") from e

        if not isinstance(data, dict) or not isinstance(data.get("candidates"), list):
            raise RemoteSolverError("External solver response missing candidates array")

        return data


def select_solver(solver_input: SolverInput) -> Literal["local", "remote"]:
    """Pick remote for large participant sets or heavy constraint lists."""
    if (
        len(solver_input.participant_hashes) > REMOTE_PARTICIPANT_THRESHOLD
        or len(solver_input.constraints) > REMOTE_CONSTRAINT_THRESHOLD
    ):
        return "remote"
    return "local"


def create_remote_solver(config: Settings = settings) -> RemoteSolver | None:
    """Build the remote solver from settings, or None when no endpoint is configured."""
    endpoint = config.solver_endpoint()
    if endpoint is None:
        return None
    return RemoteSolver(endpoint, timeout=config.REMOTE_SOLVER_TIMEOUT)
