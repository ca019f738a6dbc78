"""
Client for the per-user store actor.

All durable scheduling state (sessions, candidates, holds, constraints,
VIP policies, fairness history, canonical events) lives behind one actor
per user, which serializes access to that user's data. ``SchedulingStore``
is the typed surface the orchestrator depends on; ``HttpSchedulingStore``
reaches the actor with JSON RPC over HTTP:

    POST {USER_GRAPH_URL}/{user_id}/{operation}
"""

from datetime import datetime
from typing import Any, Protocol

import httpx

from app.config import Settings, settings
from app.features.scheduling.domain.models import (
    BusyInterval,
    Hold,
    HoldStatus,
    SchedulingHistoryEntry,
    SchedulingOutcome,
    SchedulingSession,
)
from app.features.scheduling.errors import SchedulingStoreError, SessionNotFoundError
from app.infrastructure.observability.logging import get_logger
from app.utils.time_helpers import to_iso

logger = get_logger(__name__)


class SchedulingStore(Protocol):
    """One async method per store actor operation, always scoped by ``user_id``."""

    async def compute_availability(
        self, user_id: str, start: datetime, end: datetime, accounts: list[str]
    ) -> list[BusyInterval]: ...

    async def list_constraints(self, user_id: str) -> list[dict[str, Any]]: ...

    async def list_vip_policies(self, user_id: str) -> list[dict[str, Any]]: ...

    async def get_scheduling_history(
        self, user_id: str, participant_hashes: list[str]
    ) -> list[SchedulingHistoryEntry]: ...

    async def record_scheduling_history(
        self, user_id: str, entries: list[SchedulingOutcome]
    ) -> None: ...

    async def store_scheduling_session(self, user_id: str, session: SchedulingSession) -> None: ...

    async def get_scheduling_session(self, user_id: str, session_id: str) -> SchedulingSession: ...

    async def commit_scheduling_session(
        self, user_id: str, session_id: str, candidate_id: str, event_id: str
    ) -> None: ...

    async def cancel_scheduling_session(self, user_id: str, session_id: str) -> None: ...

    async def store_holds(self, user_id: str, holds: list[Hold]) -> None: ...

    async def get_holds_by_session(self, user_id: str, session_id: str) -> list[Hold]: ...

    async def release_session_holds(self, user_id: str, session_id: str) -> None: ...

    async def get_expired_holds(self, user_id: str) -> list[Hold]: ...

    async def update_hold_status(self, user_id: str, hold_id: str, status: HoldStatus) -> None: ...

    async def extend_holds(
        self, user_id: str, session_id: str, extensions: list[tuple[str, datetime]]
    ) -> int: ...

    async def expire_session_if_all_holds_terminal(self, user_id: str, session_id: str) -> bool: ...

    async def upsert_canonical_event(
        self, user_id: str, event: dict[str, Any], source: str = "system"
    ) -> None: ...


class HttpSchedulingStore:
    """
    ``SchedulingStore`` over HTTP.

    Every non-2xx response and every transport error becomes a
    ``SchedulingStoreError`` naming the operation, except a 404 from
    ``getSchedulingSession`` which is a ``SessionNotFoundError``.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            limits=httpx.Limits(max_keepalive_connections=20, max_connections=50),
        )

    @classmethod
    def from_settings(cls, config: Settings = settings) -> "HttpSchedulingStore":
        client_config = config.get_store_client_config()
        return cls(client_config["base_url"], timeout=client_config["timeout"])

    async def close(self) -> None:
        await self._client.aclose()

    async def _call(self, user_id: str, operation: str, body: dict[str, Any]) -> dict[str, Any]:
        url = f"{self.base_url}/{user_id}/{operation}"
        try:
            response = await self._client.post(url, json=body)
        except httpx.RequestError as e:
            logger.error(
                "Store request failed",
                operation=operation,
                user_id=user_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise SchedulingStoreError(
                f"{operation} request failed: {e}", operation=operation
            ) from e

        return self._handle_response(response, operation)

    def _handle_response(self, response: httpx.Response, operation: str) -> dict[str, Any]:
        """
        Validate a store response.

        Args:
            response: HTTP response from the store actor
            operation: Operation name for logging and errors

        Returns:
            dict: Parsed JSON body, empty for an empty body

        Raises:
            SchedulingStoreError: If the store returned an error or bad JSON
        """
        if response.is_success:
            try:
                return response.json() if response.text else {}
            except ValueError as e:
                raise SchedulingStoreError(
                    f"{operation} returned invalid JSON: {e}", operation=operation
                ) from e

        logger.error(
            f"Store {operation} failed",
            status_code=response.status_code,
            response_text=response.text[:200] if response.text else "",
        )
        raise SchedulingStoreError(
            f"{operation} failed ({response.status_code}): {response.text[:200]}",
            operation=operation,
            status_code=response.status_code,
        )

    async def compute_availability(
        self, user_id: str, start: datetime, end: datetime, accounts: list[str]
    ) -> list[BusyInterval]:
        data = await self._call(
            user_id,
            "computeAvailability",
            {"start": to_iso(start), "end": to_iso(end), "accounts": accounts},
        )
        return [BusyInterval.from_dict(b) for b in data.get("busy_intervals", [])]

    async def list_constraints(self, user_id: str) -> list[dict[str, Any]]:
        data = await self._call(user_id, "listConstraints", {})
        return data.get("items", [])

    async def list_vip_policies(self, user_id: str) -> list[dict[str, Any]]:
        data = await self._call(user_id, "listVipPolicies", {})
        return data.get("items", [])

    async def get_scheduling_history(
        self, user_id: str, participant_hashes: list[str]
    ) -> list[SchedulingHistoryEntry]:
        data = await self._call(
            user_id, "getSchedulingHistory", {"participant_hashes": participant_hashes}
        )
        return [SchedulingHistoryEntry.from_dict(h) for h in data.get("history", [])]

    async def record_scheduling_history(
        self, user_id: str, entries: list[SchedulingOutcome]
    ) -> None:
        await self._call(
            user_id, "recordSchedulingHistory", {"entries": [e.to_dict() for e in entries]}
        )

    async def store_scheduling_session(self, user_id: str, session: SchedulingSession) -> None:
        await self._call(user_id, "storeSchedulingSession", session.to_dict())

    async def get_scheduling_session(self, user_id: str, session_id: str) -> SchedulingSession:
        try:
            data = await self._call(user_id, "getSchedulingSession", {"session_id": session_id})
        except SchedulingStoreError as e:
            if e.status_code == 404:
                raise SessionNotFoundError(session_id) from e
            raise
        return SchedulingSession.from_dict(data)

    async def commit_scheduling_session(
        self, user_id: str, session_id: str, candidate_id: str, event_id: str
    ) -> None:
        await self._call(
            user_id,
            "commitSchedulingSession",
            {"session_id": session_id, "candidate_id": candidate_id, "event_id": event_id},
        )

    async def cancel_scheduling_session(self, user_id: str, session_id: str) -> None:
        await self._call(user_id, "cancelSchedulingSession", {"session_id": session_id})

    async def store_holds(self, user_id: str, holds: list[Hold]) -> None:
        await self._call(user_id, "storeHolds", {"holds": [h.to_dict() for h in holds]})

    async def get_holds_by_session(self, user_id: str, session_id: str) -> list[Hold]:
        data = await self._call(user_id, "getHoldsBySession", {"session_id": session_id})
        return [Hold.from_dict(h) for h in data.get("holds", [])]

    async def release_session_holds(self, user_id: str, session_id: str) -> None:
        await self._call(user_id, "releaseSessionHolds", {"session_id": session_id})

    async def get_expired_holds(self, user_id: str) -> list[Hold]:
        data = await self._call(user_id, "getExpiredHolds", {})
        return [Hold.from_dict(h) for h in data.get("holds", [])]

    async def update_hold_status(self, user_id: str, hold_id: str, status: HoldStatus) -> None:
        await self._call(user_id, "updateHoldStatus", {"hold_id": hold_id, "status": str(status)})

    async def extend_holds(
        self, user_id: str, session_id: str, extensions: list[tuple[str, datetime]]
    ) -> int:
        data = await self._call(
            user_id,
            "extendHolds",
            {
                "session_id": session_id,
                "holds": [
                    {"hold_id": hold_id, "expires_at": to_iso(expires_at)}
                    for hold_id, expires_at in extensions
                ],
            },
        )
        return int(data.get("extended", 0))

    async def expire_session_if_all_holds_terminal(self, user_id: str, session_id: str) -> bool:
        data = await self._call(
            user_id, "expireSessionIfAllHoldsTerminal", {"session_id": session_id}
        )
        return bool(data.get("expired", False))

    async def upsert_canonical_event(
        self, user_id: str, event: dict[str, Any], source: str = "system"
    ) -> None:
        await self._call(user_id, "upsertCanonicalEvent", {"event": event, "source": source})
