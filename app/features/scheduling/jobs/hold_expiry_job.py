"""
Hold expiry sweep.

Periodically expires ``held`` holds past their deadline for each configured
user, deleting their placeholder events and expiring sessions whose holds
are all terminal. Re-running a sweep is a no-op for holds already handled.
"""

import asyncio
from datetime import datetime

from app.config import settings
from app.features.scheduling.services.orchestrator import (
    SchedulingOrchestrator,
    get_scheduling_orchestrator,
)
from app.infrastructure.observability.logging import get_logger
from app.utils.time_helpers import utc_now

logger = get_logger(__name__)

MAX_PROCESSING_TIME_MINUTES = 10
ERROR_RETRY_SECONDS = 300


class SweepMetrics:
    """Counters for one sweep run."""

    def __init__(self):
        self.reset()

    def reset(self):
        self.start_time = utc_now()
        self.users_processed = 0
        self.holds_expired = 0
        self.sessions_expired = 0
        self.errors: list[dict] = []
        self.total_duration_seconds = 0.0

    def record_user(self, holds_expired: int, sessions_expired: int):
        self.users_processed += 1
        self.holds_expired += holds_expired
        self.sessions_expired += sessions_expired

    def record_error(self, user_id: str, error: Exception):
        self.errors.append(
            {
                "user_id": user_id,
                "error": str(error),
                "error_type": type(error).__name__,
                "timestamp": utc_now().isoformat(),
            }
        )
        logger.warning(
            "Hold sweep failed for user",
            user_id=user_id,
            error=str(error),
            error_type=type(error).__name__,
            job_run="hold_expiry",
        )

    def finalize(self):
        self.total_duration_seconds = (utc_now() - self.start_time).total_seconds()

    def to_dict(self) -> dict:
        return {
            "job_run": "hold_expiry",
            "start_time": self.start_time.isoformat(),
            "total_duration_seconds": round(self.total_duration_seconds, 2),
            "users_processed": self.users_processed,
            "holds_expired": self.holds_expired,
            "sessions_expired": self.sessions_expired,
            "errors_count": len(self.errors),
        }


class HoldExpiryJob:
    """Runs ``expire_holds`` for every configured user; one user's failure does not stop the rest."""

    def __init__(self, orchestrator: SchedulingOrchestrator | None = None):
        self._orchestrator = orchestrator
        self.is_running = False
        self.last_run_time: datetime | None = None
        self.metrics = SweepMetrics()

    @property
    def orchestrator(self) -> SchedulingOrchestrator:
        if self._orchestrator is None:
            self._orchestrator = get_scheduling_orchestrator()
        return self._orchestrator

    async def run_once(self, user_ids: list[str] | None = None, now: datetime | None = None) -> dict:
        """
        Run a single sweep.

        Args:
            user_ids: Users to sweep; defaults to HOLD_SWEEP_USER_IDS
            now: Reference time; defaults to the current time

        Returns:
            Dict: Sweep metrics
        """
        if self.is_running:
            logger.warning("Hold expiry job already running, skipping this iteration")
            return {"skipped": True, "reason": "already_running"}

        users = settings.hold_sweep_user_ids() if user_ids is None else user_ids
        if not users:
            logger.info("Hold expiry job has no users configured")
            return {"skipped": True, "reason": "no_users"}

        try:
            self.is_running = True
            self.metrics.reset()

            await asyncio.wait_for(
                self._sweep(users, now or utc_now()),
                timeout=MAX_PROCESSING_TIME_MINUTES * 60,
            )

            self.metrics.finalize()
            self.last_run_time = utc_now()
            result = self.metrics.to_dict()
            logger.info("Hold expiry job completed", **result)
            return result

        except TimeoutError:
            logger.error("Hold expiry job timed out", timeout_minutes=MAX_PROCESSING_TIME_MINUTES)
            self.metrics.finalize()
            result = self.metrics.to_dict()
            result["job_error"] = f"Timed out after {MAX_PROCESSING_TIME_MINUTES} minutes"
            return result

        finally:
            self.is_running = False

    async def _sweep(self, user_ids: list[str], now: datetime) -> None:
        for user_id in user_ids:
            try:
                result = await self.orchestrator.expire_holds(user_id, now)
            except Exception as e:
                self.metrics.record_error(user_id, e)
                continue
            self.metrics.record_user(result.holds_expired, result.sessions_expired)


hold_expiry_job = HoldExpiryJob()


async def run_hold_expiry_job() -> dict:
    """Run a single iteration of the hold expiry sweep."""
    return await hold_expiry_job.run_once()


async def start_hold_expiry_scheduler() -> None:
    """Run the sweep every HOLD_SWEEP_INTERVAL_MINUTES until cancelled."""
    interval_seconds = settings.HOLD_SWEEP_INTERVAL_MINUTES * 60
    logger.info(
        "Starting hold expiry scheduler",
        interval_minutes=settings.HOLD_SWEEP_INTERVAL_MINUTES,
        user_count=len(settings.hold_sweep_user_ids()),
    )

    while True:
        try:
            await run_hold_expiry_job()
            await asyncio.sleep(interval_seconds)
        except Exception as e:
            logger.error(
                "Error in hold expiry scheduler", error=str(e), error_type=type(e).__name__
            )
            await asyncio.sleep(ERROR_RETRY_SECONDS)


if __name__ == "__main__":
    asyncio.run(start_hold_expiry_scheduler())
