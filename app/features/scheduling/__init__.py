"""
Scheduling feature package.

This vertical slice keeps every layer of the meeting negotiation flow
co-located (domain models, solver, services, store clients, jobs and the
API router) so contributors can navigate the feature in one place.
"""

# Re-export the primary building blocks for easy access.
from .api.router import router as scheduling_router  # noqa: F401
from .jobs.hold_expiry_job import start_hold_expiry_scheduler  # noqa: F401
from .services.orchestrator import (  # noqa: F401
    SchedulingOrchestrator,
    close_scheduling_orchestrator,
    get_scheduling_orchestrator,
)
