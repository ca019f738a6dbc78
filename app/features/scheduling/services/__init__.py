"""
Service layer for the scheduling feature.
"""

from .orchestrator import (
    CommitResult,
    HoldSweepResult,
    SchedulingOrchestrator,
    close_scheduling_orchestrator,
    get_scheduling_orchestrator,
)

__all__ = [
    "CommitResult",
    "HoldSweepResult",
    "SchedulingOrchestrator",
    "close_scheduling_orchestrator",
    "get_scheduling_orchestrator",
]
