"""
Slot solving for the scheduling feature.
"""

from .greedy import DEFAULT_MAX_CANDIDATES, greedy_solve, round_half_up
from .strategies import (
    LocalSolver,
    RemoteSolver,
    SchedulingSolver,
    create_remote_solver,
    select_solver,
)

__all__ = [
    "DEFAULT_MAX_CANDIDATES",
    "LocalSolver",
    "RemoteSolver",
    "SchedulingSolver",
    "create_remote_solver",
    "greedy_solve",
    "round_half_up",
    "select_solver",
]
