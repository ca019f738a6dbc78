"""
Job runners for the scheduling feature.
"""

from .hold_expiry_job import run_hold_expiry_job, start_hold_expiry_scheduler

__all__ = ["run_hold_expiry_job", "start_hold_expiry_scheduler"]
