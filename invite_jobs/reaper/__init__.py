"""
Reaper module.
Contains the stale-lock reaper for recovering abandoned jobs.
"""

from invite_jobs.reaper.main import Reaper, run

__all__ = ["Reaper", "run"]
