"""
Runner module.
Contains the sweep loop, the dispatcher and the account handlers.
"""

from invite_jobs.worker.dispatcher import Dispatcher, JobHandler
from invite_jobs.worker.handlers import PanelClient, build_default_dispatcher
from invite_jobs.worker.main import Runner

__all__ = [
    "Dispatcher",
    "JobHandler",
    "PanelClient",
    "Runner",
    "build_default_dispatcher",
]
