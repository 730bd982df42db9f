"""
Scheduler module: cycle driver, task queue and scheduled jobs.
"""
from .cycle import MonitoringScheduler, CycleReport
from .task_queue import TaskQueue
from .jobs import setup_scheduler, shutdown_scheduler, backfill_unprocessed

__all__ = [
    "MonitoringScheduler",
    "CycleReport",
    "TaskQueue",
    "setup_scheduler",
    "shutdown_scheduler",
    "backfill_unprocessed",
]
