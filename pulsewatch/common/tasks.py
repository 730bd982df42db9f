"""
Messages passed between pipeline stages.

The Scraper submits ANALYZE tasks; the Analyzer submits GENERATE_ALERT
tasks when a direct alert attempt fails. scheduler.task_queue.TaskQueue
is the production dispatcher.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Protocol

from ..archivist.models import utc_now_naive

ANALYZE = "analyze"
GENERATE_ALERT = "generate_alert"


@dataclass
class PipelineTask:
    kind: str
    payload: Dict[str, Any]
    attempt: int = 0
    enqueued_at: datetime = field(default_factory=utc_now_naive)

    def describe(self) -> str:
        args = ", ".join(f"{k}={v}" for k, v in self.payload.items())
        return f"{self.kind}({args})"


class TaskDispatcher(Protocol):
    async def submit(self, task: PipelineTask) -> None: ...


def analyze_task(raw_content_id: int) -> PipelineTask:
    return PipelineTask(kind=ANALYZE, payload={"raw_content_id": raw_content_id})


def generate_alert_task(insight_id: int, profile_id: int, severity: str, title: str) -> PipelineTask:
    return PipelineTask(
        kind=GENERATE_ALERT,
        payload={
            "insight_id": insight_id,
            "profile_id": profile_id,
            "severity": severity,
            "title": title,
        },
    )
