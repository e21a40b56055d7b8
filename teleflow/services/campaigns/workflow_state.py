"""
In-process guard state for post-purchase workflows.

Two guard sets close the window between observing a purchase and committing
its follow-up:
- notified:  (campaign, user, product) keys that already started a workflow
- executing: (campaign, user) keys with a workflow currently in flight

Both are mutated synchronously (no awaits), so a check-and-mark is atomic on
the event loop. Nothing here is persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Set, Tuple


class WorkflowStatus(str, Enum):
    IDLE = "idle"
    AWAITING_WORKFLOW = "awaiting_workflow"
    WAITING = "waiting"
    SENDING = "sending"
    DONE = "done"
    FAILED = "failed"


TERMINAL_STATUSES = (WorkflowStatus.DONE, WorkflowStatus.FAILED)

NotifiedKey = Tuple[str, str, str]
ExecutingKey = Tuple[str, str]


@dataclass
class WorkflowRun:
    campaign_id: str
    user_id: str
    product_id: str
    status: WorkflowStatus = WorkflowStatus.AWAITING_WORKFLOW
    recipient: Optional[str] = None
    message_id: Optional[str] = None
    error: Optional[str] = None
    started_at: datetime = field(default_factory=datetime.utcnow)
    finished_at: Optional[datetime] = None

    @property
    def key(self) -> NotifiedKey:
        return (self.campaign_id, self.user_id, self.product_id)

    @property
    def is_finished(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def finish(self, status: WorkflowStatus, error: Optional[str] = None) -> None:
        self.status = status
        self.error = error
        self.finished_at = datetime.utcnow()


class WorkflowStateStore:
    """Guard sets and run records owned by one workflow engine."""

    def __init__(self):
        self.notified: Set[NotifiedKey] = set()
        self.executing: Set[ExecutingKey] = set()
        self.runs: Dict[NotifiedKey, WorkflowRun] = {}

    def try_claim(self, campaign_id: str, user_id: str, product_id: str) -> Optional[WorkflowRun]:
        """Mark both guards and register a run, or return None when already claimed."""
        notified_key = (campaign_id, user_id, product_id)
        executing_key = (campaign_id, user_id)
        if notified_key in self.notified or executing_key in self.executing:
            return None

        self.notified.add(notified_key)
        self.executing.add(executing_key)
        run = WorkflowRun(campaign_id=campaign_id, user_id=user_id, product_id=product_id)
        self.runs[notified_key] = run
        return run

    def release(self, campaign_id: str, user_id: str) -> None:
        self.executing.discard((campaign_id, user_id))

    def is_executing(self, campaign_id: str, user_id: str) -> bool:
        return (campaign_id, user_id) in self.executing

    def was_notified(self, campaign_id: str, user_id: str, product_id: str) -> bool:
        return (campaign_id, user_id, product_id) in self.notified

    def runs_for(self, campaign_id: str) -> List[WorkflowRun]:
        return [run for run in self.runs.values() if run.campaign_id == campaign_id]

    def clear(self) -> None:
        self.notified.clear()
        self.executing.clear()
        self.runs.clear()
