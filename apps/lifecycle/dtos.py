"""
Data Transfer Objects for reconcile results.

A reconcile pass either finishes (nothing more to do until the next trigger) or
asks to be run again after a delay. Failures are raised, not returned.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any


class ReconcileAction:
    """What a reconcile pass did."""

    NOT_FOUND = "not_found"
    COMPLETED = "completed"
    TASK_CREATED = "task_created"
    POLLING = "polling"
    TASK_FINISHED = "task_finished"
    LOCKED = "locked"


@dataclass
class ReconcileResult:
    """Outcome of one reconcile pass for a WorkloadInstance."""

    namespace: str
    name: str
    action: str
    requeue_after: float | None = None
    direction: str = ""
    phase: str = ""
    task_name: str = ""
    duration_ms: float = 0.0

    @property
    def done(self) -> bool:
        return self.requeue_after is None

    @property
    def outcome(self) -> str:
        return "done" if self.done else "requeue"

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["done"] = self.done
        return data
