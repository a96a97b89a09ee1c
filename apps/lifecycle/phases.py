"""
Phase state machine for workload lifecycle checks.

Each WorkloadInstance runs two independent check directions (pre- and
post-deployment). Every direction moves through:

    NotStarted → Running → Succeeded | Failed

Succeeded and Failed are absorbing. NotStarted → Running only happens when a
CheckTask was created; Running → terminal only happens when a completed
CheckTask was observed. Nothing ever moves a terminal phase backwards.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.db import models

if TYPE_CHECKING:
    from apps.lifecycle.models import WorkloadInstance


class Direction(models.TextChoices):
    """Check directions, in execution order."""

    PRE = "pre", "pre-deployment"
    POST = "post", "post-deployment"


class WorkloadPhase(models.TextChoices):
    """Phase of one check direction on a WorkloadInstance."""

    NOT_STARTED = "NotStarted", "Not started"
    RUNNING = "Running", "Running"
    SUCCEEDED = "Succeeded", "Succeeded"
    FAILED = "Failed", "Failed"


class CheckTaskPhase(models.TextChoices):
    """Phase of a CheckTask, written by the external task executor."""

    PENDING = "Pending", "Pending"
    RUNNING = "Running", "Running"
    SUCCEEDED = "Succeeded", "Succeeded"
    FAILED = "Failed", "Failed"


TERMINAL_PHASES = frozenset({WorkloadPhase.SUCCEEDED, WorkloadPhase.FAILED})

TERMINAL_TASK_PHASES = frozenset({CheckTaskPhase.SUCCEEDED, CheckTaskPhase.FAILED})

# Allowed forward moves; same-state writes are always accepted.
ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    WorkloadPhase.NOT_STARTED: frozenset({WorkloadPhase.RUNNING}),
    WorkloadPhase.RUNNING: frozenset({WorkloadPhase.SUCCEEDED, WorkloadPhase.FAILED}),
    WorkloadPhase.SUCCEEDED: frozenset(),
    WorkloadPhase.FAILED: frozenset(),
}

DIRECTION_ORDER = [Direction.PRE, Direction.POST]


class InvalidPhaseTransition(Exception):
    """Raised when a phase change would skip a state or regress a terminal phase."""

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Invalid phase transition: {current} -> {target}")


def is_terminal(phase: str) -> bool:
    """Return True if the phase is Succeeded or Failed."""
    return phase in TERMINAL_PHASES


def is_task_terminal(phase: str) -> bool:
    """Return True if a CheckTask phase is Succeeded or Failed."""
    return phase in TERMINAL_TASK_PHASES


def transition(current: str, target: str, *, skip: bool = False) -> str:
    """
    Validate a phase change and return the new phase.

    Args:
        current: Phase currently recorded.
        target: Phase to move to.
        skip: Allow NotStarted → Failed. Used only when a direction is failed
            without ever running because an earlier direction failed.

    Raises:
        InvalidPhaseTransition: If the change is not allowed.
    """
    if current == target:
        return target
    if skip and current == WorkloadPhase.NOT_STARTED and target == WorkloadPhase.FAILED:
        return target
    if target not in ALLOWED_TRANSITIONS.get(current, frozenset()):
        raise InvalidPhaseTransition(current, target)
    return target


def phase_for_task_outcome(task_phase: str) -> str:
    """Map a completed CheckTask phase onto the WorkloadInstance phase it yields."""
    if task_phase == CheckTaskPhase.SUCCEEDED:
        return WorkloadPhase.SUCCEEDED
    if task_phase == CheckTaskPhase.FAILED:
        return WorkloadPhase.FAILED
    raise ValueError(f"CheckTask phase is not terminal: {task_phase}")


def is_instance_completed(pre_phase: str, post_phase: str) -> bool:
    """
    Completion predicate for a WorkloadInstance.

    Pre-deployment must be terminal, and either it failed (post-deployment never
    runs) or post-deployment is terminal too.
    """
    if not is_terminal(pre_phase):
        return False
    return pre_phase == WorkloadPhase.FAILED or is_terminal(post_phase)


def active_direction(instance: WorkloadInstance) -> Direction | None:
    """
    Return the direction the reconciler should work on, or None.

    Pre-deployment while it is not terminal; post-deployment once pre-deployment
    succeeded and post-deployment is not terminal yet.
    """
    pre_phase = instance.get_phase(Direction.PRE)
    if not is_terminal(pre_phase):
        return Direction.PRE
    if pre_phase == WorkloadPhase.SUCCEEDED and not is_terminal(instance.get_phase(Direction.POST)):
        return Direction.POST
    return None
