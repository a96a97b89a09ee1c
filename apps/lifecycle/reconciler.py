"""
WorkloadInstance reconciler.

Drives one WorkloadInstance through its pre- and post-deployment checks. Each
call to reconcile() is one pass:

1. Fetch the instance (gone → done).
2. Completed → done.
3. Pick the active direction (pre until terminal, then post if pre succeeded).
4. NotStarted: create a CheckTask, mark Running, emit "started", persist status,
   requeue after the polling delay.
5. Running: fetch the CheckTask. Still going → requeue. Completed → fold its
   outcome into the phase, delete the task, persist status, emit "finished",
   done. The next direction is picked up on the next trigger, never in the same
   pass.

The reconciler keeps no state between passes; everything lives in the store.
Task mutations always happen before the status write that records them, so a
crash in between is repaired by replaying the pass. Any failure aborts the pass
with ReconcileError and the caller retries from a fresh read.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Iterator

from django.conf import settings

from apps.lifecycle.dtos import ReconcileAction, ReconcileResult
from apps.lifecycle.events import AuditEventEmitter
from apps.lifecycle.models import CheckTask, EventType, WorkloadInstance
from apps.lifecycle.naming import CheckTaskFactory
from apps.lifecycle.phases import (
    Direction,
    WorkloadPhase,
    active_direction,
    phase_for_task_outcome,
)
from apps.lifecycle.signals import (
    SignalTags,
    emit_phase_transition,
    emit_reconcile_failed,
    emit_reconcile_started,
    emit_reconcile_succeeded,
)
from apps.lifecycle.store import (
    Deadline,
    DjangoObjectStore,
    ObjectNotFound,
    ObjectRef,
    ObjectStore,
)

logger = logging.getLogger(__name__)


class ReconcileError(Exception):
    """A reconcile pass failed; the caller should retry the whole pass."""

    def __init__(self, ref: ObjectRef, step: str, cause: Exception | None = None):
        self.ref = ref
        self.step = step
        self.cause = cause
        message = f"Reconcile of {ref} failed at {step}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class MissingCheckTaskError(ReconcileError):
    """The instance is Running but its recorded CheckTask does not exist."""

    def __init__(self, ref: ObjectRef, direction: str, task_name: str):
        self.direction = direction
        self.task_name = task_name
        super().__init__(ref, "fetch_task")
        self.args = (
            f"{Direction(direction).label} CheckTask '{task_name}' of {ref} does not exist",
        )


class WorkloadInstanceReconciler:
    """
    Reconciles WorkloadInstances against their CheckTasks.

    Usage:
        reconciler = WorkloadInstanceReconciler(DjangoObjectStore())
        result = reconciler.reconcile(ObjectRef("ns", "checkout"))
        if not result.done:
            ...  # run again after result.requeue_after seconds
    """

    store: ObjectStore
    task_factory: CheckTaskFactory
    event_emitter: AuditEventEmitter
    requeue_after: float

    def __init__(
        self,
        store: ObjectStore,
        task_factory: CheckTaskFactory | None = None,
        event_emitter: AuditEventEmitter | None = None,
        requeue_after: float | None = None,
    ):
        """
        Args:
            store: Object store holding instances, tasks and events.
            task_factory: CheckTask creator (default: CheckTaskFactory(store)).
            event_emitter: Audit event writer (default: AuditEventEmitter(store)).
            requeue_after: Polling delay in seconds (default from settings).
        """
        self.store = store
        self.task_factory = task_factory or CheckTaskFactory(store)
        self.event_emitter = event_emitter or AuditEventEmitter(store)
        self.requeue_after = (
            requeue_after
            if requeue_after is not None
            else float(getattr(settings, "LIFECYCLE_REQUEUE_AFTER_SECONDS", 5))
        )

    def reconcile(self, ref: ObjectRef, deadline: Deadline | None = None) -> ReconcileResult:
        """
        Run one reconcile pass.

        Returns:
            ReconcileResult; `requeue_after` is set when the pass must be repeated.

        Raises:
            ReconcileError: The pass failed and must be retried from scratch.
        """
        start_time = time.perf_counter()
        tags = SignalTags(namespace=ref.namespace, name=ref.name)
        emit_reconcile_started(tags)

        try:
            result = self._reconcile(ref, deadline, tags)
        except ReconcileError as e:
            duration_ms = (time.perf_counter() - start_time) * 1000
            error_type = type(e.cause).__name__ if e.cause is not None else type(e).__name__
            emit_reconcile_failed(
                tags,
                error_type=error_type,
                error_message=str(e),
                step=e.step,
                duration_ms=duration_ms,
            )
            logger.error(
                f"Reconcile failed: {e}",
                extra={"namespace": ref.namespace, "workload_instance": ref.name, "step": e.step},
            )
            raise

        result.duration_ms = (time.perf_counter() - start_time) * 1000
        emit_reconcile_succeeded(tags, result.duration_ms, result.outcome)
        return result

    @contextmanager
    def _step(self, ref: ObjectRef, step: str) -> Iterator[None]:
        """Wrap any failure inside a step into a ReconcileError."""
        try:
            yield
        except ReconcileError:
            raise
        except Exception as e:
            raise ReconcileError(ref, step, e) from e

    def _reconcile(
        self,
        ref: ObjectRef,
        deadline: Deadline | None,
        tags: SignalTags,
    ) -> ReconcileResult:
        with self._step(ref, "fetch"):
            try:
                instance = self.store.get(
                    WorkloadInstance.KIND, ref.namespace, ref.name, deadline=deadline
                )
            except ObjectNotFound:
                logger.info(
                    f"WorkloadInstance {ref} not found, nothing to do",
                    extra={"namespace": ref.namespace, "workload_instance": ref.name},
                )
                return ReconcileResult(ref.namespace, ref.name, ReconcileAction.NOT_FOUND)

        if instance.is_completed():
            return ReconcileResult(ref.namespace, ref.name, ReconcileAction.COMPLETED)

        direction = active_direction(instance)
        if direction is None:
            return ReconcileResult(ref.namespace, ref.name, ReconcileAction.COMPLETED)

        phase = instance.get_phase(direction)
        tags.direction = direction
        tags.phase = phase

        logger.info(
            f"Reconciling WorkloadInstance {ref} ({Direction(direction).label}: {phase})",
            extra={
                "namespace": ref.namespace,
                "workload_instance": ref.name,
                "direction": direction,
                "phase": phase,
            },
        )

        if phase == WorkloadPhase.NOT_STARTED:
            return self._start_checks(ref, instance, direction, deadline, tags)
        return self._poll_checks(ref, instance, direction, deadline, tags)

    def _start_checks(
        self,
        ref: ObjectRef,
        instance: WorkloadInstance,
        direction: str,
        deadline: Deadline | None,
        tags: SignalTags,
    ) -> ReconcileResult:
        """NotStarted → Running: create the CheckTask and record it."""
        with self._step(ref, "create_task"):
            task = self.task_factory.create_task(instance, direction, deadline=deadline)

        with self._step(ref, "set_phase"):
            instance.set_phase(direction, WorkloadPhase.RUNNING, task.name)
        emit_phase_transition(tags, WorkloadPhase.NOT_STARTED, WorkloadPhase.RUNNING)

        with self._step(ref, "emit_event"):
            self.event_emitter.emit(instance, direction, EventType.STARTED, deadline=deadline)

        with self._step(ref, "update_status"):
            self.store.update_status(instance, deadline=deadline)

        return ReconcileResult(
            ref.namespace,
            ref.name,
            ReconcileAction.TASK_CREATED,
            requeue_after=self.requeue_after,
            direction=direction,
            phase=WorkloadPhase.RUNNING,
            task_name=task.name,
        )

    def _poll_checks(
        self,
        ref: ObjectRef,
        instance: WorkloadInstance,
        direction: str,
        deadline: Deadline | None,
        tags: SignalTags,
    ) -> ReconcileResult:
        """Running: wait for the CheckTask, then fold its outcome into status."""
        task_name = instance.get_task_name(direction)
        if not task_name:
            raise MissingCheckTaskError(ref, direction, task_name)

        with self._step(ref, "fetch_task"):
            try:
                task = self.store.get(
                    CheckTask.KIND, instance.namespace, task_name, deadline=deadline
                )
            except ObjectNotFound as e:
                raise MissingCheckTaskError(ref, direction, task_name) from e

        if not task.is_completed():
            return ReconcileResult(
                ref.namespace,
                ref.name,
                ReconcileAction.POLLING,
                requeue_after=self.requeue_after,
                direction=direction,
                phase=WorkloadPhase.RUNNING,
                task_name=task_name,
            )

        with self._step(ref, "set_phase"):
            new_phase = phase_for_task_outcome(task.phase)
            instance.set_phase(direction, new_phase)
            if direction == Direction.PRE and new_phase == WorkloadPhase.FAILED:
                # Post-deployment checks never run after a failed pre-deployment.
                instance.set_phase(Direction.POST, WorkloadPhase.FAILED, skip=True)
        emit_phase_transition(tags, WorkloadPhase.RUNNING, new_phase)

        with self._step(ref, "delete_task"):
            try:
                self.store.delete(task, deadline=deadline)
            except ObjectNotFound:
                logger.info(
                    f"CheckTask {task.namespace}/{task.name} already deleted",
                    extra={"namespace": task.namespace, "task_name": task.name},
                )

        with self._step(ref, "update_status"):
            self.store.update_status(instance, deadline=deadline)

        with self._step(ref, "emit_event"):
            self.event_emitter.emit(instance, direction, EventType.FINISHED, deadline=deadline)

        return ReconcileResult(
            ref.namespace,
            ref.name,
            ReconcileAction.TASK_FINISHED,
            direction=direction,
            phase=new_phase,
            task_name=task_name,
        )


def default_deadline() -> Deadline:
    """Per-pass deadline from LIFECYCLE_STORE_TIMEOUT_SECONDS."""
    return Deadline.after(float(getattr(settings, "LIFECYCLE_STORE_TIMEOUT_SECONDS", 30)))


def build_reconciler(store: ObjectStore | None = None) -> WorkloadInstanceReconciler:
    """Reconciler wired to the Django-backed store and settings defaults."""
    return WorkloadInstanceReconciler(store or DjangoObjectStore())


def reconcile_workload_instance(namespace: str, name: str) -> ReconcileResult:
    """Run one pass for namespace/name with the default wiring and deadline."""
    return build_reconciler().reconcile(ObjectRef(namespace, name), deadline=default_deadline())
