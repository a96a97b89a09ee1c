"""Celery tasks for workload reconciliation.

These tasks are the worker pool around WorkloadInstanceReconciler:
- a `requeue_after` result re-schedules the same task with a countdown
- a ReconcileError is retried with exponential backoff and jitter
- one pass per namespace/name at a time, guarded by a cache lock
- at most one queued pass per namespace/name, tracked by a "scheduled" marker

Every caller that queues a pass goes through enqueue_reconcile(), and every
caller that runs one in-process goes through run_reconcile(), so triggers merge
into the pending pass instead of starting parallel polling chains.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator

from celery import shared_task
from celery.utils import uuid
from django.conf import settings
from django.core.cache import cache

from apps.lifecycle.dtos import ReconcileAction, ReconcileResult
from apps.lifecycle.phases import Direction, WorkloadPhase
from apps.lifecycle.reconciler import ReconcileError, reconcile_workload_instance

logger = logging.getLogger(__name__)


class ReconcileInProgress(Exception):
    """Another pass for the same WorkloadInstance holds the reconcile lock."""

    def __init__(self, namespace: str, name: str, owner: str | None = None):
        self.namespace = namespace
        self.name = name
        self.owner = owner
        super().__init__(f"Reconcile of {namespace}/{name} already in progress")


# Lock owner for passes run outside a Celery worker; those never requeue.
IN_PROCESS_OWNER = "local"


def reconcile_lock_key(namespace: str, name: str) -> str:
    return f"lifecycle:reconcile:{namespace}/{name}"


def scheduled_marker_key(namespace: str, name: str) -> str:
    return f"{reconcile_lock_key(namespace, name)}:scheduled"


def _lock_timeout() -> int:
    return int(getattr(settings, "LIFECYCLE_RECONCILE_LOCK_SECONDS", 60))


@contextmanager
def reconcile_lock(namespace: str, name: str, owner: str = IN_PROCESS_OWNER) -> Iterator[None]:
    """
    Hold the per-instance reconcile lock for the duration of the block.

    Raises:
        ReconcileInProgress: The lock is held by another pass.
    """
    lock_key = reconcile_lock_key(namespace, name)
    if not cache.add(lock_key, owner, timeout=_lock_timeout()):
        raise ReconcileInProgress(namespace, name, owner=cache.get(lock_key))
    try:
        yield
    finally:
        cache.delete(lock_key)


def run_reconcile(namespace: str, name: str) -> ReconcileResult:
    """
    Run one pass in-process under the reconcile lock.

    Raises:
        ReconcileInProgress: A worker or another caller is reconciling this instance.
        ReconcileError: The pass failed.
    """
    with reconcile_lock(namespace, name):
        return reconcile_workload_instance(namespace, name)


def enqueue_reconcile(namespace: str, name: str, countdown: float | None = None) -> str | None:
    """
    Queue a pass for namespace/name unless one is already pending.

    The marker outlives the countdown by the lock timeout, so a pass that is
    lost with its worker is picked up by the next trigger or resync.

    Returns:
        The Celery task id, or None when a pending pass absorbed this trigger.
    """
    task_id = uuid()
    timeout = int(countdown or 0) + _lock_timeout()
    if not cache.add(scheduled_marker_key(namespace, name), task_id, timeout=timeout):
        logger.debug(
            f"Reconcile of {namespace}/{name} already queued",
            extra={"namespace": namespace, "workload_instance": name},
        )
        return None

    reconcile_workload_instance_task.apply_async(
        args=[namespace, name], countdown=countdown, task_id=task_id
    )
    return task_id


def _requeue_after() -> float:
    return float(getattr(settings, "LIFECYCLE_REQUEUE_AFTER_SECONDS", 5))


def _claim_scheduled_pass(namespace: str, name: str, task_id: str | None) -> bool:
    """Clear this pass's marker; False when another queued pass owns it."""
    marker_key = scheduled_marker_key(namespace, name)
    pending = cache.get(marker_key)
    if pending is None:
        return True
    if task_id is not None and pending != task_id:
        return False
    cache.delete(marker_key)
    return True


def _starts_next_direction(result: ReconcileResult) -> bool:
    return (
        result.action == ReconcileAction.TASK_FINISHED
        and result.direction == Direction.PRE
        and result.phase == WorkloadPhase.SUCCEEDED
    )


@shared_task(
    bind=True,
    autoretry_for=(ReconcileError,),
    retry_backoff=True,
    retry_jitter=True,
    max_retries=getattr(settings, "LIFECYCLE_RECONCILE_MAX_RETRIES", 10),
)
def reconcile_workload_instance_task(self, namespace: str, name: str) -> dict[str, Any]:
    """
    Run one reconcile pass for namespace/name.

    A pass that finds another one queued for the same instance, or the lock
    held by a worker, returns LOCKED and leaves the follow-up to that pass. A
    lock held by an in-process caller is retried after the polling delay.

    Returns:
        ReconcileResult as dict.
    """
    if not _claim_scheduled_pass(namespace, name, self.request.id):
        logger.info(
            f"Reconcile of {namespace}/{name} superseded by a queued pass",
            extra={"namespace": namespace, "workload_instance": name},
        )
        return ReconcileResult(namespace, name, ReconcileAction.LOCKED).to_dict()

    try:
        with reconcile_lock(namespace, name, owner=self.request.id or IN_PROCESS_OWNER):
            result = reconcile_workload_instance(namespace, name)
    except ReconcileInProgress as e:
        logger.info(
            f"Reconcile of {namespace}/{name} already in progress, skipping",
            extra={"namespace": namespace, "workload_instance": name, "lock_owner": e.owner},
        )
        if e.owner == IN_PROCESS_OWNER:
            enqueue_reconcile(namespace, name, countdown=_requeue_after())
        return ReconcileResult(namespace, name, ReconcileAction.LOCKED).to_dict()

    if not result.done:
        enqueue_reconcile(namespace, name, countdown=result.requeue_after)
    elif _starts_next_direction(result):
        # Post-deployment checks start in a pass of their own.
        enqueue_reconcile(namespace, name)

    return result.to_dict()


@shared_task
def resync_workload_instances() -> dict[str, Any]:
    """Periodic resync: enqueue a reconcile for every incomplete WorkloadInstance."""
    from apps.lifecycle.models import WorkloadInstance

    refs = list(WorkloadInstance.objects.incomplete().values_list("namespace", "name"))
    queued = sum(1 for namespace, name in refs if enqueue_reconcile(namespace, name))

    logger.info(
        f"Resync found {len(refs)} incomplete WorkloadInstance(s), queued {queued}",
        extra={"count": len(refs), "queued": queued},
    )
    return {"status": "queued", "count": len(refs), "queued": queued}
