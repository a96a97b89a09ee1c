"""Model signal receivers that trigger reconciles."""

from __future__ import annotations

import logging

from django.conf import settings
from django.db import transaction
from django.db.models.signals import post_save
from django.dispatch import receiver

from apps.lifecycle.models import WorkloadInstance

logger = logging.getLogger(__name__)


def schedule_reconcile(namespace: str, name: str) -> None:
    """Queue a reconcile for namespace/name once the current transaction commits, unless one is pending."""
    if not getattr(settings, "LIFECYCLE_AUTO_RECONCILE", True):
        return

    def _enqueue():
        from apps.lifecycle.tasks import enqueue_reconcile

        enqueue_reconcile(namespace, name)

    transaction.on_commit(_enqueue)


@receiver(post_save, sender=WorkloadInstance, dispatch_uid="lifecycle_reconcile_on_save")
def reconcile_on_save(sender, instance: WorkloadInstance, created: bool, raw: bool = False, **kwargs):
    """Reconcile instances that were created or had their spec saved."""
    if raw or instance.is_completed():
        return

    logger.debug(
        f"WorkloadInstance {instance.namespace}/{instance.name} saved (created={created})",
        extra={"namespace": instance.namespace, "workload_instance": instance.name},
    )
    schedule_reconcile(instance.namespace, instance.name)
