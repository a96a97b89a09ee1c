"""
Audit events for WorkloadInstance phase transitions.

One append-only AuditEvent is written when a check direction starts and one when
it finishes. The event points at the WorkloadInstance (kind/namespace/name),
carries the resulting phase as its reason, and copies the instance annotations
so downstream tooling can correlate without a second lookup.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Callable

from django.conf import settings
from django.utils import timezone

from apps.lifecycle.models import AuditEvent, EventType, WorkloadInstance
from apps.lifecycle.phases import Direction
from apps.lifecycle.store import Deadline, ObjectStore

logger = logging.getLogger(__name__)

DEFAULT_REPORTING_CONTROLLER = "workloadinstance-controller"

# Length of the random part of generated event names.
EVENT_NAME_SUFFIX_LENGTH = 5


def event_message(direction: str, event_type: str) -> str:
    """Human readable message, e.g. 'pre-deployment checks are started'."""
    return f"{Direction(direction).label} checks are {event_type}"


class AuditEventEmitter:
    """Builds and writes AuditEvents for a WorkloadInstance."""

    def __init__(
        self,
        store: ObjectStore,
        reporting_controller: str | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.store = store
        self.reporting_controller = reporting_controller or getattr(
            settings, "LIFECYCLE_EVENT_REPORTING_CONTROLLER", DEFAULT_REPORTING_CONTROLLER
        )
        self.clock = clock or timezone.now

    def _generate_name(self, instance: WorkloadInstance, event_type: str) -> str:
        suffix = uuid.uuid4().hex[:EVENT_NAME_SUFFIX_LENGTH]
        return f"{instance.name}-{event_type}-{suffix}"

    def build(self, instance: WorkloadInstance, direction: str, event_type: str) -> AuditEvent:
        """Build an unsaved AuditEvent reflecting the instance's current phase."""
        now = self.clock()
        return AuditEvent(
            name=self._generate_name(instance, event_type),
            namespace=instance.namespace,
            involved_kind=instance.kind,
            involved_namespace=instance.namespace,
            involved_name=instance.name,
            reason=instance.get_phase(direction),
            message=event_message(direction, event_type),
            type="Normal",
            action=EventType(event_type),
            source_component=instance.kind,
            reporting_controller=self.reporting_controller,
            reporting_instance=self.reporting_controller,
            annotations=dict(instance.annotations or {}),
            event_time=now,
            first_timestamp=now,
            last_timestamp=now,
        )

    def emit(
        self,
        instance: WorkloadInstance,
        direction: str,
        event_type: str,
        deadline: Deadline | None = None,
    ) -> AuditEvent:
        """
        Write one AuditEvent.

        Raises:
            StoreError: If the event could not be written.
        """
        event = self.build(instance, direction, event_type)
        self.store.create(event, deadline=deadline)

        logger.info(
            f"Event {event.namespace}/{event.name}: {event.message} ({event.reason})",
            extra={
                "namespace": instance.namespace,
                "workload_instance": instance.name,
                "direction": direction,
                "event_type": event_type,
                "reason": event.reason,
            },
        )
        return event
