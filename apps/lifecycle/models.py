"""
Models for workload lifecycle gating.

Each model is one cluster-resident object keyed by (namespace, name). Writes go
through apps.lifecycle.store so that every update is checked against
resource_version (optimistic concurrency).
"""

from __future__ import annotations

from typing import Any

from django.db import models
from django.db.models import Q

from apps.lifecycle.phases import (
    CheckTaskPhase,
    Direction,
    WorkloadPhase,
    is_instance_completed,
    is_task_terminal,
    transition,
)


class WorkloadInstanceQuerySet(models.QuerySet):
    def incomplete(self):
        """Instances the reconciler still has work to do on."""
        active = [WorkloadPhase.NOT_STARTED, WorkloadPhase.RUNNING]
        return self.filter(
            Q(pre_deployment_phase__in=active)
            | Q(pre_deployment_phase=WorkloadPhase.SUCCEEDED, post_deployment_phase__in=active)
        )

    def completed(self):
        return self.exclude(pk__in=self.incomplete().values("pk"))


class EventType(models.TextChoices):
    """Audit event types emitted around a check direction."""

    STARTED = "started", "Started"
    FINISHED = "finished", "Finished"


class WorkloadInstance(models.Model):
    """
    One deployed revision of a workload under lifecycle control.

    The spec fields (app_name, check definitions, annotations) are set by the
    controller that creates the instance. Status fields are written only by the
    reconciler.
    """

    KIND = "WorkloadInstance"

    SPEC_FIELDS = [
        "app_name",
        "pre_deployment_check",
        "post_deployment_check",
        "annotations",
    ]
    STATUS_FIELDS = [
        "pre_deployment_phase",
        "pre_deployment_task_name",
        "post_deployment_phase",
        "post_deployment_task_name",
    ]

    # Identity
    name = models.CharField(max_length=253, db_index=True)
    namespace = models.CharField(max_length=253, default="default", db_index=True)

    # Spec
    app_name = models.CharField(
        max_length=253,
        help_text="Owning application name, copied into each CheckTask.",
    )
    pre_deployment_check = models.JSONField(
        default=dict,
        blank=True,
        help_text="Pre-deployment check definition. 'task_payload' is copied verbatim into the CheckTask.",
    )
    post_deployment_check = models.JSONField(
        default=dict,
        blank=True,
        help_text="Post-deployment check definition. 'task_payload' is copied verbatim into the CheckTask.",
    )
    annotations = models.JSONField(
        default=dict,
        blank=True,
        help_text="Copied onto every CheckTask and AuditEvent for correlation.",
    )

    # Status
    pre_deployment_phase = models.CharField(
        max_length=20,
        choices=WorkloadPhase.choices,
        default=WorkloadPhase.NOT_STARTED,
        db_index=True,
    )
    pre_deployment_task_name = models.CharField(
        max_length=253,
        blank=True,
        default="",
        help_text="Active pre-deployment CheckTask (empty unless Running).",
    )
    post_deployment_phase = models.CharField(
        max_length=20,
        choices=WorkloadPhase.choices,
        default=WorkloadPhase.NOT_STARTED,
        db_index=True,
    )
    post_deployment_task_name = models.CharField(
        max_length=253,
        blank=True,
        default="",
        help_text="Active post-deployment CheckTask (empty unless Running).",
    )

    # Concurrency
    resource_version = models.PositiveBigIntegerField(
        default=1,
        help_text="Bumped on every write; stale writes are rejected.",
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = WorkloadInstanceQuerySet.as_manager()

    class Meta:
        ordering = ["namespace", "name"]
        constraints = [
            models.UniqueConstraint(
                fields=["namespace", "name"],
                name="unique_workload_instance_name",
            ),
        ]
        indexes = [
            models.Index(
                fields=["pre_deployment_phase", "post_deployment_phase"],
                name="lifecycle_wi_phases_idx",
            ),
        ]

    def __str__(self):
        return (
            f"{self.namespace}/{self.name} "
            f"[pre={self.pre_deployment_phase}, post={self.post_deployment_phase}]"
        )

    @property
    def kind(self) -> str:
        return self.KIND

    def get_phase(self, direction: str) -> str:
        return getattr(self, f"{Direction(direction).name.lower()}_deployment_phase")

    def get_task_name(self, direction: str) -> str:
        return getattr(self, f"{Direction(direction).name.lower()}_deployment_task_name")

    def get_check(self, direction: str) -> dict[str, Any]:
        return getattr(self, f"{Direction(direction).name.lower()}_deployment_check") or {}

    def get_task_payload(self, direction: str) -> dict[str, Any]:
        """Opaque payload for the CheckTask of a direction."""
        return self.get_check(direction).get("task_payload", {})

    def set_phase(
        self,
        direction: str,
        phase: str,
        task_name: str = "",
        *,
        skip: bool = False,
    ) -> None:
        """
        Move one direction to a new phase (in memory only).

        The task name is kept only while the phase is Running.

        Raises:
            InvalidPhaseTransition: If the move regresses or skips a phase.
        """
        prefix = Direction(direction).name.lower()
        new_phase = transition(self.get_phase(direction), phase, skip=skip)
        setattr(self, f"{prefix}_deployment_phase", new_phase)
        setattr(
            self,
            f"{prefix}_deployment_task_name",
            task_name if new_phase == WorkloadPhase.RUNNING else "",
        )

    def is_completed(self) -> bool:
        """True when no further checks will ever run for this instance."""
        return is_instance_completed(self.pre_deployment_phase, self.post_deployment_phase)

    def status_dict(self) -> dict[str, Any]:
        return {
            "pre_deployment_phase": self.pre_deployment_phase,
            "pre_deployment_task_name": self.pre_deployment_task_name,
            "post_deployment_phase": self.post_deployment_phase,
            "post_deployment_task_name": self.post_deployment_task_name,
            "completed": self.is_completed(),
        }


class CheckTask(models.Model):
    """
    One check execution, created and deleted by the reconciler.

    The external task executor drives `phase`; the reconciler only reads it.
    """

    KIND = "CheckTask"

    SPEC_FIELDS = ["service", "application", "payload", "annotations"]
    STATUS_FIELDS = ["phase"]

    name = models.CharField(max_length=253, db_index=True)
    namespace = models.CharField(max_length=253, default="default", db_index=True)

    direction = models.CharField(
        max_length=10,
        choices=Direction.choices,
        default=Direction.PRE,
    )
    service = models.CharField(
        max_length=253,
        help_text="Name of the WorkloadInstance this check runs for.",
    )
    application = models.CharField(max_length=253)
    payload = models.JSONField(
        default=dict,
        blank=True,
        help_text="Opaque task payload handed to the executor.",
    )
    annotations = models.JSONField(default=dict, blank=True)

    phase = models.CharField(
        max_length=20,
        choices=CheckTaskPhase.choices,
        default=CheckTaskPhase.PENDING,
        db_index=True,
    )

    resource_version = models.PositiveBigIntegerField(default=1)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["namespace", "-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["namespace", "name"],
                name="unique_check_task_name",
            ),
        ]

    def __str__(self):
        return f"{self.namespace}/{self.name} [{self.phase}]"

    @property
    def kind(self) -> str:
        return self.KIND

    def is_completed(self) -> bool:
        return is_task_terminal(self.phase)


class AuditEvent(models.Model):
    """
    Append-only record of a phase transition on a WorkloadInstance.

    Written by the reconciler, never read back by it.
    """

    KIND = "AuditEvent"

    SPEC_FIELDS: list[str] = []
    STATUS_FIELDS: list[str] = []

    name = models.CharField(max_length=253, db_index=True)
    namespace = models.CharField(max_length=253, default="default", db_index=True)

    # Involved object
    involved_kind = models.CharField(max_length=100)
    involved_namespace = models.CharField(max_length=253)
    involved_name = models.CharField(max_length=253, db_index=True)

    reason = models.CharField(
        max_length=50,
        help_text="Resulting phase of the direction.",
    )
    message = models.TextField()
    type = models.CharField(max_length=20, default="Normal")
    action = models.CharField(max_length=20, choices=EventType.choices)
    source_component = models.CharField(max_length=100, blank=True, default="")
    reporting_controller = models.CharField(max_length=253, blank=True, default="")
    reporting_instance = models.CharField(max_length=253, blank=True, default="")
    annotations = models.JSONField(default=dict, blank=True)

    event_time = models.DateTimeField()
    first_timestamp = models.DateTimeField()
    last_timestamp = models.DateTimeField()

    resource_version = models.PositiveBigIntegerField(default=1)

    class Meta:
        ordering = ["-event_time"]
        constraints = [
            models.UniqueConstraint(
                fields=["namespace", "name"],
                name="unique_audit_event_name",
            ),
        ]
        indexes = [
            models.Index(
                fields=["involved_namespace", "involved_name", "-event_time"],
                name="lifecycle_ae_involved_idx",
            ),
        ]

    def __str__(self):
        return f"{self.involved_namespace}/{self.involved_name}: {self.message} [{self.reason}]"

    @property
    def kind(self) -> str:
        return self.KIND
