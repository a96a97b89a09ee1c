"""
CheckTask naming and creation.

Task names are `<workload instance name>-<suffix>`, where the suffix is the first
10 characters of a fresh UUID. The instance name alone cannot be reused: a retried
reconcile may run before an earlier task name was recorded. When the store
reports that a name is taken, a new suffix is drawn and creation is retried, up
to `max_attempts` attempts in total.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Callable

from django.conf import settings

from apps.lifecycle.models import CheckTask, WorkloadInstance
from apps.lifecycle.store import Deadline, ObjectAlreadyExists, ObjectStore

logger = logging.getLogger(__name__)

SUFFIX_LENGTH = 10


class TaskNameExhaustedError(Exception):
    """Raised when every generated task name was already taken."""

    def __init__(self, base: str, attempts: int):
        self.base = base
        self.attempts = attempts
        super().__init__(f"Could not find a free CheckTask name for '{base}' after {attempts} attempts")


class CheckTaskFactory:
    """
    Creates CheckTasks under collision-resistant generated names.

    Usage:
        factory = CheckTaskFactory(store)
        task = factory.create_task(instance, Direction.PRE)
    """

    def __init__(
        self,
        store: ObjectStore,
        id_source: Callable[[], Any] | None = None,
        max_attempts: int | None = None,
    ):
        """
        Args:
            store: Object store the task is created in.
            id_source: Callable returning a fresh unique id (default: uuid.uuid4).
                Only the first 10 characters of its string form are used.
            max_attempts: Total creation attempts (default from settings).
        """
        self.store = store
        self.id_source = id_source or uuid.uuid4
        self.max_attempts = (
            max_attempts
            if max_attempts is not None
            else int(getattr(settings, "LIFECYCLE_TASK_NAME_MAX_ATTEMPTS", 5))
        )

    def generate_name(self, base: str) -> str:
        return f"{base}-{str(self.id_source())[:SUFFIX_LENGTH]}"

    def build_task(self, instance: WorkloadInstance, direction: str) -> CheckTask:
        """Build an unsaved CheckTask for one direction of the instance."""
        return CheckTask(
            name=self.generate_name(instance.name),
            namespace=instance.namespace,
            direction=direction,
            service=instance.name,
            application=instance.app_name,
            payload=instance.get_task_payload(direction),
            annotations=dict(instance.annotations or {}),
        )

    def create_task(
        self,
        instance: WorkloadInstance,
        direction: str,
        deadline: Deadline | None = None,
    ) -> CheckTask:
        """
        Create the CheckTask, retrying with a new name on conflicts.

        Returns:
            The created CheckTask; its name is the one to record in status.

        Raises:
            TaskNameExhaustedError: All attempts hit an existing name.
            StoreError: Any other store failure (not retried here).
        """
        task = self.build_task(instance, direction)

        for attempt in range(1, self.max_attempts + 1):
            try:
                return self.store.create(task, deadline=deadline)
            except ObjectAlreadyExists:
                logger.info(
                    f"CheckTask name {task.namespace}/{task.name} taken "
                    f"(attempt {attempt}/{self.max_attempts})",
                    extra={"namespace": task.namespace, "task_name": task.name},
                )
                task.name = self.generate_name(instance.name)

        raise TaskNameExhaustedError(instance.name, self.max_attempts)
