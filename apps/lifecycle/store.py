"""
Object store access for lifecycle objects.

The reconciler never touches the ORM directly; it talks to an ObjectStore that
gives it typed get/create/update/delete on objects keyed by (namespace, name):

- get()            → object, or ObjectNotFound
- create()         → ok, or ObjectAlreadyExists when the name is taken
- update()         → spec/metadata write, ObjectConflict on a stale read
- update_status()  → status-only write, ObjectConflict on a stale read
- delete()         → ok, or ObjectNotFound

Every write is optimistic: it only applies if the row still carries the
resource_version the caller read, and it bumps that version. Every call takes
an optional Deadline and refuses to start once it has expired. The deadline is
not enforced while a query runs; a slow database call finishes or fails on the
database connection's own timeout.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from django.db import IntegrityError, models, transaction
from django.db.models import F
from django.utils import timezone

from apps.lifecycle.models import AuditEvent, CheckTask, WorkloadInstance

logger = logging.getLogger(__name__)


MODEL_REGISTRY: dict[str, type[models.Model]] = {
    WorkloadInstance.KIND: WorkloadInstance,
    CheckTask.KIND: CheckTask,
    AuditEvent.KIND: AuditEvent,
}


class StoreError(Exception):
    """Base class for object store failures."""


class ObjectNotFound(StoreError):
    def __init__(self, kind: str, namespace: str, name: str):
        self.kind = kind
        self.namespace = namespace
        self.name = name
        super().__init__(f"{kind} {namespace}/{name} not found")


class ObjectAlreadyExists(StoreError):
    def __init__(self, kind: str, namespace: str, name: str):
        self.kind = kind
        self.namespace = namespace
        self.name = name
        super().__init__(f"{kind} {namespace}/{name} already exists")


class ObjectConflict(StoreError):
    """The object changed since it was read (resource_version mismatch)."""

    def __init__(self, kind: str, namespace: str, name: str, resource_version: int):
        self.kind = kind
        self.namespace = namespace
        self.name = name
        self.resource_version = resource_version
        super().__init__(
            f"{kind} {namespace}/{name} was modified "
            f"(stale resource_version {resource_version})"
        )


class DeadlineExceeded(StoreError):
    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"Deadline exceeded before {operation}")


@dataclass(frozen=True)
class Deadline:
    """Absolute expiry on the monotonic clock, shared by every call in a pass."""

    expires_at: float

    @classmethod
    def after(cls, seconds: float) -> "Deadline":
        return cls(expires_at=time.monotonic() + seconds)

    @property
    def remaining(self) -> float:
        return max(0.0, self.expires_at - time.monotonic())

    @property
    def expired(self) -> bool:
        return time.monotonic() >= self.expires_at

    def check(self, operation: str) -> None:
        """Raise DeadlineExceeded if the deadline has passed."""
        if self.expired:
            raise DeadlineExceeded(operation)


@dataclass(frozen=True)
class ObjectRef:
    """Reference to a namespaced object."""

    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"

    def to_dict(self) -> dict[str, Any]:
        return {"namespace": self.namespace, "name": self.name}


class ObjectStore(ABC):
    """Abstract typed CRUD access to lifecycle objects."""

    @abstractmethod
    def get(self, kind: str, namespace: str, name: str, deadline: Deadline | None = None):
        """Return the object, or raise ObjectNotFound."""

    @abstractmethod
    def create(self, obj: models.Model, deadline: Deadline | None = None):
        """Persist a new object, or raise ObjectAlreadyExists."""

    @abstractmethod
    def update(self, obj: models.Model, deadline: Deadline | None = None):
        """Write the object's spec fields, or raise ObjectConflict/ObjectNotFound."""

    @abstractmethod
    def update_status(self, obj: models.Model, deadline: Deadline | None = None):
        """Write the object's status fields, or raise ObjectConflict/ObjectNotFound."""

    @abstractmethod
    def delete(self, obj: models.Model, deadline: Deadline | None = None) -> None:
        """Remove the object, or raise ObjectNotFound."""


def _check_deadline(deadline: Deadline | None, operation: str) -> None:
    if deadline is not None:
        deadline.check(operation)


class DjangoObjectStore(ObjectStore):
    """ObjectStore backed by the Django ORM."""

    def _model(self, kind: str) -> type[models.Model]:
        try:
            return MODEL_REGISTRY[kind]
        except KeyError:
            raise StoreError(f"Unknown kind: {kind}")

    def get(self, kind: str, namespace: str, name: str, deadline: Deadline | None = None):
        _check_deadline(deadline, f"get {kind}")
        model = self._model(kind)
        try:
            return model.objects.get(namespace=namespace, name=name)
        except model.DoesNotExist:
            raise ObjectNotFound(kind, namespace, name)

    def create(self, obj: models.Model, deadline: Deadline | None = None):
        _check_deadline(deadline, f"create {obj.KIND}")
        try:
            with transaction.atomic():
                obj.save(force_insert=True)
        except IntegrityError:
            raise ObjectAlreadyExists(obj.KIND, obj.namespace, obj.name)

        logger.debug(
            f"Created {obj.KIND} {obj.namespace}/{obj.name}",
            extra={"kind": obj.KIND, "namespace": obj.namespace, "object_name": obj.name},
        )
        return obj

    def update(self, obj: models.Model, deadline: Deadline | None = None):
        _check_deadline(deadline, f"update {obj.KIND}")
        return self._conditional_update(obj, obj.SPEC_FIELDS)

    def update_status(self, obj: models.Model, deadline: Deadline | None = None):
        _check_deadline(deadline, f"update status of {obj.KIND}")
        return self._conditional_update(obj, obj.STATUS_FIELDS)

    def delete(self, obj: models.Model, deadline: Deadline | None = None) -> None:
        _check_deadline(deadline, f"delete {obj.KIND}")
        model = type(obj)
        deleted, _ = model.objects.filter(namespace=obj.namespace, name=obj.name).delete()
        if not deleted:
            raise ObjectNotFound(obj.KIND, obj.namespace, obj.name)

        logger.debug(
            f"Deleted {obj.KIND} {obj.namespace}/{obj.name}",
            extra={"kind": obj.KIND, "namespace": obj.namespace, "object_name": obj.name},
        )

    def _conditional_update(self, obj: models.Model, fields: list[str]):
        """Write `fields` only if the row still has the resource_version we read."""
        model = type(obj)
        values = {field: getattr(obj, field) for field in fields}
        if hasattr(obj, "updated_at"):
            obj.updated_at = timezone.now()
            values["updated_at"] = obj.updated_at

        updated = model.objects.filter(
            namespace=obj.namespace,
            name=obj.name,
            resource_version=obj.resource_version,
        ).update(resource_version=F("resource_version") + 1, **values)

        if not updated:
            if model.objects.filter(namespace=obj.namespace, name=obj.name).exists():
                raise ObjectConflict(obj.KIND, obj.namespace, obj.name, obj.resource_version)
            raise ObjectNotFound(obj.KIND, obj.namespace, obj.name)

        obj.resource_version += 1
        return obj
