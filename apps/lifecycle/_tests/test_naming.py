"""Tests for CheckTask naming and creation."""

from unittest import mock

import pytest

from apps.lifecycle._tests.conftest import sequential_ids
from apps.lifecycle.models import CheckTask
from apps.lifecycle.naming import CheckTaskFactory, TaskNameExhaustedError
from apps.lifecycle.phases import Direction
from apps.lifecycle.store import StoreError


def _occupy(*names):
    for name in names:
        CheckTask.objects.create(name=name, namespace="ns", service="checkout", application="shop")


def test_generate_name_uses_ten_character_suffix(store):
    factory = CheckTaskFactory(store, id_source=sequential_ids("0123456789abcdef"))
    assert factory.generate_name("checkout") == "checkout-0123456789"


def test_default_names_are_unique(store):
    factory = CheckTaskFactory(store)
    names = {factory.generate_name("checkout") for _ in range(20)}
    assert len(names) == 20


def test_build_task_copies_instance_fields(store, workload_instance, id_source):
    task = CheckTaskFactory(store, id_source=id_source).build_task(workload_instance, Direction.PRE)

    assert task.name == "checkout-0000000001"
    assert task.namespace == "ns"
    assert task.service == "checkout"
    assert task.application == "shop"
    assert task.payload == {"checks": ["image-scan"]}
    assert task.annotations == {"team": "payments"}
    assert task.direction == "pre"


def test_create_task(store, workload_instance, id_source):
    task = CheckTaskFactory(store, id_source=id_source).create_task(
        workload_instance, Direction.POST
    )

    stored = CheckTask.objects.get(namespace="ns", name=task.name)
    assert stored.payload == {"checks": ["smoke-test"]}
    assert stored.phase == "Pending"


def test_create_task_retries_on_taken_names(store, workload_instance):
    _occupy("checkout-collision1", "checkout-collision2", "checkout-collision3", "checkout-collision4")
    factory = CheckTaskFactory(
        store,
        id_source=sequential_ids(
            "collision1", "collision2", "collision3", "collision4", "collision5"
        ),
    )

    task = factory.create_task(workload_instance, Direction.PRE)

    assert task.name == "checkout-collision5"
    assert CheckTask.objects.count() == 5


def test_create_task_gives_up_after_max_attempts(store, workload_instance):
    _occupy(*[f"checkout-collision{i}" for i in range(1, 6)])
    factory = CheckTaskFactory(
        store,
        id_source=sequential_ids(*[f"collision{i}" for i in range(1, 7)]),
    )

    with pytest.raises(TaskNameExhaustedError) as excinfo:
        factory.create_task(workload_instance, Direction.PRE)

    assert excinfo.value.attempts == 5
    assert CheckTask.objects.count() == 5


def test_max_attempts_from_settings(store, settings):
    settings.LIFECYCLE_TASK_NAME_MAX_ATTEMPTS = 2
    assert CheckTaskFactory(store).max_attempts == 2


def test_other_store_errors_are_not_retried(workload_instance):
    failing_store = mock.Mock()
    failing_store.create.side_effect = StoreError("database unavailable")

    with pytest.raises(StoreError):
        CheckTaskFactory(failing_store).create_task(workload_instance, Direction.PRE)

    assert failing_store.create.call_count == 1
