"""Tests for the Django-backed object store."""

from unittest import mock

from django.test import TestCase

from apps.lifecycle._tests.conftest import make_instance
from apps.lifecycle.models import CheckTask, WorkloadInstance
from apps.lifecycle.store import (
    Deadline,
    DeadlineExceeded,
    DjangoObjectStore,
    ObjectAlreadyExists,
    ObjectConflict,
    ObjectNotFound,
    ObjectRef,
    StoreError,
)


class DjangoObjectStoreTests(TestCase):
    """Test DjangoObjectStore semantics."""

    def setUp(self):
        self.store = DjangoObjectStore()

    def test_get(self):
        make_instance()
        instance = self.store.get("WorkloadInstance", "ns", "checkout")
        assert instance.app_name == "shop"

    def test_get_missing(self):
        with self.assertRaises(ObjectNotFound):
            self.store.get("WorkloadInstance", "ns", "missing")

    def test_get_is_namespaced(self):
        make_instance()
        with self.assertRaises(ObjectNotFound):
            self.store.get("WorkloadInstance", "other", "checkout")

    def test_unknown_kind(self):
        with self.assertRaises(StoreError):
            self.store.get("Pod", "ns", "checkout")

    def test_create_duplicate_name(self):
        self.store.create(
            CheckTask(name="checkout-1", namespace="ns", service="checkout", application="shop")
        )
        with self.assertRaises(ObjectAlreadyExists):
            self.store.create(
                CheckTask(name="checkout-1", namespace="ns", service="checkout", application="shop")
            )
        assert CheckTask.objects.count() == 1

    def test_update_status_writes_only_status_fields(self):
        make_instance()
        instance = self.store.get("WorkloadInstance", "ns", "checkout")
        instance.app_name = "changed"
        instance.pre_deployment_phase = "Running"
        instance.pre_deployment_task_name = "checkout-1"

        self.store.update_status(instance)

        stored = WorkloadInstance.objects.get(namespace="ns", name="checkout")
        assert stored.app_name == "shop"
        assert stored.pre_deployment_phase == "Running"
        assert stored.pre_deployment_task_name == "checkout-1"
        assert stored.resource_version == 2
        assert instance.resource_version == 2

    def test_update_writes_only_spec_fields(self):
        make_instance()
        instance = self.store.get("WorkloadInstance", "ns", "checkout")
        instance.app_name = "changed"
        instance.pre_deployment_phase = "Running"

        self.store.update(instance)

        stored = WorkloadInstance.objects.get(namespace="ns", name="checkout")
        assert stored.app_name == "changed"
        assert stored.pre_deployment_phase == "NotStarted"

    def test_stale_write_conflicts(self):
        make_instance()
        first = self.store.get("WorkloadInstance", "ns", "checkout")
        second = self.store.get("WorkloadInstance", "ns", "checkout")

        first.pre_deployment_phase = "Running"
        self.store.update_status(first)

        second.pre_deployment_phase = "Running"
        with self.assertRaises(ObjectConflict):
            self.store.update_status(second)

    def test_update_deleted_object(self):
        make_instance()
        instance = self.store.get("WorkloadInstance", "ns", "checkout")
        WorkloadInstance.objects.all().delete()

        with self.assertRaises(ObjectNotFound):
            self.store.update_status(instance)

    def test_delete(self):
        task = self.store.create(
            CheckTask(name="checkout-1", namespace="ns", service="checkout", application="shop")
        )
        self.store.delete(task)
        assert not CheckTask.objects.exists()

        with self.assertRaises(ObjectNotFound):
            self.store.delete(task)

    def test_expired_deadline_stops_before_touching_store(self):
        make_instance()
        expired = Deadline(expires_at=0.0)

        with self.assertRaises(DeadlineExceeded):
            self.store.get("WorkloadInstance", "ns", "checkout", deadline=expired)
        with self.assertRaises(DeadlineExceeded):
            self.store.create(
                CheckTask(name="checkout-1", namespace="ns", service="checkout", application="shop"),
                deadline=expired,
            )
        assert not CheckTask.objects.exists()

    def test_deadline_is_checked_when_each_call_starts(self):
        instance = make_instance()
        deadline = Deadline.after(30)

        with mock.patch.object(
            Deadline, "expired", new_callable=mock.PropertyMock, side_effect=[False, True]
        ):
            instance.app_name = "cart"
            self.store.update(instance, deadline=deadline)
            with self.assertRaises(DeadlineExceeded):
                self.store.delete(instance, deadline=deadline)

        stored = WorkloadInstance.objects.get(pk=instance.pk)
        assert stored.app_name == "cart"

    def test_deadline(self):
        deadline = Deadline.after(30)
        assert not deadline.expired
        assert 0 < deadline.remaining <= 30
        deadline.check("get")

    def test_object_ref(self):
        ref = ObjectRef("ns", "checkout")
        assert str(ref) == "ns/checkout"
        assert ref.to_dict() == {"namespace": "ns", "name": "checkout"}
