"""Tests for lifecycle Celery tasks and save triggers."""

from unittest import mock

from django.core.cache import cache
from django.test import TestCase

from apps.lifecycle._tests.conftest import make_instance
from apps.lifecycle.dtos import ReconcileAction, ReconcileResult
from apps.lifecycle.models import WorkloadInstance
from apps.lifecycle.reconciler import ReconcileError
from apps.lifecycle.store import ObjectRef
from apps.lifecycle.tasks import (
    ReconcileInProgress,
    enqueue_reconcile,
    reconcile_lock,
    reconcile_lock_key,
    reconcile_workload_instance_task,
    resync_workload_instances,
    run_reconcile,
    scheduled_marker_key,
)


@mock.patch.object(reconcile_workload_instance_task, "apply_async")
class ReconcileTaskTests(TestCase):
    """Test reconcile_workload_instance_task."""

    @mock.patch("apps.lifecycle.tasks.reconcile_workload_instance")
    def test_requeues_while_checks_run(self, mock_reconcile, mock_apply_async):
        mock_reconcile.return_value = ReconcileResult(
            "ns", "checkout", ReconcileAction.POLLING, requeue_after=5
        )

        result = reconcile_workload_instance_task("ns", "checkout")

        assert result["action"] == "polling"
        assert result["done"] is False
        mock_apply_async.assert_called_once_with(
            args=["ns", "checkout"], countdown=5, task_id=mock.ANY
        )
        task_id = mock_apply_async.call_args.kwargs["task_id"]
        assert cache.get(scheduled_marker_key("ns", "checkout")) == task_id

    @mock.patch("apps.lifecycle.tasks.reconcile_workload_instance")
    def test_done_is_not_requeued(self, mock_reconcile, mock_apply_async):
        mock_reconcile.return_value = ReconcileResult(
            "ns", "checkout", ReconcileAction.TASK_FINISHED
        )

        result = reconcile_workload_instance_task("ns", "checkout")

        assert result["done"] is True
        mock_apply_async.assert_not_called()
        assert cache.get(reconcile_lock_key("ns", "checkout")) is None

    @mock.patch("apps.lifecycle.tasks.reconcile_workload_instance")
    def test_pre_success_queues_post_deployment_pass(self, mock_reconcile, mock_apply_async):
        mock_reconcile.return_value = ReconcileResult(
            "ns",
            "checkout",
            ReconcileAction.TASK_FINISHED,
            direction="pre",
            phase="Succeeded",
        )

        reconcile_workload_instance_task("ns", "checkout")

        mock_apply_async.assert_called_once_with(
            args=["ns", "checkout"], countdown=None, task_id=mock.ANY
        )

    @mock.patch("apps.lifecycle.tasks.reconcile_workload_instance")
    def test_locked_instance_is_left_to_lock_holder(self, mock_reconcile, mock_apply_async):
        cache.add(reconcile_lock_key("ns", "checkout"), "other-worker")

        result = reconcile_workload_instance_task("ns", "checkout")

        assert result["action"] == ReconcileAction.LOCKED
        assert result["done"] is True
        mock_reconcile.assert_not_called()
        mock_apply_async.assert_not_called()
        assert cache.get(reconcile_lock_key("ns", "checkout")) == "other-worker"

    @mock.patch("apps.lifecycle.tasks.reconcile_workload_instance")
    def test_in_process_lock_holder_gets_follow_up(self, mock_reconcile, mock_apply_async):
        with reconcile_lock("ns", "checkout"):
            result = reconcile_workload_instance_task.apply(
                args=["ns", "checkout"], task_id="queued-pass"
            ).get()

        assert result["action"] == ReconcileAction.LOCKED
        mock_reconcile.assert_not_called()
        mock_apply_async.assert_called_once_with(
            args=["ns", "checkout"], countdown=5.0, task_id=mock.ANY
        )

    @mock.patch("apps.lifecycle.tasks.reconcile_workload_instance")
    def test_pass_superseded_by_queued_pass(self, mock_reconcile, mock_apply_async):
        cache.add(scheduled_marker_key("ns", "checkout"), "queued-pass")

        result = reconcile_workload_instance_task.apply(
            args=["ns", "checkout"], task_id="stale-retry"
        ).get()

        assert result["action"] == ReconcileAction.LOCKED
        mock_reconcile.assert_not_called()
        assert cache.get(scheduled_marker_key("ns", "checkout")) == "queued-pass"

    @mock.patch("apps.lifecycle.tasks.reconcile_workload_instance")
    def test_queued_pass_clears_its_marker(self, mock_reconcile, mock_apply_async):
        mock_reconcile.return_value = ReconcileResult(
            "ns", "checkout", ReconcileAction.COMPLETED
        )
        cache.add(scheduled_marker_key("ns", "checkout"), "queued-pass")

        reconcile_workload_instance_task.apply(args=["ns", "checkout"], task_id="queued-pass")

        mock_reconcile.assert_called_once_with("ns", "checkout")
        assert cache.get(scheduled_marker_key("ns", "checkout")) is None

    @mock.patch("apps.lifecycle.tasks.reconcile_workload_instance")
    def test_errors_propagate_and_release_lock(self, mock_reconcile, mock_apply_async):
        mock_reconcile.side_effect = ReconcileError(ObjectRef("ns", "checkout"), "fetch")

        with self.assertRaises(ReconcileError):
            reconcile_workload_instance_task("ns", "checkout")

        assert cache.get(reconcile_lock_key("ns", "checkout")) is None
        mock_apply_async.assert_not_called()

    def test_runs_real_pass(self, mock_apply_async):
        make_instance()

        result = reconcile_workload_instance_task("ns", "checkout")

        assert result["action"] == "task_created"
        mock_apply_async.assert_called_once()


@mock.patch.object(reconcile_workload_instance_task, "apply_async")
class EnqueueReconcileTests(TestCase):
    """Test that triggers for one instance share a single queued pass."""

    def test_second_trigger_joins_queued_pass(self, mock_apply_async):
        first = enqueue_reconcile("ns", "checkout")
        second = enqueue_reconcile("ns", "checkout", countdown=5)

        assert first is not None
        assert second is None
        mock_apply_async.assert_called_once_with(
            args=["ns", "checkout"], countdown=None, task_id=first
        )

    def test_instances_are_queued_independently(self, mock_apply_async):
        enqueue_reconcile("ns", "checkout")
        enqueue_reconcile("ns", "cart")

        assert mock_apply_async.call_count == 2

    def test_triggers_keep_one_pass_queued_while_checks_run(self, mock_apply_async):
        queue = []
        mock_apply_async.side_effect = lambda args, countdown=None, task_id=None: queue.append(
            (args, task_id)
        )

        with self.captureOnCommitCallbacks(execute=True):
            make_instance()

        queued_per_tick = []
        for tick in range(12):
            if tick % 3 == 0:
                resync_workload_instances()
            if tick == 7:
                with self.captureOnCommitCallbacks(execute=True):
                    instance = WorkloadInstance.objects.get(namespace="ns", name="checkout")
                    instance.save()
            queued_per_tick.append(len(queue))

            due, queue[:] = list(queue), []
            for args, task_id in due:
                reconcile_workload_instance_task.apply(args=args, task_id=task_id)

        assert queued_per_tick == [1] * 12
        instance = WorkloadInstance.objects.get(namespace="ns", name="checkout")
        assert instance.pre_deployment_phase == "Running"


class RunReconcileTests(TestCase):
    """Test in-process passes under the reconcile lock."""

    def test_runs_pass_and_releases_lock(self):
        make_instance()

        result = run_reconcile("ns", "checkout")

        assert result.action == ReconcileAction.TASK_CREATED
        assert cache.get(reconcile_lock_key("ns", "checkout")) is None

    @mock.patch("apps.lifecycle.tasks.reconcile_workload_instance")
    def test_held_lock_raises(self, mock_reconcile):
        with reconcile_lock("ns", "checkout", owner="worker-1"):
            with self.assertRaises(ReconcileInProgress):
                run_reconcile("ns", "checkout")

        mock_reconcile.assert_not_called()
        assert cache.get(reconcile_lock_key("ns", "checkout")) is None


@mock.patch.object(reconcile_workload_instance_task, "apply_async")
class ResyncTaskTests(TestCase):
    """Test resync_workload_instances."""

    def test_enqueues_incomplete_instances(self, mock_apply_async):
        make_instance(name="fresh")
        make_instance(name="post-pending", pre_deployment_phase="Succeeded")
        make_instance(name="failed", pre_deployment_phase="Failed")

        result = resync_workload_instances()

        assert result["count"] == 2
        assert result["queued"] == 2
        queued = {tuple(call.kwargs["args"]) for call in mock_apply_async.call_args_list}
        assert queued == {("ns", "fresh"), ("ns", "post-pending")}

    def test_skips_instances_with_a_queued_pass(self, mock_apply_async):
        make_instance(name="fresh")
        make_instance(name="polling", pre_deployment_phase="Running")
        enqueue_reconcile("ns", "polling", countdown=5)
        mock_apply_async.reset_mock()

        result = resync_workload_instances()

        assert result["count"] == 2
        assert result["queued"] == 1
        mock_apply_async.assert_called_once_with(
            args=["ns", "fresh"], countdown=None, task_id=mock.ANY
        )


@mock.patch.object(reconcile_workload_instance_task, "apply_async")
class SaveTriggerTests(TestCase):
    """Test that saving a WorkloadInstance queues a reconcile after commit."""

    def test_create_queues_reconcile(self, mock_apply_async):
        with self.captureOnCommitCallbacks(execute=True):
            make_instance()

        mock_apply_async.assert_called_once_with(
            args=["ns", "checkout"], countdown=None, task_id=mock.ANY
        )

    def test_completed_instance_not_queued(self, mock_apply_async):
        with self.captureOnCommitCallbacks(execute=True):
            make_instance(pre_deployment_phase="Failed")

        mock_apply_async.assert_not_called()

    def test_auto_reconcile_disabled(self, mock_apply_async):
        with self.settings(LIFECYCLE_AUTO_RECONCILE=False):
            with self.captureOnCommitCallbacks(execute=True):
                make_instance()

        mock_apply_async.assert_not_called()

    def test_status_writes_do_not_trigger(self, mock_apply_async):
        from apps.lifecycle.store import DjangoObjectStore

        instance = make_instance()
        instance.pre_deployment_phase = "Running"
        with self.captureOnCommitCallbacks(execute=True):
            DjangoObjectStore().update_status(instance)

        mock_apply_async.assert_not_called()
