import json

import pytest
from django.contrib import admin
from django.contrib.messages import get_messages
from django.db.models import F

from apps.lifecycle._tests.conftest import make_instance
from apps.lifecycle.models import AuditEvent, CheckTask, WorkloadInstance
from apps.lifecycle.tasks import reconcile_lock


@pytest.mark.django_db
class TestLifecycleAdminSite:
    def test_custom_site_is_active(self):
        """The default admin.site should be our custom LifecycleAdminSite."""
        from config.admin import LifecycleAdminSite

        assert isinstance(admin.site, LifecycleAdminSite)

    def test_site_header(self):
        assert admin.site.site_header == "Workload Lifecycle"

    def test_admin_index_loads(self, admin_client):
        response = admin_client.get("/admin/")
        assert response.status_code == 200


@pytest.fixture
def dashboard_data(db):
    make_instance(name="fresh")
    make_instance(name="passed", pre_deployment_phase="Succeeded", post_deployment_phase="Succeeded")
    make_instance(name="blocked", pre_deployment_phase="Failed", post_deployment_phase="Failed")


@pytest.mark.django_db
class TestDashboardContext:
    def test_totals(self, dashboard_data):
        ctx = admin.site._get_dashboard_context()

        assert ctx["instance_totals"] == {"total": 3, "incomplete": 1, "completed": 2}
        pre_counts = {row["phase"]: row["count"] for row in ctx["phase_counts"]["pre"]}
        assert pre_counts["Not started"] == 1
        assert pre_counts["Failed"] == 1
        assert [i.name for i in ctx["failed_instances"]] == ["blocked"]

    def test_dashboard_renders(self, admin_client, dashboard_data):
        response = admin_client.get("/admin/")

        assert response.status_code == 200
        assert b"ns/blocked" in response.content


def change_form_data(instance, **overrides):
    """POST data for the WorkloadInstance change form as rendered for instance."""
    data = {
        "app_name": instance.app_name,
        "pre_deployment_check": json.dumps(instance.pre_deployment_check),
        "post_deployment_check": json.dumps(instance.post_deployment_check),
        "annotations": json.dumps(instance.annotations),
        "observed_resource_version": instance.resource_version,
        "_save": "Save",
    }
    data.update(overrides)
    return data


@pytest.mark.django_db
class TestWorkloadInstanceAdmin:
    def test_reconcile_now_action(self, admin_client):
        instance = make_instance()

        response = admin_client.get(
            f"/admin/lifecycle/workloadinstance/{instance.pk}/actions/reconcile_now/"
        )

        assert response.status_code == 302
        assert CheckTask.objects.count() == 1
        assert WorkloadInstance.objects.get(pk=instance.pk).pre_deployment_phase == "Running"

    def test_reconcile_now_while_locked(self, admin_client):
        instance = make_instance()

        with reconcile_lock("ns", "checkout", owner="worker-1"):
            response = admin_client.get(
                f"/admin/lifecycle/workloadinstance/{instance.pk}/actions/reconcile_now/"
            )

        assert response.status_code == 302
        messages = [str(m) for m in get_messages(response.wsgi_request)]
        assert any("already in progress" in m for m in messages)
        assert not CheckTask.objects.exists()
        assert WorkloadInstance.objects.get(pk=instance.pk).pre_deployment_phase == "NotStarted"

    def test_change_view_loads(self, admin_client):
        instance = make_instance()
        response = admin_client.get(f"/admin/lifecycle/workloadinstance/{instance.pk}/change/")
        assert response.status_code == 200
        assert b'name="observed_resource_version"' in response.content

    def test_edit_saves_spec_fields(self, admin_client):
        instance = make_instance()

        response = admin_client.post(
            f"/admin/lifecycle/workloadinstance/{instance.pk}/change/",
            change_form_data(instance, app_name="storefront"),
        )

        assert response.status_code == 302
        stored = WorkloadInstance.objects.get(pk=instance.pk)
        assert stored.app_name == "storefront"
        assert stored.resource_version == instance.resource_version + 1

    def test_edit_from_stale_form_is_rejected(self, admin_client):
        instance = make_instance()
        WorkloadInstance.objects.filter(pk=instance.pk).update(
            app_name="edited-elsewhere", resource_version=F("resource_version") + 1
        )

        response = admin_client.post(
            f"/admin/lifecycle/workloadinstance/{instance.pk}/change/",
            change_form_data(instance, app_name="storefront"),
        )

        assert response.status_code == 200
        assert b"changed after you opened it" in response.content
        stored = WorkloadInstance.objects.get(pk=instance.pk)
        assert stored.app_name == "edited-elsewhere"
        assert stored.resource_version == instance.resource_version + 1

    def test_tasks_and_events_are_read_only(self, admin_client):
        assert not admin.site._registry[CheckTask].has_add_permission(None)
        assert not admin.site._registry[AuditEvent].has_change_permission(None)
