"""Admin configuration for lifecycle models."""

from django import forms
from django.contrib import admin
from django_object_actions import DjangoObjectActions
from django_object_actions import action as object_action

from apps.lifecycle.models import AuditEvent, CheckTask, WorkloadInstance
from apps.lifecycle.receivers import schedule_reconcile
from apps.lifecycle.reconciler import ReconcileError
from apps.lifecycle.store import DjangoObjectStore, StoreError
from apps.lifecycle.tasks import ReconcileInProgress, run_reconcile


class ReadOnlyAdminMixin:
    """Objects written only by the reconciler or the task executor."""

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False


class WorkloadInstanceAdminForm(forms.ModelForm):
    """
    Change form that remembers the resource_version it was rendered with.

    Saving checks that version, not the one read when the POST arrives, so an
    edit made by someone else in between is rejected instead of overwritten.
    """

    observed_resource_version = forms.IntegerField(
        widget=forms.HiddenInput, required=False, min_value=1
    )

    class Meta:
        model = WorkloadInstance
        fields = "__all__"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        if self.instance.pk is not None:
            self.fields["observed_resource_version"].initial = self.instance.resource_version

    def clean(self):
        cleaned_data = super().clean()
        observed = cleaned_data.get("observed_resource_version")
        if self.instance.pk is not None and observed is not None:
            current = (
                WorkloadInstance.objects.filter(pk=self.instance.pk)
                .values_list("resource_version", flat=True)
                .first()
            )
            if current != observed:
                raise forms.ValidationError(
                    "This WorkloadInstance was changed after you opened it "
                    f"(version {observed}, now {current}). Reload and reapply your edit.",
                    code="stale",
                )
        return cleaned_data


@admin.register(WorkloadInstance)
class WorkloadInstanceAdmin(DjangoObjectActions, admin.ModelAdmin):
    """Admin for WorkloadInstance model."""

    form = WorkloadInstanceAdminForm

    list_display = [
        "name",
        "namespace",
        "app_name",
        "pre_deployment_phase",
        "post_deployment_phase",
        "updated_at",
    ]
    list_filter = ["pre_deployment_phase", "post_deployment_phase", "namespace"]
    search_fields = ["name", "namespace", "app_name"]
    readonly_fields = [
        "pre_deployment_phase",
        "pre_deployment_task_name",
        "post_deployment_phase",
        "post_deployment_task_name",
        "resource_version",
        "created_at",
        "updated_at",
    ]
    actions = ["reconcile_selected"]
    change_actions = ["reconcile_now"]

    fieldsets = [
        (
            "Identification",
            {"fields": ["name", "namespace", "app_name", "observed_resource_version"]},
        ),
        (
            "Checks",
            {"fields": ["pre_deployment_check", "post_deployment_check", "annotations"]},
        ),
        (
            "Status",
            {
                "fields": [
                    "pre_deployment_phase",
                    "pre_deployment_task_name",
                    "post_deployment_phase",
                    "post_deployment_task_name",
                ]
            },
        ),
        (
            "Metadata",
            {
                "fields": ["resource_version", "created_at", "updated_at"],
                "classes": ["collapse"],
            },
        ),
    ]

    def get_readonly_fields(self, request, obj=None):
        if obj is not None:
            return ["name", "namespace", *self.readonly_fields]
        return self.readonly_fields

    def save_model(self, request, obj, form, change):
        if not change:
            super().save_model(request, obj, form, change)
            return

        # Only spec fields are written; status belongs to the reconciler.
        observed = form.cleaned_data.get("observed_resource_version")
        if observed is not None:
            obj.resource_version = observed
        try:
            DjangoObjectStore().update(obj)
        except StoreError as e:
            self.message_user(request, f"Update rejected: {e}", level="error")
            return
        schedule_reconcile(obj.namespace, obj.name)

    @admin.action(description="Reconcile selected")
    def reconcile_selected(self, request, queryset):
        count = 0
        for instance in queryset:
            schedule_reconcile(instance.namespace, instance.name)
            count += 1
        self.message_user(request, f"{count} reconcile(s) queued.")

    @object_action(label="Reconcile now", description="Run one reconcile pass immediately")
    def reconcile_now(self, request, obj):
        try:
            result = run_reconcile(obj.namespace, obj.name)
        except ReconcileInProgress as e:
            self.message_user(request, f"{e}, try again shortly", level="warning")
            return
        except ReconcileError as e:
            self.message_user(request, f"Reconcile failed: {e}", level="error")
            return

        message = f"Reconcile of '{obj.namespace}/{obj.name}': {result.action}"
        if not result.done:
            message = f"{message}, check again in {result.requeue_after:g}s"
        self.message_user(request, message)


@admin.register(CheckTask)
class CheckTaskAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    """Admin for CheckTask model."""

    list_display = ["name", "namespace", "direction", "service", "application", "phase", "created_at"]
    list_filter = ["phase", "direction", "namespace"]
    search_fields = ["name", "service", "application"]


@admin.register(AuditEvent)
class AuditEventAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    """Admin for AuditEvent model."""

    list_display = ["event_time", "involved_namespace", "involved_name", "action", "reason", "message"]
    list_filter = ["action", "reason", "involved_namespace"]
    search_fields = ["name", "involved_name", "message"]
    date_hierarchy = "event_time"
