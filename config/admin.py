"""Custom admin site for the workload lifecycle console."""

from datetime import timedelta

from django.contrib.admin import AdminSite
from django.db.models import Count, Q
from django.utils import timezone


class LifecycleAdminSite(AdminSite):
    site_header = "Workload Lifecycle"
    site_title = "Workload Lifecycle"
    index_title = "Dashboard"
    index_template = "admin/dashboard.html"

    def index(self, request, extra_context=None):
        extra_context = extra_context or {}
        extra_context.update(self._get_dashboard_context())
        return super().index(request, extra_context=extra_context)

    def _get_dashboard_context(self):
        from apps.lifecycle.models import AuditEvent, CheckTask, WorkloadInstance
        from apps.lifecycle.phases import WorkloadPhase

        last_24h = timezone.now() - timedelta(hours=24)

        # --- Phase breakdown per direction ---
        phase_counts = {}
        for direction in ("pre", "post"):
            field = f"{direction}_deployment_phase"
            counts = dict(
                WorkloadInstance.objects.values_list(field)
                .annotate(count=Count("id"))
                .values_list(field, "count")
            )
            phase_counts[direction] = [
                {"phase": phase.label, "count": counts.get(phase.value, 0)}
                for phase in WorkloadPhase
            ]

        total = WorkloadInstance.objects.count()
        incomplete = WorkloadInstance.objects.incomplete().count()

        # --- Instances gated on a failed check ---
        failed_instances = list(
            WorkloadInstance.objects.filter(
                Q(pre_deployment_phase=WorkloadPhase.FAILED)
                | Q(post_deployment_phase=WorkloadPhase.FAILED)
            )
            .order_by("-updated_at")[:10]
        )

        return {
            "instance_totals": {
                "total": total,
                "incomplete": incomplete,
                "completed": total - incomplete,
            },
            "phase_counts": phase_counts,
            "running_tasks": CheckTask.objects.count(),
            "failed_instances": failed_instances,
            "recent_events": list(
                AuditEvent.objects.filter(event_time__gte=last_24h).order_by("-event_time")[:10]
            ),
        }
