"""
Views for the lifecycle app.

Provides HTTP endpoints for reading WorkloadInstance phases and triggering reconciles.
"""

import logging
from typing import Any

from django.http import JsonResponse
from django.utils.decorators import method_decorator
from django.views import View
from django.views.decorators.csrf import csrf_exempt

from apps.lifecycle.dtos import ReconcileAction
from apps.lifecycle.models import WorkloadInstance
from apps.lifecycle.reconciler import ReconcileError
from apps.lifecycle.tasks import ReconcileInProgress, enqueue_reconcile, run_reconcile

logger = logging.getLogger(__name__)


class JSONResponseMixin:
    """Mixin for JSON responses."""

    def json_response(self, data: Any, status: int = 200) -> JsonResponse:
        return JsonResponse(data, status=status)

    def error_response(self, message: str, status: int = 400, **extra: Any) -> JsonResponse:
        return JsonResponse({"error": message, **extra}, status=status)


def _instance_summary(instance: WorkloadInstance) -> dict[str, Any]:
    return {
        "namespace": instance.namespace,
        "name": instance.name,
        "app_name": instance.app_name,
        **instance.status_dict(),
        "resource_version": instance.resource_version,
        "updated_at": instance.updated_at.isoformat(),
    }


@method_decorator(csrf_exempt, name="dispatch")
class WorkloadInstanceListView(JSONResponseMixin, View):
    """
    API endpoint for listing WorkloadInstances.

    GET /lifecycle/instances/

    Query params:
        namespace: Filter by namespace
        incomplete: "1"/"true" to list only instances still being gated
        limit: Max results (default 50)
    """

    def get(self, request):
        namespace = request.GET.get("namespace")
        incomplete = request.GET.get("incomplete", "").lower() in {"1", "true", "yes"}
        try:
            limit = int(request.GET.get("limit", 50))
        except ValueError:
            return self.error_response("limit must be an integer", status=400)

        queryset = WorkloadInstance.objects.all()
        if namespace:
            queryset = queryset.filter(namespace=namespace)
        if incomplete:
            queryset = queryset.incomplete()

        instances = [_instance_summary(instance) for instance in queryset[:limit]]
        return self.json_response({"count": len(instances), "instances": instances})


@method_decorator(csrf_exempt, name="dispatch")
class WorkloadInstanceStatusView(JSONResponseMixin, View):
    """
    API endpoint for reading one WorkloadInstance's phases.

    GET /lifecycle/instances/<namespace>/<name>/
        Pre/post-deployment phases, active task names and completion.
        Schedulers gate on `completed` / the phase values.
    """

    def get(self, request, namespace: str, name: str):
        try:
            instance = WorkloadInstance.objects.get(namespace=namespace, name=name)
        except WorkloadInstance.DoesNotExist:
            return self.error_response(
                f"WorkloadInstance not found: {namespace}/{name}", status=404
            )

        data = _instance_summary(instance)
        data["annotations"] = instance.annotations
        data["created_at"] = instance.created_at.isoformat()
        return self.json_response(data)


@method_decorator(csrf_exempt, name="dispatch")
class WorkloadInstanceReconcileView(JSONResponseMixin, View):
    """
    API endpoint for triggering a reconcile.

    POST /lifecycle/instances/<namespace>/<name>/reconcile/
        Queue a reconcile pass (Celery); a pass already queued absorbs the request.

    POST /lifecycle/instances/<namespace>/<name>/reconcile/sync/
        Run one pass in-process and return its result (409 while another pass runs).
    """

    def post(self, request, namespace: str, name: str, mode: str = "async"):
        if mode == "sync":
            try:
                result = run_reconcile(namespace, name)
            except ReconcileInProgress as e:
                return self.error_response(str(e), status=409)
            except ReconcileError as e:
                return self.error_response(str(e), status=500, step=e.step)

            if result.action == ReconcileAction.NOT_FOUND:
                return self.error_response(
                    f"WorkloadInstance not found: {namespace}/{name}", status=404
                )
            return self.json_response(result.to_dict())

        if not WorkloadInstance.objects.filter(namespace=namespace, name=name).exists():
            return self.error_response(
                f"WorkloadInstance not found: {namespace}/{name}", status=404
            )

        task_id = enqueue_reconcile(namespace, name)
        if task_id is None:
            return self.json_response(
                {
                    "status": "pending",
                    "task_id": None,
                    "message": f"Reconcile of {namespace}/{name} already queued",
                },
                status=202,
            )
        return self.json_response(
            {
                "status": "queued",
                "task_id": task_id,
                "message": f"Reconcile of {namespace}/{name} queued",
            },
            status=202,
        )
