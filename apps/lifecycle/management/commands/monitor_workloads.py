"""
Management command to monitor WorkloadInstances and their checks.

Usage:
    # List WorkloadInstances
    python manage.py monitor_workloads --limit 10

    # Only instances still being gated, in one namespace
    python manage.py monitor_workloads --incomplete --namespace shop

    # Show details (tasks and audit events) for one instance
    python manage.py monitor_workloads --name checkout --namespace shop
"""

from django.core.management.base import BaseCommand

from apps.lifecycle.models import AuditEvent, CheckTask, WorkloadInstance


class Command(BaseCommand):
    help = "Monitor WorkloadInstances: list, filter, and show details."

    def add_arguments(self, parser):
        parser.add_argument(
            "--limit",
            type=int,
            default=10,
            help="Number of instances to show (default: 10)",
        )
        parser.add_argument("--namespace", type=str, help="Filter by namespace")
        parser.add_argument(
            "--incomplete",
            action="store_true",
            help="Only show instances whose checks are not finished",
        )
        parser.add_argument(
            "--name",
            type=str,
            help="Show details for one WorkloadInstance (use with --namespace)",
        )

    def handle(self, *args, **options):
        name = options.get("name")
        namespace = options.get("namespace")

        if name:
            self.show_instance_details(namespace or "default", name)
        else:
            self.list_instances(namespace, options["incomplete"], options["limit"])

    def list_instances(self, namespace, incomplete, limit):
        qs = WorkloadInstance.objects.all()
        if namespace:
            qs = qs.filter(namespace=namespace)
        if incomplete:
            qs = qs.incomplete()
        qs = qs[:limit]

        if not qs:
            self.stdout.write(self.style.WARNING("No workload instances found."))
            return

        self.stdout.write(
            f"{'Namespace':<16} {'Name':<32} {'Pre':<12} {'Post':<12} {'Updated':<20}"
        )
        self.stdout.write("-" * 96)
        for instance in qs:
            self.stdout.write(
                f"{instance.namespace:<16} {instance.name:<32} {instance.pre_deployment_phase:<12} "
                f"{instance.post_deployment_phase:<12} {instance.updated_at:%Y-%m-%d %H:%M:%S}"
            )

    def show_instance_details(self, namespace, name):
        try:
            instance = WorkloadInstance.objects.get(namespace=namespace, name=name)
        except WorkloadInstance.DoesNotExist:
            self.stdout.write(self.style.ERROR(f"WorkloadInstance not found: {namespace}/{name}"))
            return

        self.stdout.write(self.style.HTTP_INFO(f"WorkloadInstance: {namespace}/{name}"))
        self.stdout.write(f"  App: {instance.app_name}")
        self.stdout.write(
            f"  Pre-deployment: {instance.pre_deployment_phase} {instance.pre_deployment_task_name}"
        )
        self.stdout.write(
            f"  Post-deployment: {instance.post_deployment_phase} {instance.post_deployment_task_name}"
        )
        self.stdout.write(f"  Completed: {instance.is_completed()}")
        self.stdout.write(f"  Resource version: {instance.resource_version}")
        self.stdout.write("")

        self.stdout.write("Check Tasks:")
        tasks = CheckTask.objects.filter(namespace=namespace, service=name)
        for task in tasks:
            self.stdout.write(f"  - {task.name:<44} {task.direction:<5} {task.phase}")
        self.stdout.write("")

        self.stdout.write("Audit Events:")
        events = AuditEvent.objects.filter(involved_namespace=namespace, involved_name=name)
        for event in events.order_by("event_time"):
            self.stdout.write(
                f"  - {event.event_time:%Y-%m-%d %H:%M:%S} {event.reason:<10} {event.message}"
            )
        self.stdout.write("")
