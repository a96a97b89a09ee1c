"""
Management command to run one reconcile pass for a WorkloadInstance.

Usage:
    # Reconcile checkout in the default namespace
    python manage.py reconcile_workload checkout

    # Another namespace, JSON output
    python manage.py reconcile_workload checkout --namespace shop --json

    # Queue the pass on a Celery worker instead of running it here
    python manage.py reconcile_workload checkout --async
"""

import json

from django.core.management.base import BaseCommand, CommandError

from apps.lifecycle.dtos import ReconcileAction
from apps.lifecycle.reconciler import ReconcileError
from apps.lifecycle.tasks import ReconcileInProgress, enqueue_reconcile, run_reconcile


class Command(BaseCommand):
    help = "Run one reconcile pass for a WorkloadInstance."

    def add_arguments(self, parser):
        parser.add_argument("name", type=str, help="WorkloadInstance name")
        parser.add_argument(
            "--namespace",
            type=str,
            default="default",
            help="WorkloadInstance namespace (default: default)",
        )
        parser.add_argument(
            "--async",
            action="store_true",
            dest="run_async",
            help="Queue the pass on a Celery worker",
        )
        parser.add_argument(
            "--json",
            action="store_true",
            help="Output result as JSON",
        )

    def handle(self, *args, **options):
        namespace = options["namespace"]
        name = options["name"]

        if options["run_async"]:
            task_id = enqueue_reconcile(namespace, name)
            if task_id is None:
                self.stdout.write(f"Reconcile of {namespace}/{name} already queued")
            else:
                self.stdout.write(
                    self.style.SUCCESS(f"Queued reconcile of {namespace}/{name} (task {task_id})")
                )
            return

        try:
            result = run_reconcile(namespace, name)
        except ReconcileInProgress as e:
            raise CommandError(str(e))
        except ReconcileError as e:
            raise CommandError(f"Reconcile failed: {e}")

        if options["json"]:
            self.stdout.write(json.dumps(result.to_dict(), indent=2, default=str))
            return

        if result.action == ReconcileAction.NOT_FOUND:
            self.stdout.write(self.style.WARNING(f"WorkloadInstance not found: {namespace}/{name}"))
            return

        self.stdout.write(f"WorkloadInstance: {namespace}/{name}")
        self.stdout.write(f"  Action: {result.action}")
        if result.direction:
            self.stdout.write(f"  Direction: {result.direction}")
            self.stdout.write(f"  Phase: {result.phase}")
        if result.task_name:
            self.stdout.write(f"  CheckTask: {result.task_name}")
        self.stdout.write(f"  Duration: {result.duration_ms:.2f} ms")

        if result.done:
            self.stdout.write(self.style.SUCCESS("✓ Done"))
        else:
            self.stdout.write(self.style.NOTICE(f"Requeue after {result.requeue_after:g}s"))
