"""
Management command to re-enqueue every incomplete WorkloadInstance.

Usage:
    python manage.py resync_workloads
    python manage.py resync_workloads --dry-run
"""

from django.core.management.base import BaseCommand

from apps.lifecycle.models import WorkloadInstance
from apps.lifecycle.tasks import resync_workload_instances


class Command(BaseCommand):
    help = "Queue a reconcile for every WorkloadInstance whose checks are not finished."

    def add_arguments(self, parser):
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="List the instances that would be queued",
        )

    def handle(self, *args, **options):
        if options["dry_run"]:
            refs = WorkloadInstance.objects.incomplete().values_list("namespace", "name")
            for namespace, name in refs:
                self.stdout.write(f"  {namespace}/{name}")
            self.stdout.write(f"{len(refs)} instance(s) would be queued.")
            return

        result = resync_workload_instances()
        self.stdout.write(
            self.style.SUCCESS(
                f"Queued {result['queued']} reconcile(s) for {result['count']} "
                "incomplete instance(s)."
            )
        )
