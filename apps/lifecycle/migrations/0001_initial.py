from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="WorkloadInstance",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                ("name", models.CharField(db_index=True, max_length=253)),
                (
                    "namespace",
                    models.CharField(db_index=True, default="default", max_length=253),
                ),
                (
                    "app_name",
                    models.CharField(
                        help_text="Owning application name, copied into each CheckTask.",
                        max_length=253,
                    ),
                ),
                (
                    "pre_deployment_check",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Pre-deployment check definition. 'task_payload' is copied verbatim into the CheckTask.",
                    ),
                ),
                (
                    "post_deployment_check",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Post-deployment check definition. 'task_payload' is copied verbatim into the CheckTask.",
                    ),
                ),
                (
                    "annotations",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Copied onto every CheckTask and AuditEvent for correlation.",
                    ),
                ),
                (
                    "pre_deployment_phase",
                    models.CharField(
                        choices=[
                            ("NotStarted", "Not started"),
                            ("Running", "Running"),
                            ("Succeeded", "Succeeded"),
                            ("Failed", "Failed"),
                        ],
                        db_index=True,
                        default="NotStarted",
                        max_length=20,
                    ),
                ),
                (
                    "pre_deployment_task_name",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Active pre-deployment CheckTask (empty unless Running).",
                        max_length=253,
                    ),
                ),
                (
                    "post_deployment_phase",
                    models.CharField(
                        choices=[
                            ("NotStarted", "Not started"),
                            ("Running", "Running"),
                            ("Succeeded", "Succeeded"),
                            ("Failed", "Failed"),
                        ],
                        db_index=True,
                        default="NotStarted",
                        max_length=20,
                    ),
                ),
                (
                    "post_deployment_task_name",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Active post-deployment CheckTask (empty unless Running).",
                        max_length=253,
                    ),
                ),
                (
                    "resource_version",
                    models.PositiveBigIntegerField(
                        default=1, help_text="Bumped on every write; stale writes are rejected."
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["namespace", "name"],
            },
        ),
        migrations.CreateModel(
            name="CheckTask",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                ("name", models.CharField(db_index=True, max_length=253)),
                (
                    "namespace",
                    models.CharField(db_index=True, default="default", max_length=253),
                ),
                (
                    "direction",
                    models.CharField(
                        choices=[("pre", "pre-deployment"), ("post", "post-deployment")],
                        default="pre",
                        max_length=10,
                    ),
                ),
                (
                    "service",
                    models.CharField(
                        help_text="Name of the WorkloadInstance this check runs for.",
                        max_length=253,
                    ),
                ),
                ("application", models.CharField(max_length=253)),
                (
                    "payload",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Opaque task payload handed to the executor.",
                    ),
                ),
                ("annotations", models.JSONField(blank=True, default=dict)),
                (
                    "phase",
                    models.CharField(
                        choices=[
                            ("Pending", "Pending"),
                            ("Running", "Running"),
                            ("Succeeded", "Succeeded"),
                            ("Failed", "Failed"),
                        ],
                        db_index=True,
                        default="Pending",
                        max_length=20,
                    ),
                ),
                ("resource_version", models.PositiveBigIntegerField(default=1)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["namespace", "-created_at"],
            },
        ),
        migrations.CreateModel(
            name="AuditEvent",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                ("name", models.CharField(db_index=True, max_length=253)),
                (
                    "namespace",
                    models.CharField(db_index=True, default="default", max_length=253),
                ),
                ("involved_kind", models.CharField(max_length=100)),
                ("involved_namespace", models.CharField(max_length=253)),
                ("involved_name", models.CharField(db_index=True, max_length=253)),
                (
                    "reason",
                    models.CharField(help_text="Resulting phase of the direction.", max_length=50),
                ),
                ("message", models.TextField()),
                ("type", models.CharField(default="Normal", max_length=20)),
                (
                    "action",
                    models.CharField(
                        choices=[("started", "Started"), ("finished", "Finished")],
                        max_length=20,
                    ),
                ),
                ("source_component", models.CharField(blank=True, default="", max_length=100)),
                (
                    "reporting_controller",
                    models.CharField(blank=True, default="", max_length=253),
                ),
                (
                    "reporting_instance",
                    models.CharField(blank=True, default="", max_length=253),
                ),
                ("annotations", models.JSONField(blank=True, default=dict)),
                ("event_time", models.DateTimeField()),
                ("first_timestamp", models.DateTimeField()),
                ("last_timestamp", models.DateTimeField()),
                ("resource_version", models.PositiveBigIntegerField(default=1)),
            ],
            options={
                "ordering": ["-event_time"],
            },
        ),
        migrations.AddConstraint(
            model_name="workloadinstance",
            constraint=models.UniqueConstraint(
                fields=("namespace", "name"), name="unique_workload_instance_name"
            ),
        ),
        migrations.AddIndex(
            model_name="workloadinstance",
            index=models.Index(
                fields=["pre_deployment_phase", "post_deployment_phase"],
                name="lifecycle_wi_phases_idx",
            ),
        ),
        migrations.AddConstraint(
            model_name="checktask",
            constraint=models.UniqueConstraint(
                fields=("namespace", "name"), name="unique_check_task_name"
            ),
        ),
        migrations.AddConstraint(
            model_name="auditevent",
            constraint=models.UniqueConstraint(
                fields=("namespace", "name"), name="unique_audit_event_name"
            ),
        ),
        migrations.AddIndex(
            model_name="auditevent",
            index=models.Index(
                fields=["involved_namespace", "involved_name", "-event_time"],
                name="lifecycle_ae_involved_idx",
            ),
        ),
    ]
