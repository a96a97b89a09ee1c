"""
Workload lifecycle app.

Gates each WorkloadInstance on a pre-deployment and a post-deployment check:

    pre-deployment: NotStarted → Running → Succeeded | Failed
    post-deployment: NotStarted → Running → Succeeded | Failed  (only after pre Succeeded)

Key concepts:
- Level-triggered reconciler: every pass re-reads state and moves at most one step
- CheckTasks are created under generated names and deleted once their result is folded
- Append-only AuditEvents record every started/finished transition
- Optimistic concurrency on every write (resource_version)
"""

default_app_config = "apps.lifecycle.apps.LifecycleConfig"
