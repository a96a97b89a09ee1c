"""
Monitoring signals for workload reconciliation.

Emits structured signals at every reconcile boundary:
- lifecycle.reconcile.started
- lifecycle.reconcile.succeeded (with outcome: done / requeue)
- lifecycle.reconcile.failed (with error type and step)
- lifecycle.reconcile.duration
- lifecycle.phase.transition

Minimum tags on every signal:
- namespace / name of the WorkloadInstance
- direction (pre|post) when known
- phase of that direction
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from django.conf import settings

logger = logging.getLogger("apps.lifecycle.signals")


@dataclass
class SignalTags:
    """Required tags for all monitoring signals."""

    namespace: str
    name: str
    direction: str = ""
    phase: str = ""
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        base = {
            "namespace": self.namespace,
            "workload_instance": self.name,
            "direction": self.direction,
            "phase": self.phase,
        }
        base.update(self.extra)
        return base


class MonitoringBackend:
    """
    Abstract monitoring backend.

    Override emit() to send signals to your preferred monitoring system.
    """

    def emit(
        self,
        signal_name: str,
        tags: SignalTags,
        value: float | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        raise NotImplementedError


class LoggingBackend(MonitoringBackend):
    """Default backend: structured logging."""

    def emit(
        self,
        signal_name: str,
        tags: SignalTags,
        value: float | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        data = {
            "signal": signal_name,
            "value": value,
            **tags.to_dict(),
            **(extra or {}),
        }
        logger.info(f"[SIGNAL] {signal_name}", extra={"signal_data": data})


class StatsdBackend(MonitoringBackend):
    """StatsD backend for metrics collection."""

    def __init__(self, host: str = "localhost", port: int = 8125, prefix: str = "lifecycle"):
        self.host = host
        self.port = port
        self.prefix = prefix
        self._client = None

    def _get_client(self):
        if self._client is None:
            try:
                import statsd

                self._client = statsd.StatsClient(self.host, self.port, prefix=self.prefix)
            except ImportError:
                logger.warning("statsd package not installed, falling back to logging")
                return None
        return self._client

    def emit(
        self,
        signal_name: str,
        tags: SignalTags,
        value: float | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        client = self._get_client()
        if client is None:
            LoggingBackend().emit(signal_name, tags, value, extra)
            return

        # Format: prefix.signal_name.direction
        metric_name = f"{signal_name}.{tags.direction or 'none'}"

        if value is not None:
            if "duration" in signal_name:
                client.timing(metric_name, value)
            else:
                client.gauge(metric_name, value)
        else:
            client.incr(metric_name)


def get_monitoring_backend() -> MonitoringBackend:
    """Get configured monitoring backend."""
    backend_name = getattr(settings, "LIFECYCLE_METRICS_BACKEND", "logging")

    if backend_name == "statsd":
        host = getattr(settings, "STATSD_HOST", "localhost")
        port = getattr(settings, "STATSD_PORT", 8125)
        prefix = getattr(settings, "STATSD_PREFIX", "lifecycle")
        return StatsdBackend(host=host, port=port, prefix=prefix)

    return LoggingBackend()


# Global backend instance (lazy initialized)
_backend: MonitoringBackend | None = None


def _get_backend() -> MonitoringBackend:
    global _backend
    if _backend is None:
        _backend = get_monitoring_backend()
    return _backend


def emit_reconcile_started(tags: SignalTags) -> None:
    _get_backend().emit("lifecycle.reconcile.started", tags)


def emit_reconcile_succeeded(tags: SignalTags, duration_ms: float, outcome: str) -> None:
    _get_backend().emit(
        "lifecycle.reconcile.succeeded",
        tags,
        extra={"duration_ms": duration_ms, "outcome": outcome},
    )
    _get_backend().emit("lifecycle.reconcile.duration", tags, value=duration_ms)


def emit_reconcile_failed(
    tags: SignalTags,
    error_type: str,
    error_message: str,
    step: str,
    duration_ms: float,
) -> None:
    _get_backend().emit(
        "lifecycle.reconcile.failed",
        tags,
        extra={
            "error_type": error_type,
            "error_message": error_message,
            "step": step,
            "duration_ms": duration_ms,
        },
    )
    _get_backend().emit("lifecycle.reconcile.duration", tags, value=duration_ms)
    _get_backend().emit("lifecycle.reconcile.failure_count", tags, value=1)


def emit_phase_transition(tags: SignalTags, from_phase: str, to_phase: str) -> None:
    """Emit signal when a direction's phase changes."""
    _get_backend().emit(
        "lifecycle.phase.transition",
        tags,
        extra={"from_phase": from_phase, "to_phase": to_phase},
    )
