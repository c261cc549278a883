# core/metrics.py: in-process metrics collection and RBAC auditing

import time
import threading
import logging
from typing import Dict, Any, Optional, List
from dataclasses import dataclass, field

@dataclass
class MetricCounter:
    """A counter metric that can only increase."""
    name: str
    value: int = 0
    labels: Dict[str, str] = field(default_factory=dict)
    last_updated: float = field(default_factory=time.time)

@dataclass
class MetricHistogram:
    """A histogram metric for tracking distributions."""
    name: str
    buckets: List[float] = field(default_factory=lambda: [1.0, 5.0, 10.0, 25.0, 50.0, 100.0, 250.0, 500.0, 1000.0, 2500.0])
    counts: List[int] = field(default_factory=lambda: [0] * 10)
    sum: float = 0.0
    count: int = 0
    labels: Dict[str, str] = field(default_factory=dict)
    last_updated: float = field(default_factory=time.time)

class MetricsCollector:
    """Thread-safe metrics collector."""

    def __init__(self):
        self._lock = threading.RLock()
        self._counters: Dict[str, MetricCounter] = {}
        self._histograms: Dict[str, MetricHistogram] = {}
        self._start_time = time.time()

    def _get_metric_key(self, name: str, labels: Dict[str, str] = None) -> str:
        """Generate a unique key for a metric with labels."""
        if not labels:
            return name
        sorted_labels = sorted(labels.items())
        label_str = ",".join(f"{k}={v}" for k, v in sorted_labels)
        return f"{name}{{{label_str}}}"

    def increment_counter(self, name: str, value: int = 1, labels: Dict[str, str] = None):
        """Increment a counter metric."""
        with self._lock:
            key = self._get_metric_key(name, labels)
            if key not in self._counters:
                self._counters[key] = MetricCounter(name=name, labels=labels or {})
            self._counters[key].value += value
            self._counters[key].last_updated = time.time()

    def observe_histogram(self, name: str, value: float, labels: Dict[str, str] = None):
        """Observe a value in a histogram metric."""
        with self._lock:
            key = self._get_metric_key(name, labels)
            if key not in self._histograms:
                self._histograms[key] = MetricHistogram(name=name, labels=labels or {})

            histogram = self._histograms[key]
            histogram.sum += value
            histogram.count += 1
            histogram.last_updated = time.time()

            for i, bucket in enumerate(histogram.buckets):
                if value <= bucket:
                    histogram.counts[i] += 1
                    break
            else:
                # Value exceeds all buckets, increment the last one
                histogram.counts[-1] += 1

    def get_counter(self, name: str, labels: Dict[str, str] = None) -> int:
        """Get the current value of a counter."""
        with self._lock:
            key = self._get_metric_key(name, labels)
            counter = self._counters.get(key)
            return counter.value if counter else 0

    def get_histogram_stats(self, name: str, labels: Dict[str, str] = None) -> Dict[str, Any]:
        """Get histogram statistics."""
        with self._lock:
            key = self._get_metric_key(name, labels)
            histogram = self._histograms.get(key, MetricHistogram(name=name, labels=labels or {}))

            return {
                "count": histogram.count,
                "sum": histogram.sum,
                "avg": histogram.sum / histogram.count if histogram.count else 0.0,
                "buckets": dict(zip(histogram.buckets, histogram.counts))
            }

    def get_all_metrics(self) -> Dict[str, Any]:
        """Get all metrics in a structured format."""
        with self._lock:
            metrics = {
                "counters": {},
                "histograms": {},
                "uptime_seconds": time.time() - self._start_time,
                "timestamp": time.time()
            }

            for counter in self._counters.values():
                metrics["counters"].setdefault(counter.name, []).append({
                    "value": counter.value,
                    "labels": counter.labels,
                    "last_updated": counter.last_updated
                })

            for histogram in self._histograms.values():
                metrics["histograms"].setdefault(histogram.name, []).append({
                    "stats": self.get_histogram_stats(histogram.name, histogram.labels),
                    "labels": histogram.labels,
                    "last_updated": histogram.last_updated
                })

            return metrics

    def reset_metrics(self):
        """Reset all metrics to zero."""
        with self._lock:
            self._counters.clear()
            self._histograms.clear()
            self._start_time = time.time()

# Global metrics collector instance
_metrics = MetricsCollector()

audit_logger = logging.getLogger("rbac.audit")

def increment_counter(name: str, value: int = 1, labels: Dict[str, str] = None):
    """Increment a counter metric."""
    _metrics.increment_counter(name, value, labels)

def observe_histogram(name: str, value: float, labels: Dict[str, str] = None):
    """Observe a value in a histogram metric."""
    _metrics.observe_histogram(name, value, labels)

def get_counter(name: str, labels: Dict[str, str] = None) -> int:
    """Get the current value of a counter."""
    return _metrics.get_counter(name, labels)

def get_histogram_stats(name: str, labels: Dict[str, str] = None) -> Dict[str, Any]:
    """Get histogram statistics."""
    return _metrics.get_histogram_stats(name, labels)

def get_all_metrics() -> Dict[str, Any]:
    """Get all metrics in a structured format."""
    return _metrics.get_all_metrics()

def reset_metrics():
    """Reset all metrics to zero."""
    _metrics.reset_metrics()


# ============================================================================
# RBAC-Specific Metrics and Auditing
# ============================================================================

def record_rbac_resolution(source: str, role: str, latency_ms: Optional[float] = None):
    """
    Record a completed role resolution.

    Args:
        source: Store the role came from ('user_roles', 'product_license_assignments', 'default')
        role: Resolved role
        latency_ms: Wall time of the resolution
    """
    increment_counter("rbac.resolutions")
    increment_counter("rbac.resolutions.by_source", labels={"source": source})
    record_role_distribution(role)
    if latency_ms is not None:
        observe_histogram("rbac.resolution_ms", latency_ms)


def record_store_error(store: str, error_type: str):
    """Record an unexpected failure from a role store (masked by a default role)."""
    increment_counter("rbac.store_errors", labels={"store": store})
    increment_counter("rbac.store_errors.by_type", labels={"type": error_type})


def record_stale_discard():
    """Record a superseded resolution result that arrived late and was dropped."""
    increment_counter("rbac.session.stale_discarded")


def record_session_eviction(reason: str):
    """Record a role session dropped by the registry ('expired' or 'capacity')."""
    increment_counter("rbac.session.evicted", labels={"reason": reason})


def record_rbac_check(allowed: bool, capability: str, role: Optional[str], route: str = ""):
    """
    Record an RBAC authorization check.

    Args:
        allowed: Whether access was granted
        capability: Capability being checked
        role: Caller's effective role (None when unresolved)
        route: Route being accessed
    """
    if allowed:
        increment_counter("rbac.allowed")
        increment_counter("rbac.allowed.by_capability", labels={"capability": capability})
    else:
        increment_counter("rbac.denied")
        increment_counter("rbac.denied.by_capability", labels={"capability": capability})
        if route:
            increment_counter("rbac.denied.by_route", labels={"route": route})


def record_role_distribution(role: str):
    """Record role distribution (tracks which roles are being resolved)."""
    increment_counter("rbac.role_distribution", labels={"role": role})


def audit_rbac_denial(
    capability: str,
    user_id: Optional[str],
    role: Optional[str],
    route: str,
    method: str = "unknown",
    metadata: Optional[Dict[str, Any]] = None
):
    """
    Emit audit log entry for RBAC denial.

    Args:
        capability: Capability that was denied
        user_id: User ID who was denied (None for anonymous)
        role: User's effective role
        route: Route/endpoint being accessed
        method: HTTP method
        metadata: Additional context
    """
    audit_entry = {
        "event": "rbac_denial",
        "capability": capability,
        "user_id": user_id or "anonymous",
        "role": role,
        "route": route,
        "method": method,
        "timestamp": time.time(),
    }

    if metadata:
        audit_entry["metadata"] = metadata

    audit_logger.warning(
        f"RBAC_DENIAL capability={capability} user={user_id or 'anonymous'} "
        f"role={role} route={method} {route}",
        extra={"audit": audit_entry}
    )

    increment_counter("rbac.audit.denials")


def audit_role_override(action: str, operator_id: str, session_key: str, role: Optional[str] = None, scope_id: Optional[str] = None):
    """
    Emit audit log entry for an operator role preview being applied or cleared.

    Args:
        action: 'apply' or 'clear'
        operator_id: Identifier of the operator performing the action
        session_key: Session the override applies to
        role: Previewed role (for 'apply')
        scope_id: Previewed customer scope (for 'apply')
    """
    audit_entry = {
        "event": "role_override",
        "action": action,
        "operator_id": operator_id,
        "session_key": session_key,
        "role": role,
        "scope_id": scope_id,
        "timestamp": time.time(),
    }

    audit_logger.warning(
        f"ROLE_OVERRIDE action={action} operator={operator_id} session={session_key} "
        f"role={role} scope={scope_id}",
        extra={"audit": audit_entry}
    )

    increment_counter("rbac.audit.overrides", labels={"action": action})


def get_rbac_metrics() -> Dict[str, Any]:
    """
    Get all RBAC-related metrics, grouped by category.

    Returns:
        Dictionary of RBAC counters keyed by second path segment
        (e.g. 'resolutions', 'store_errors', 'denied').
    """
    all_metrics = _metrics.get_all_metrics()

    rbac_metrics: Dict[str, Any] = {
        "resolutions": {},
        "store_errors": {},
        "session": {},
        "audit": {},
    }

    for metric_name, metric_data in all_metrics.get("counters", {}).items():
        if metric_name.startswith("rbac."):
            category = metric_name.split(".")[1]
            rbac_metrics.setdefault(category, {})[metric_name] = metric_data

    rbac_metrics["resolution_ms"] = get_histogram_stats("rbac.resolution_ms")
    return rbac_metrics


__all__ = [
    'MetricsCollector', 'MetricCounter', 'MetricHistogram',
    'increment_counter', 'observe_histogram', 'get_counter',
    'get_histogram_stats', 'get_all_metrics', 'reset_metrics',
    'record_rbac_resolution', 'record_store_error', 'record_stale_discard',
    'record_session_eviction',
    'record_rbac_check', 'record_role_distribution',
    'audit_rbac_denial', 'audit_role_override', 'get_rbac_metrics',
]
