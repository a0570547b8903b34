"""
Prometheus metrics for the operator.

Exposed over HTTP only when METRICS_PORT is set (see operator startup).
"""
import logging

from prometheus_client import Counter, start_http_server

from studio_operator.config import settings

logger = logging.getLogger("studio-operator.metrics")

RECONCILE_PASSES = Counter(
    "studio_operator_reconcile_passes_total",
    "Reconcile passes by outcome",
    ["result"],
)
MODULE_TRANSITIONS = Counter(
    "studio_operator_module_transitions_total",
    "Module status transitions",
    ["module", "state"],
)
DRIFT_REPAIRS = Counter(
    "studio_operator_drift_repairs_total",
    "Owned workloads re-provisioned after an unexpected deletion",
    ["module"],
)
STATUS_CONFLICTS = Counter(
    "studio_operator_status_conflicts_total",
    "Status writes rejected because of a concurrent write",
)

_server_started = False


def start_metrics_server():
    """Start the /metrics endpoint once, if a port is configured."""
    global _server_started
    if _server_started or not settings.METRICS_PORT:
        return
    start_http_server(settings.METRICS_PORT)
    _server_started = True
    logger.info(f"Metrics exposed on :{settings.METRICS_PORT}")
