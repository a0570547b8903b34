"""
Module provisioners: pure functions from desired state to object manifests.
"""
from studio_operator.resources.common import (
    MANAGED_BY_LABEL,
    MODULE_LABEL,
    OPERATOR_ID,
    ClusterCapabilities,
    Endpoints,
)

__all__ = [
    "MANAGED_BY_LABEL",
    "MODULE_LABEL",
    "OPERATOR_ID",
    "ClusterCapabilities",
    "Endpoints",
]
