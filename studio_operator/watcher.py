"""
Deployment watch — turns notifications about owned workloads into status
updates and drift repairs.

  MODIFIED  → aggregator (ready replicas), unless the studio is being deleted
  DELETED   → module marked Error, then its provisioning group re-run once
  other     → ignored

Deleting a workload out-of-band is drift to heal, not a request to stop
managing the module.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional

from studio_operator import metrics
from studio_operator.config import settings
from studio_operator.models import Module
from studio_operator.resources.common import MODULE_LABEL

logger = logging.getLogger("studio-operator.watcher")


class EventKind(str, Enum):
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"


@dataclass(frozen=True)
class DeploymentEvent:
    kind: EventKind
    module: Module
    instance: str
    deployment: str
    ready_replicas: int = 0
    terminating: bool = False


def owner_name(deployment: Mapping) -> Optional[str]:
    """Name of the studio owning a workload, from its owner references."""
    refs = (deployment.get("metadata") or {}).get("ownerReferences") or []
    for ref in refs:
        if ref.get("kind") == settings.CRD_KIND:
            return ref.get("name")
    return None


def translate(event_type: Optional[str], deployment: Mapping) -> Optional[DeploymentEvent]:
    """Classify a raw watch notification. None means: nothing to do."""
    try:
        kind = EventKind(event_type)
    except ValueError:
        return None

    metadata = deployment.get("metadata") or {}
    module = Module.from_label((metadata.get("labels") or {}).get(MODULE_LABEL))
    if module is None:
        logger.debug(f"Ignoring deployment {metadata.get('name')}: unrecognized module label")
        return None

    instance = owner_name(deployment)
    if instance is None:
        logger.debug(f"Ignoring deployment {metadata.get('name')}: no studio owner")
        return None

    return DeploymentEvent(
        kind=kind,
        module=module,
        instance=instance,
        deployment=metadata.get("name", ""),
        ready_replicas=(deployment.get("status") or {}).get("readyReplicas") or 0,
        terminating=bool(metadata.get("deletionTimestamp")),
    )


class DeploymentWatch:
    """Dispatches translated deployment events to the aggregator or the reconciler."""

    def __init__(self, cluster, aggregator, reconciler):
        self.cluster = cluster
        self.aggregator = aggregator
        self.reconciler = reconciler

    def handle(self, event_type: Optional[str], deployment: Mapping):
        event = translate(event_type, deployment)
        if event is None:
            return
        logger.info(f"Event {event.kind.value} for deployment {event.deployment} "
                    f"(module={event.module.value}, readyReplicas={event.ready_replicas})")

        owner = self.cluster.get_studio(event.instance)
        if owner is None or (owner.get("metadata") or {}).get("deletionTimestamp"):
            # Cascading deletion takes care of the rest.
            logger.info(f"Studio {event.instance} is gone or being deleted — ignoring event")
            return

        if event.kind == EventKind.MODIFIED:
            if event.terminating:
                return
            self.aggregator.observe_ready(event.instance, event.module, event.ready_replicas)
        else:
            self._repair(event, owner)

    def _repair(self, event: DeploymentEvent, owner: Mapping):
        logger.warning(f"Studio {event.instance}: deployment {event.deployment} deleted "
                       f"unexpectedly — re-provisioning {event.module.group.value} modules")
        self.aggregator.observe_deleted(event.instance, event.module)
        metrics.DRIFT_REPAIRS.labels(module=event.module.value).inc()
        self.reconciler.provision_group(owner, event.module.group)
