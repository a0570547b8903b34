"""
Status aggregator — the module readiness state machine.

Module transitions:
  Modified with >= 1 ready replica, module not Ready  →  Ready
  Unexpected deletion                                 →  Error

After every observation the global state is recomputed from the five
module states (no hysteresis, no coalescing). The aggregator never sets a
global Error; that is only representable per module.

Writes go through a resource-version compare-and-swap, so a concurrent
reconcile pass writing the same status makes one side re-read and re-apply
instead of silently overwriting the other. A re-applied pass never moves
a Ready module back to Deploying.
"""

import logging
from typing import Optional

from studio_operator import events, metrics
from studio_operator.models import Module, ModuleStatus, State, StudioStatus, ready_message

logger = logging.getLogger("studio-operator.aggregator")

DELETED_MESSAGE = "Deployment has been deleted with no reason"


def apply_ready(module_status: ModuleStatus, ready_replicas: int) -> bool:
    """Ready observation. Returns True if the module transitioned."""
    if ready_replicas < 1:
        return False
    if module_status.is_settled():
        return False
    return module_status.transition(State.READY, error=False,
                                    message=ready_message(ready_replicas))


def apply_deleted(module_status: ModuleStatus) -> bool:
    """Unexpected deletion observation. Returns True if the module transitioned."""
    return module_status.transition(State.ERROR, error=True, message=DELETED_MESSAGE)


class StatusAggregator:

    def __init__(self, cluster):
        self.cluster = cluster

    def observe_ready(self, instance: str, module: Module,
                      ready_replicas: int) -> Optional[StudioStatus]:
        return self._observe(instance, module,
                             lambda ms: apply_ready(ms, ready_replicas))

    def observe_deleted(self, instance: str, module: Module) -> Optional[StudioStatus]:
        return self._observe(instance, module, apply_deleted)

    def _observe(self, instance: str, module: Module, transition) -> Optional[StudioStatus]:
        moved = []

        def mutate(status: StudioStatus) -> bool:
            moved.clear()
            module_changed = transition(status.module(module))
            if module_changed:
                moved.append(status.module(module).state)
            global_changed = status.reevaluate()
            return module_changed or global_changed

        status = self.cluster.update_status(instance, mutate)
        if status is None:
            return None

        if moved:
            state = moved[0]
            logger.info(f"Studio {instance}: {module.value} is now {state.value} "
                        f"(global {status.state.value})")
            metrics.MODULE_TRANSITIONS.labels(module=module.value, state=state.value).inc()
            events.publish_event(instance, "MODULE_TRANSITION",
                                 f"{module.value} is {state.value}", status.state.value)
        return status
