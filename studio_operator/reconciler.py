"""
Primary reconciler — drives a full provisioning pass for one studio.

Pass order (dependency driven):
  1. Resolve the UI host (identity callbacks and redirects need it)
  2. Identity module   (Keycloak, or Preexisting when not installed)
  3. Database module   (or Preexisting when not installed)
  4. API, WS, UI modules
  5. Persist status

Every step is an idempotent create-or-replace by stable name (volume claims:
create-if-absent, they are immutable once bound), so a pass that
fails halfway is simply re-run in full on the next trigger. There is no
rollback, and a failed pass never turns the global state into Error: the
studio stays Deploying until something triggers a new pass.
"""

import logging
from typing import Dict, Mapping, Optional, Tuple

import kopf

from studio_operator import events, metrics
from studio_operator.models import (
    Module,
    ModuleGroup,
    State,
    StudioSpec,
    StudioStatus,
    ready_message,
)
from studio_operator.resources import database, ingress, keycloak, studio
from studio_operator.resources.common import ClusterCapabilities, Endpoints

logger = logging.getLogger("studio-operator.reconciler")

WAITING_MESSAGE = "Waiting for ready replicas"
PREEXISTING_MESSAGE = "Provided outside of the operator"

_URL_FIELDS = {
    Module.UI: "studioUrl",
    Module.API: "apiUrl",
    Module.WS: "wsUrl",
    Module.IDENTITY: "keycloakUrl",
}


class _Work:
    """
    What one pass (or one group re-provisioning) decided.

    Kept apart from the status it was computed on so that it can be re-applied
    onto a freshly read status when the persisted one moved underneath us.
    """

    def __init__(self, owner: Mapping, spec: StudioSpec, status: StudioStatus):
        self.owner = owner
        self.spec = spec
        self.status = status
        self.urls: Dict[str, Optional[str]] = {}
        self.modules: Dict[Module, Tuple[State, Optional[str]]] = {}
        self.transitioned: list = []

    @property
    def name(self) -> str:
        return self.owner["metadata"]["name"]

    def set_url(self, module: Module, host: Optional[str]):
        field = _URL_FIELDS[module]
        self.urls[field] = host
        setattr(self.status, field, host)

    def mark(self, module: Module, state: State, message: Optional[str] = None):
        self.modules[module] = (state, message)

    def mark_workload(self, module: Module, deployment: Mapping):
        """Deploying, unless the applied workload already serves ready replicas."""
        ready = ((deployment or {}).get("status") or {}).get("readyReplicas") or 0
        if ready > 0:
            self.mark(module, State.READY, ready_message(ready))
        else:
            self.mark(module, State.DEPLOYING, WAITING_MESSAGE)

    def endpoints(self) -> Endpoints:
        return Endpoints.from_status(self.status)

    def has_changes(self) -> bool:
        return bool(self.urls or self.modules)

    def apply(self, status: StudioStatus) -> bool:
        """
        Replay the decisions onto `status`. Returns True if it changed.

        A module already Ready stays Ready: a Deploying decision only means
        no replica was ready when the workload was applied, and readiness
        observed since then wins.
        """
        changed = False
        self.transitioned = []
        for field, value in self.urls.items():
            if getattr(status, field) != value:
                setattr(status, field, value)
                changed = True
        for module, (state, message) in self.modules.items():
            if state == State.DEPLOYING and status.module(module).is_ready():
                continue
            if status.module(module).transition(state, error=False, message=message):
                self.transitioned.append((module, state))
                changed = True
        if status.reevaluate():
            changed = True
        return changed


class PrimaryReconciler:
    """Provisions the owned resources of a studio in dependency order."""

    def __init__(self, cluster, capabilities: ClusterCapabilities):
        self.cluster = cluster
        self.capabilities = capabilities

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def reconcile(self, body: Mapping) -> StudioStatus:
        """
        Run one full pass for the studio `body` (the custom resource).

        A studio whose status is already Ready is a fixed point: no cluster
        call is made. Leaving Ready only happens through deployment events.
        """
        name = body["metadata"]["name"]
        status = StudioStatus.from_resource(body.get("status"))
        if status.is_ready():
            logger.info(f"Studio {name} already Ready — skipping reconcile")
            metrics.RECONCILE_PASSES.labels(result="skipped").inc()
            return status

        work = self._start(body, status)
        logger.info(f"[{name}] Starting reconcile pass (flavor={self.capabilities.flavor})")
        events.publish_event(name, "RECONCILE_START", "Reconcile pass started", status.state.value)
        try:
            logger.info(f"[{name}] Step 1/4: Resolving UI host")
            self._resolve_studio_host(work)
            logger.info(f"[{name}] Step 2/4: Identity module")
            self._identity_step(work)
            logger.info(f"[{name}] Step 3/4: Database module")
            self._database_step(work)
            logger.info(f"[{name}] Step 4/4: API, WS and UI modules")
            self._studio_step(work)
        except Exception:
            metrics.RECONCILE_PASSES.labels(result="failed").inc()
            self._persist_partial(work)
            raise

        persisted = self._persist(work)
        metrics.RECONCILE_PASSES.labels(result="completed").inc()
        events.publish_event(name, "RECONCILE_DONE", "Reconcile pass completed",
                             persisted.state.value if persisted else "")
        logger.info(f"[{name}] Reconcile pass completed")
        return persisted

    def provision_group(self, body: Mapping, group: ModuleGroup) -> Optional[StudioStatus]:
        """Re-run the provisioning step of a single module group and persist it."""
        name = body["metadata"]["name"]
        work = self._start(body, StudioStatus.from_resource(body.get("status")))
        logger.info(f"[{name}] Re-provisioning {group.value} modules")
        if group == ModuleGroup.IDENTITY:
            self._identity_step(work)
        elif group == ModuleGroup.DATABASE:
            self._database_step(work)
        else:
            self._resolve_studio_host(work)
            self._studio_step(work)
        return self._persist(work)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _resolve_studio_host(self, work: _Work):
        work.set_url(Module.UI, self._expose(work, Module.UI))

    def _identity_step(self, work: _Work):
        spec = work.spec
        if not spec.keycloak.install:
            work.set_url(Module.IDENTITY, spec.keycloak.url)
            work.mark(Module.IDENTITY, State.PREEXISTING, PREEXISTING_MESSAGE)
            return

        existing = self.cluster.get("Secret", keycloak.secret_name(spec))
        self._apply(work, keycloak.prepare_secret(spec, existing))
        self._ensure(work, keycloak.prepare_claim(spec))
        self._apply(work, keycloak.prepare_service(spec))
        work.set_url(Module.IDENTITY, self._expose(work, Module.IDENTITY))
        deployment = self._apply(work, keycloak.prepare_deployment(spec, work.endpoints()))
        work.mark_workload(Module.IDENTITY, deployment)

    def _database_step(self, work: _Work):
        spec = work.spec
        if not spec.database.install:
            # Consumers get database.url verbatim; a missing one is their problem.
            work.mark(Module.DATABASE, State.PREEXISTING, PREEXISTING_MESSAGE)
            return

        existing = self.cluster.get("Secret", database.secret_name(spec))
        self._apply(work, database.prepare_secret(spec, existing))
        self._ensure(work, database.prepare_claim(spec))
        self._apply(work, database.prepare_service(spec))
        deployment = self._apply(work, database.prepare_deployment(spec))
        work.mark_workload(Module.DATABASE, deployment)

    def _studio_step(self, work: _Work):
        spec = work.spec
        for module in (Module.API, Module.WS):
            self._apply(work, studio.prepare_service(spec, module))
            work.set_url(module, self._expose(work, module))
        self._apply(work, studio.prepare_service(spec, Module.UI))

        # api and ws hosts must be known before the ui deployment is prepared
        for module in studio.STUDIO_MODULES:
            deployment = self._apply(work, studio.prepare_deployment(spec, module, work.endpoints()))
            work.mark_workload(module, deployment)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _start(self, body: Mapping, status: StudioStatus) -> _Work:
        spec = StudioSpec.from_resource(body.get("spec"), body["metadata"]["name"])
        return _Work(body, spec, status)

    def _apply(self, work: _Work, manifest: dict) -> dict:
        kopf.append_owner_reference(manifest, owner=work.owner)
        return self.cluster.create_or_replace(manifest)

    def _ensure(self, work: _Work, manifest: dict) -> bool:
        kopf.append_owner_reference(manifest, owner=work.owner)
        return self.cluster.create_if_absent(manifest)

    def _expose(self, work: _Work, module: Module) -> Optional[str]:
        """Create the route or ingress of a module and return its host."""
        if not self.capabilities.routes and not ingress.ingress_host(work.spec, module):
            logger.warning(f"[{work.name}] no host configured for {module.value} — not exposed")
            return None
        applied = self._apply(work, ingress.prepare_exposure(work.spec, module, self.capabilities))
        return ingress.exposed_host(applied)

    def _persist(self, work: _Work) -> Optional[StudioStatus]:
        persisted = self.cluster.update_status(work.name, work.apply)
        for module, state in work.transitioned:
            metrics.MODULE_TRANSITIONS.labels(module=module.value, state=state.value).inc()
            events.publish_event(work.name, "MODULE_TRANSITION",
                                 f"{module.value} is {state.value}", state.value)
        return persisted

    def _persist_partial(self, work: _Work):
        """Record the steps a failed pass did complete."""
        if not work.has_changes():
            return
        try:
            self._persist(work)
        except Exception as e:
            logger.error(f"[{work.name}] could not persist partial status: {e}")
