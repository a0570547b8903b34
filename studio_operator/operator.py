"""
Apicurio Studio Operator — kopf handlers

Architecture:
  ApicurioStudio CR → Operator watches → Reconcile pass:
    1. Resolve UI host (Route or Ingress)
    2. Identity module (Keycloak) or Preexisting
    3. Database module or Preexisting
    4. API / WS / UI modules
    5. Persist status

  Owned Deployments → Operator watches:
    - MODIFIED: module readiness → global readiness
    - DELETED:  module Error, then re-provision its module group

  On Delete:
    Nothing to do. Every owned object carries an owner reference, the
    platform cascades the deletion.

Design Principles:
  - Idempotent: every step is create-or-replace by stable name
  - Declarative: CR spec is the source of truth, read fresh on every trigger
  - No internal retry loop: a failed pass is logged and waits for the next trigger
  - Status writes are compare-and-swap on the resource version
"""

import kopf

from studio_operator import config, metrics
from studio_operator.aggregator import StatusAggregator
from studio_operator.reconciler import PrimaryReconciler
from studio_operator.resources.common import MANAGED_BY_LABEL, OPERATOR_ID
from studio_operator.services.kubernetes_service import ClusterClient, discover_capabilities
from studio_operator.watcher import DeploymentWatch

CRD_GROUP = config.settings.CRD_GROUP
CRD_VERSION = config.settings.CRD_VERSION
CRD_PLURAL = config.settings.CRD_PLURAL


# ---------------------------------------------------------------------------
# Kopf operator settings
# ---------------------------------------------------------------------------

@kopf.on.startup()
def configure(settings: kopf.OperatorSettings, memo: kopf.Memo, logger, **kwargs):
    settings.posting.enabled = True
    settings.persistence.progress_storage = kopf.AnnotationsProgressStorage(prefix=CRD_GROUP)
    settings.persistence.diffbase_storage = kopf.AnnotationsDiffBaseStorage(prefix=CRD_GROUP)
    settings.execution.max_workers = config.settings.MAX_WORKERS
    settings.networking.request_timeout = config.settings.REQUEST_TIMEOUT
    settings.watching.server_timeout = config.settings.WATCH_SERVER_TIMEOUT
    settings.watching.client_timeout = config.settings.WATCH_CLIENT_TIMEOUT

    cluster = ClusterClient(namespace=config.settings.OPERATOR_NAMESPACE)
    capabilities = discover_capabilities()
    memo.cluster = cluster
    memo.capabilities = capabilities
    memo.reconciler = PrimaryReconciler(cluster, capabilities)
    memo.aggregator = StatusAggregator(cluster)
    memo.watch = DeploymentWatch(cluster, memo.aggregator, memo.reconciler)

    metrics.start_metrics_server()
    logger.info(
        f"Studio Operator started (namespace={config.settings.OPERATOR_NAMESPACE}, "
        f"flavor={capabilities.flavor}, max_workers={config.settings.MAX_WORKERS})"
    )


# ---------------------------------------------------------------------------
# CREATE / UPDATE / RESUME handler: the reconcile pass
# ---------------------------------------------------------------------------

@kopf.on.create(CRD_GROUP, CRD_VERSION, CRD_PLURAL)
@kopf.on.update(CRD_GROUP, CRD_VERSION, CRD_PLURAL)
@kopf.on.resume(CRD_GROUP, CRD_VERSION, CRD_PLURAL)
def reconcile_studio(body, name, memo: kopf.Memo, logger, **kwargs):
    """
    Reconcile an ApicurioStudio to its desired state.

    Failures abandon the pass without touching the global state; kopf is not
    asked to retry, the next spec change or workload event will.
    """
    try:
        memo.reconciler.reconcile(body)
    except Exception as e:
        logger.exception(f"Reconcile pass for studio {name} abandoned: {e}")


# ---------------------------------------------------------------------------
# Owned Deployments: readiness and drift
# ---------------------------------------------------------------------------

@kopf.on.event("apps", "v1", "deployments", labels={MANAGED_BY_LABEL: OPERATOR_ID})
def deployment_event(event, body, memo: kopf.Memo, logger, **kwargs):
    try:
        memo.watch.handle(event.get("type"), body)
    except Exception as e:
        logger.exception(f"Deployment event for {body.get('metadata', {}).get('name')} failed: {e}")
