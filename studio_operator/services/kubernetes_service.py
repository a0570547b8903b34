"""
Kubernetes service layer — abstracts all K8s API interactions of the operator.

Design principles:
  - Idempotent: create-or-replace by stable name, create-if-absent for
    claims and credentials
  - Status writes are compare-and-swap on the resource version
  - Clean error handling: 404 on reads becomes None, 409 becomes a replace or
    a status write retry, everything else propagates
"""

import copy
import logging
from typing import Callable, Optional

from kubernetes import client, config
from kubernetes.client import ApiException

from studio_operator import metrics
from studio_operator.config import settings
from studio_operator.models import StudioStatus
from studio_operator.resources.common import ClusterCapabilities

logger = logging.getLogger("studio-operator.kubernetes")

ROUTE_GROUP = "route.openshift.io"
ROUTE_VERSION = "v1"
ROUTE_PLURAL = "routes"

_k8s_loaded = False


def _ensure_k8s():
    """Load Kubernetes config exactly once."""
    global _k8s_loaded
    if _k8s_loaded:
        return
    if settings.IN_CLUSTER:
        config.load_incluster_config()
    else:
        try:
            config.load_incluster_config()
        except config.ConfigException:
            config.load_kube_config(config_file=settings.KUBECONFIG or None)
    _k8s_loaded = True


class StatusConflictError(Exception):
    """A status write kept losing against concurrent writers."""


def discover_capabilities(apis: Optional[client.ApisApi] = None) -> ClusterCapabilities:
    """
    Resolve the cluster flavor once. CLUSTER_FLAVOR forces it; otherwise the
    presence of the OpenShift route API group decides.
    """
    if settings.CLUSTER_FLAVOR == "openshift":
        return ClusterCapabilities(routes=True)
    if settings.CLUSTER_FLAVOR == "kubernetes":
        return ClusterCapabilities(routes=False)

    if apis is None:
        _ensure_k8s()
        apis = client.ApisApi()
    groups = apis.get_api_versions(_request_timeout=settings.REQUEST_TIMEOUT)
    routes = any(g.name == ROUTE_GROUP for g in (groups.groups or []))
    logger.info(f"Cluster flavor detected: {'openshift' if routes else 'kubernetes'}")
    return ClusterCapabilities(routes=routes)


class ClusterClient:
    """
    Namespaced access to the kinds the operator owns plus the studio
    custom resource itself. API objects are injectable for tests.
    """

    def __init__(self, namespace: Optional[str] = None, core=None, apps=None,
                 networking=None, custom=None):
        if None in (core, apps, networking, custom):
            _ensure_k8s()
        self.namespace = namespace or settings.OPERATOR_NAMESPACE
        self.core = core or client.CoreV1Api()
        self.apps = apps or client.AppsV1Api()
        self.networking = networking or client.NetworkingV1Api()
        self.custom = custom or client.CustomObjectsApi()
        self._serializer = client.ApiClient()

    # -- kind dispatch ------------------------------------------------------

    def _route_call(self, verb: str):
        ns = self.namespace
        timeout = settings.REQUEST_TIMEOUT
        if verb == "read":
            return lambda name: self.custom.get_namespaced_custom_object(
                ROUTE_GROUP, ROUTE_VERSION, ns, ROUTE_PLURAL, name, _request_timeout=timeout)
        if verb == "create":
            return lambda body: self.custom.create_namespaced_custom_object(
                ROUTE_GROUP, ROUTE_VERSION, ns, ROUTE_PLURAL, body, _request_timeout=timeout)
        return lambda name, body: self.custom.replace_namespaced_custom_object(
            ROUTE_GROUP, ROUTE_VERSION, ns, ROUTE_PLURAL, name, body, _request_timeout=timeout)

    def _typed_call(self, verb: str, kind: str):
        api, suffix = {
            "Secret": (self.core, "secret"),
            "PersistentVolumeClaim": (self.core, "persistent_volume_claim"),
            "Service": (self.core, "service"),
            "Deployment": (self.apps, "deployment"),
            "Ingress": (self.networking, "ingress"),
        }[kind]
        method = getattr(api, f"{verb}_namespaced_{suffix}")
        ns = self.namespace
        timeout = settings.REQUEST_TIMEOUT
        if verb == "read":
            return lambda name: method(name, ns, _request_timeout=timeout)
        if verb == "create":
            return lambda body: method(ns, body, _request_timeout=timeout)
        return lambda name, body: method(name, ns, body, _request_timeout=timeout)

    def _call(self, verb: str, kind: str):
        if kind == "Route":
            return self._route_call(verb)
        return self._typed_call(verb, kind)

    def _to_dict(self, obj, kind: str) -> dict:
        data = self._serializer.sanitize_for_serialization(obj)
        data.setdefault("kind", kind)
        return data

    # -- owned objects ------------------------------------------------------

    def get(self, kind: str, name: str) -> Optional[dict]:
        """Read an owned object by name; None if it does not exist."""
        try:
            return self._to_dict(self._call("read", kind)(name), kind)
        except ApiException as e:
            if e.status == 404:
                return None
            raise

    def create_or_replace(self, body: dict) -> dict:
        """Create an object, or replace the existing one of the same name."""
        kind = body["kind"]
        name = body["metadata"]["name"]
        try:
            created = self._call("create", kind)(body)
            logger.info(f"{kind} {name} created")
            return self._to_dict(created, kind)
        except ApiException as e:
            if e.status != 409:
                raise

        existing = self.get(kind, name)
        if existing is None:
            # Deleted between our create and read; let the next trigger retry.
            raise ApiException(status=409, reason=f"{kind} {name} vanished during replace")

        replacement = copy.deepcopy(body)
        replacement["metadata"]["resourceVersion"] = existing["metadata"].get("resourceVersion")
        if kind == "Service":
            # clusterIP is immutable and allocated by the platform
            for field in ("clusterIP", "clusterIPs"):
                if field in existing.get("spec", {}):
                    replacement["spec"][field] = existing["spec"][field]
        replaced = self._call("replace", kind)(name, replacement)
        logger.info(f"{kind} {name} replaced")
        return self._to_dict(replaced, kind)

    def create_if_absent(self, body: dict) -> bool:
        """Create an object only if none exists yet. Returns True if created."""
        kind = body["kind"]
        name = body["metadata"]["name"]
        if self.get(kind, name) is not None:
            logger.info(f"{kind} {name} already exists")
            return False
        try:
            self._call("create", kind)(body)
        except ApiException as e:
            if e.status == 409:
                logger.info(f"{kind} {name} already exists")
                return False
            raise
        logger.info(f"{kind} {name} created")
        return True

    # -- studio custom resource --------------------------------------------

    def get_studio(self, name: str) -> Optional[dict]:
        try:
            return self.custom.get_namespaced_custom_object(
                settings.CRD_GROUP, settings.CRD_VERSION, self.namespace,
                settings.CRD_PLURAL, name, _request_timeout=settings.REQUEST_TIMEOUT,
            )
        except ApiException as e:
            if e.status == 404:
                return None
            raise

    def update_status(self, name: str,
                      mutate: Callable[[StudioStatus], bool]) -> Optional[StudioStatus]:
        """
        Read-mutate-write the status sub-resource with resource-version CAS.

        `mutate` edits the freshly read status in place and returns whether
        anything changed; nothing is written when it returns False. On a
        409 the instance is re-read and the mutation re-applied. Returns the
        written status, or None if the instance no longer exists.
        """
        attempts = max(1, settings.STATUS_WRITE_RETRIES)
        for attempt in range(1, attempts + 1):
            body = self.get_studio(name)
            if body is None:
                logger.info(f"Studio {name} is gone — skipping status write")
                return None
            status = StudioStatus.from_resource(body.get("status"))
            if not mutate(status):
                return status

            payload = dict(body)
            payload["status"] = status.to_resource()
            try:
                self.custom.replace_namespaced_custom_object_status(
                    settings.CRD_GROUP, settings.CRD_VERSION, self.namespace,
                    settings.CRD_PLURAL, name, payload,
                    _request_timeout=settings.REQUEST_TIMEOUT,
                )
                return status
            except ApiException as e:
                if e.status != 409:
                    raise
                metrics.STATUS_CONFLICTS.inc()
                logger.info(f"Studio {name}: status write conflict ({attempt}/{attempts}) — re-reading")
        raise StatusConflictError(
            f"Status of {name} changed concurrently {attempts} times in a row"
        )
