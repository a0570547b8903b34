"""
Shared building blocks for module manifests.

Manifests are plain dicts in the shape the Kubernetes API accepts; every
function here is pure so that preparing the same spec twice yields equal
objects.
"""
import base64
import secrets
import string
from dataclasses import dataclass
from typing import Optional

from studio_operator.models import Module, StudioSpec, StudioStatus

MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"
OPERATOR_ID = "apicurio-studio-operator"
MODULE_LABEL = "module"

HTTP_PORT = 8080


@dataclass(frozen=True)
class ClusterCapabilities:
    """What the target cluster offers, resolved once at operator startup."""
    routes: bool = False

    @property
    def flavor(self) -> str:
        return "openshift" if self.routes else "kubernetes"


@dataclass(frozen=True)
class Endpoints:
    """Externally reachable hostnames discovered so far in a pass."""
    studio: Optional[str] = None
    api: Optional[str] = None
    ws: Optional[str] = None
    keycloak: Optional[str] = None

    @classmethod
    def from_status(cls, status: StudioStatus) -> "Endpoints":
        return cls(
            studio=status.studioUrl,
            api=status.apiUrl,
            ws=status.wsUrl,
            keycloak=status.keycloakUrl,
        )


def resource_name(spec: StudioSpec, module: Module) -> str:
    return f"{spec.name}-{module.suffix}"


def labels(spec: StudioSpec, module: Module, managed: bool = False) -> dict:
    result = {"app": spec.name, MODULE_LABEL: module.value}
    if managed:
        result[MANAGED_BY_LABEL] = OPERATOR_ID
    return result


def selector(spec: StudioSpec, module: Module) -> dict:
    return {"app": spec.name, MODULE_LABEL: module.value}


def random_alphanumeric(length: int) -> str:
    alphabet = string.ascii_letters + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(length))


def secret_value(secret: Optional[dict], key: str) -> Optional[str]:
    """Decoded value of one key of a Secret read back from the cluster."""
    data = (secret or {}).get("data") or {}
    if not data.get(key):
        return None
    return base64.b64decode(data[key]).decode()


def credential(given: Optional[str], existing: Optional[dict], key: str, length: int) -> str:
    """Spec value first, then the one already stored, then a fresh random one."""
    return given or secret_value(existing, key) or random_alphanumeric(length)


def env(name: str, value) -> dict:
    return {"name": name, "value": "" if value is None else str(value)}


def external_url(scheme: str, host: Optional[str], path: str = "") -> Optional[str]:
    """URL of an exposed host; None while the host is not known yet."""
    if not host:
        return None
    return f"{scheme}://{host}{path}"


def secret_env(name: str, secret_name: str, key: str) -> dict:
    return {
        "name": name,
        "valueFrom": {"secretKeyRef": {"name": secret_name, "key": key}},
    }


def http_probe(path: str, initial_delay: int, port: int = HTTP_PORT) -> dict:
    return {
        "httpGet": {"path": path, "port": port, "scheme": "HTTP"},
        "initialDelaySeconds": initial_delay,
        "timeoutSeconds": 5,
        "periodSeconds": 10,
        "successThreshold": 1,
        "failureThreshold": 3,
    }


def prepare_service(spec: StudioSpec, module: Module, port: int = HTTP_PORT,
                    annotations: Optional[dict] = None, managed: bool = False) -> dict:
    metadata = {
        "name": resource_name(spec, module),
        "labels": labels(spec, module, managed=managed),
    }
    if annotations:
        metadata["annotations"] = dict(annotations)
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": metadata,
        "spec": {
            "selector": selector(spec, module),
            "ports": [{"port": port, "protocol": "TCP", "targetPort": port}],
            "sessionAffinity": "None",
            "type": "ClusterIP",
        },
    }


def prepare_pvc(name: str, spec: StudioSpec, module: Module, size: str) -> dict:
    return {
        "apiVersion": "v1",
        "kind": "PersistentVolumeClaim",
        "metadata": {"name": name, "labels": labels(spec, module)},
        "spec": {
            "accessModes": ["ReadWriteOnce"],
            "resources": {"requests": {"storage": size}},
        },
    }


def prepare_deployment(spec: StudioSpec, module: Module, container: dict,
                       volumes: Optional[list] = None) -> dict:
    pod_spec = {"containers": [container]}
    if volumes:
        pod_spec["volumes"] = volumes
    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {
            "name": resource_name(spec, module),
            "labels": labels(spec, module, managed=True),
        },
        "spec": {
            "replicas": 1,
            "selector": {"matchLabels": selector(spec, module)},
            "template": {
                "metadata": {"labels": selector(spec, module)},
                "spec": pod_spec,
            },
        },
    }
