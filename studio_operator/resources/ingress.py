"""
External exposure of modules: OpenShift Routes or Kubernetes Ingresses,
depending on the cluster capabilities.
"""
from typing import Optional

from studio_operator.models import IngressSpec, Module, StudioSpec
from studio_operator.resources.common import (
    HTTP_PORT,
    ClusterCapabilities,
    labels,
    resource_name,
)

REWRITE_ANNOTATION = "ingress.kubernetes.io/rewrite-target"


def default_tls_secret(module: Module) -> str:
    return f"{module.value}-ingress-secret"


def annotations_if_any(ingress: Optional[IngressSpec]) -> dict:
    if ingress is not None and ingress.annotations:
        return dict(ingress.annotations)
    return {}


def tls_secret_name(ingress: Optional[IngressSpec], default: str) -> Optional[str]:
    """Explicit secretRef wins; no secret at all when certificate generation is off."""
    if ingress is not None:
        if ingress.secretRef:
            return ingress.secretRef
        if not ingress.generateCert:
            return None
    return default


def ingress_spec_for(spec: StudioSpec, module: Module) -> Optional[IngressSpec]:
    if module == Module.IDENTITY:
        return spec.keycloak.ingress
    return spec.module_spec(module).ingress


def ingress_host(spec: StudioSpec, module: Module) -> Optional[str]:
    if module == Module.IDENTITY:
        return spec.keycloak.url
    if not spec.url:
        return None
    return f"{module.value}.{spec.url}"


def prepare_route(spec: StudioSpec, module: Module) -> dict:
    name = resource_name(spec, module)
    return {
        "apiVersion": "route.openshift.io/v1",
        "kind": "Route",
        "metadata": {"name": name, "labels": labels(spec, module, managed=True)},
        "spec": {
            "to": {"kind": "Service", "name": name},
            "port": {"targetPort": HTTP_PORT},
            "tls": {
                "termination": "edge",
                "insecureEdgeTerminationPolicy": "Redirect",
            },
        },
    }


def prepare_ingress(spec: StudioSpec, module: Module) -> dict:
    name = resource_name(spec, module)
    host = ingress_host(spec, module)
    ingress = ingress_spec_for(spec, module)

    annotations = {REWRITE_ANNOTATION: "/"}
    annotations.update(annotations_if_any(ingress))

    tls = {"hosts": [host]}
    secret = tls_secret_name(ingress, default_tls_secret(module))
    if secret:
        tls["secretName"] = secret

    return {
        "apiVersion": "networking.k8s.io/v1",
        "kind": "Ingress",
        "metadata": {
            "name": name,
            "labels": labels(spec, module, managed=True),
            "annotations": annotations,
        },
        "spec": {
            "tls": [tls],
            "rules": [{
                "host": host,
                "http": {
                    "paths": [{
                        "path": "/",
                        "pathType": "Prefix",
                        "backend": {
                            "service": {"name": name, "port": {"number": HTTP_PORT}},
                        },
                    }],
                },
            }],
        },
    }


def prepare_exposure(spec: StudioSpec, module: Module, capabilities: ClusterCapabilities) -> dict:
    """Route on clusters that support them, Ingress everywhere else."""
    if capabilities.routes:
        return prepare_route(spec, module)
    return prepare_ingress(spec, module)


def exposed_host(applied: dict) -> Optional[str]:
    """Host of an applied Route (platform assigned) or Ingress (declared)."""
    body_spec = applied.get("spec") or {}
    if applied.get("kind") == "Route":
        return body_spec.get("host")
    rules = body_spec.get("rules") or []
    return rules[0].get("host") if rules else None
