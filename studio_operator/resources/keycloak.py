"""Keycloak (identity module) manifests."""
from typing import Optional

from studio_operator.models import Module, StudioSpec
from studio_operator.resources import common
from studio_operator.resources.common import Endpoints, env, external_url, http_probe, secret_env

MODULE = Module.IDENTITY
KEYCLOAK_IMAGE = "apicurio/apicurio-studio-auth:latest"

USER_KEY = "keycloak-user"
PASSWORD_KEY = "keycloak-password"


def secret_name(spec: StudioSpec) -> str:
    return f"{spec.name}-auth-keycloak"


def pvc_name(spec: StudioSpec) -> str:
    return f"{spec.name}-auth-claim"


def prepare_secret(spec: StudioSpec, existing: Optional[dict] = None) -> dict:
    """
    Admin credentials. Values set in the spec win; blank ones keep what
    `existing` (the Secret currently in the cluster) holds, or are generated.
    """
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": {"name": secret_name(spec), "labels": common.labels(spec, MODULE)},
        "stringData": {
            USER_KEY: common.credential(spec.keycloak.user, existing, USER_KEY, 8),
            PASSWORD_KEY: common.credential(spec.keycloak.password, existing, PASSWORD_KEY, 16),
        },
    }


def prepare_claim(spec: StudioSpec) -> dict:
    return common.prepare_pvc(pvc_name(spec), spec, MODULE, spec.keycloak.volumeSize)


def prepare_service(spec: StudioSpec) -> dict:
    return common.prepare_service(spec, MODULE)


def prepare_deployment(spec: StudioSpec, endpoints: Endpoints) -> dict:
    container = {
        "name": "keycloak",
        "image": KEYCLOAK_IMAGE,
        "ports": [{"containerPort": common.HTTP_PORT, "protocol": "TCP"}],
        "env": [
            env("APICURIO_UI_URL", external_url("https", endpoints.studio)),
            env("APICURIO_KC_REALM", spec.keycloak.realm),
            secret_env("APICURIO_KEYCLOAK_USER", secret_name(spec), USER_KEY),
            secret_env("APICURIO_KEYCLOAK_PASSWORD", secret_name(spec), PASSWORD_KEY),
        ],
        "resources": {
            "requests": {"cpu": "100m", "memory": "600Mi"},
            "limits": {"cpu": "1", "memory": "1300Mi"},
        },
        "volumeMounts": [
            {"name": "keycloak-data", "mountPath": "/opt/jboss/keycloak/standalone/data"},
        ],
        "livenessProbe": http_probe("/auth", 60),
        "readinessProbe": http_probe("/auth", 30),
    }
    volumes = [{
        "name": "keycloak-data",
        "persistentVolumeClaim": {"claimName": pvc_name(spec), "readOnly": False},
    }]
    return common.prepare_deployment(spec, MODULE, container, volumes)
