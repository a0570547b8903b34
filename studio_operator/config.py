"""
Configuration module — all settings from env vars with sensible defaults.
Follows 12-factor app methodology.
"""
import os
from dataclasses import dataclass


def _default_namespace() -> str:
    return os.environ.get("OPERATOR_NAMESPACE") or os.environ.get("WATCH_NAMESPACE") or "default"


@dataclass(frozen=True)
class Settings:
    # Kubernetes
    KUBECONFIG: str = os.environ.get("KUBECONFIG", "")
    IN_CLUSTER: bool = os.environ.get("IN_CLUSTER", "false").lower() == "true"
    OPERATOR_NAMESPACE: str = _default_namespace()
    # auto | openshift | kubernetes
    CLUSTER_FLAVOR: str = os.environ.get("CLUSTER_FLAVOR", "auto").lower()

    # CRD
    CRD_GROUP: str = "studio.apicur.io"
    CRD_VERSION: str = "v1alpha1"
    CRD_PLURAL: str = "apicuriostudios"
    CRD_KIND: str = "ApicurioStudio"

    # Timeouts (seconds)
    REQUEST_TIMEOUT: float = float(os.environ.get("REQUEST_TIMEOUT", "30"))
    WATCH_SERVER_TIMEOUT: int = int(os.environ.get("WATCH_SERVER_TIMEOUT", "300"))
    WATCH_CLIENT_TIMEOUT: int = int(os.environ.get("WATCH_CLIENT_TIMEOUT", "330"))

    # Status writes
    STATUS_WRITE_RETRIES: int = int(os.environ.get("STATUS_WRITE_RETRIES", "3"))

    # Execution
    MAX_WORKERS: int = int(os.environ.get("MAX_WORKERS", "4"))

    # Side channels
    REDIS_URL: str = os.environ.get("REDIS_URL", "")
    METRICS_PORT: int = int(os.environ.get("METRICS_PORT", "0"))
    LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "INFO").upper()


settings = Settings()
