"""Database module manifests and connection string synthesis."""
import logging
from typing import Optional

from studio_operator.models import Module, StudioSpec
from studio_operator.resources import common
from studio_operator.resources.common import env, secret_env

logger = logging.getLogger("studio-operator.resources")

MODULE = Module.DATABASE

POSTGRESQL = "postgresql"
MYSQL = "mysql"

# One canonical port per supported engine; unknown drivers fall back to postgresql.
PORTS = {
    POSTGRESQL: 5432,
    MYSQL: 3306,
}

USER_KEY = "database-user"
PASSWORD_KEY = "database-password"
ROOT_PASSWORD_KEY = "database-rootPassword"


def engine(spec: StudioSpec) -> str:
    return MYSQL if spec.database.driver == MYSQL else POSTGRESQL


def database_port(spec: StudioSpec) -> int:
    return PORTS[engine(spec)]


def secret_name(spec: StudioSpec) -> str:
    return f"{spec.name}-db-connection"


def pvc_name(spec: StudioSpec) -> str:
    return f"{spec.name}-db-claim"


def deployment_name(spec: StudioSpec) -> str:
    return common.resource_name(spec, MODULE)


def connection_url(spec: StudioSpec) -> Optional[str]:
    """
    Connection string handed to the api and ws modules.

    Self-provisioned: <driver>://<instance>-db:<port>/<database>.
    External: the configured url, verbatim. A missing external url is not
    rejected here; consumers of the configuration fail on it.
    """
    db = spec.database
    if not db.install:
        if not db.url:
            logger.warning(f"[{spec.name}] external database has no url configured")
        return db.url
    return f"{db.driver}://{deployment_name(spec)}:{database_port(spec)}/{db.database}"


def prepare_secret(spec: StudioSpec, existing: Optional[dict] = None) -> dict:
    """Database credentials; blank values reuse `existing` or are generated."""
    db = spec.database
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": {"name": secret_name(spec), "labels": common.labels(spec, MODULE)},
        "stringData": {
            USER_KEY: common.credential(db.user, existing, USER_KEY, 8),
            PASSWORD_KEY: common.credential(db.password, existing, PASSWORD_KEY, 16),
            ROOT_PASSWORD_KEY: common.credential(db.rootPassword, existing, ROOT_PASSWORD_KEY, 16),
        },
    }


def prepare_claim(spec: StudioSpec) -> dict:
    return common.prepare_pvc(pvc_name(spec), spec, MODULE, spec.database.volumeSize)


def prepare_service(spec: StudioSpec) -> dict:
    return common.prepare_service(spec, MODULE, port=database_port(spec))


def _postgresql_container(spec: StudioSpec) -> dict:
    return {
        "name": "postgresql",
        "image": "centos/postgresql-95-centos7:latest",
        "ports": [{"containerPort": PORTS[POSTGRESQL], "protocol": "TCP"}],
        "env": [
            env("POSTGRESQL_DATABASE", spec.database.database),
            secret_env("POSTGRESQL_USER", secret_name(spec), USER_KEY),
            secret_env("POSTGRESQL_PASSWORD", secret_name(spec), PASSWORD_KEY),
        ],
        "volumeMounts": [{"name": "database-data", "mountPath": "/var/lib/pgsql/data"}],
        "readinessProbe": {
            "exec": {"command": ["/usr/libexec/check-container"]},
            "initialDelaySeconds": 5,
            "timeoutSeconds": 1,
        },
    }


def _mysql_container(spec: StudioSpec) -> dict:
    return {
        "name": "mysql",
        "image": "centos/mysql-57-centos7:latest",
        "ports": [{"containerPort": PORTS[MYSQL], "protocol": "TCP"}],
        "env": [
            env("MYSQL_DATABASE", spec.database.database),
            secret_env("MYSQL_USER", secret_name(spec), USER_KEY),
            secret_env("MYSQL_PASSWORD", secret_name(spec), PASSWORD_KEY),
            secret_env("MYSQL_ROOT_PASSWORD", secret_name(spec), ROOT_PASSWORD_KEY),
        ],
        "volumeMounts": [{"name": "database-data", "mountPath": "/var/lib/mysql/data"}],
        "readinessProbe": {
            "tcpSocket": {"port": PORTS[MYSQL]},
            "initialDelaySeconds": 5,
            "timeoutSeconds": 1,
        },
    }


def prepare_deployment(spec: StudioSpec) -> dict:
    if engine(spec) == MYSQL:
        container = _mysql_container(spec)
    else:
        container = _postgresql_container(spec)
    volumes = [{
        "name": "database-data",
        "persistentVolumeClaim": {"claimName": pvc_name(spec), "readOnly": False},
    }]
    return common.prepare_deployment(spec, MODULE, container, volumes)
