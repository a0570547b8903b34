"""
Manifests for the studio's own modules: api, ws and ui.

The ui needs the hosts of api and ws (editor redirect targets) and all three
need the identity host, so callers resolve endpoints before preparing
deployments.
"""
from studio_operator.models import DEFAULT_RESOURCES, Module, StudioSpec
from studio_operator.resources import common, database
from studio_operator.resources.common import Endpoints, env, external_url, http_probe, secret_env

STUDIO_MODULES = (Module.API, Module.WS, Module.UI)

_CONTAINER_NAMES = {Module.API: "api", Module.WS: "ws", Module.UI: "ui"}
_PROBE_PATHS = {Module.API: "/system/ready", Module.WS: "/metrics", Module.UI: "/ready"}
_METRICS_PATHS = {Module.API: "/system/metrics", Module.WS: "/metrics"}


def prepare_service(spec: StudioSpec, module: Module) -> dict:
    annotations = None
    if module in _METRICS_PATHS:
        annotations = {
            "prometheus.io/scrape": "true",
            "prometheus.io.path": _METRICS_PATHS[module],
        }
    return common.prepare_service(spec, module, annotations=annotations,
                                  managed=module != Module.UI)


def _keycloak_env(spec: StudioSpec, endpoints: Endpoints) -> list:
    return [
        env("APICURIO_KC_AUTH_URL", external_url("https", endpoints.keycloak, "/auth")),
        env("APICURIO_KC_REALM", spec.keycloak.realm),
    ]


def _database_env(spec: StudioSpec) -> list:
    db = spec.database
    return [
        env("APICURIO_DB_TYPE", db.type),
        env("APICURIO_DB_DRIVER_NAME", db.driver),
        env("APICURIO_DB_CONNECTION_URL", database.connection_url(spec)),
        env("APICURIO_HUB_STORAGE_JDBC_TYPE", db.type),
        secret_env("APICURIO_DB_USER_NAME", database.secret_name(spec), database.USER_KEY),
        secret_env("APICURIO_DB_PASSWORD", database.secret_name(spec), database.PASSWORD_KEY),
    ]


def _microcks_env(spec: StudioSpec) -> list:
    microcks = spec.features.microcks
    if not microcks.apiUrl:
        return []
    return [
        env("APICURIO_MICROCKS_API_URL", microcks.apiUrl),
        env("APICURIO_MICROCKS_CLIENT_ID", microcks.clientId),
        env("APICURIO_MICROCKS_CLIENT_SECRET", microcks.clientSecret),
    ]


def _ui_env(spec: StudioSpec, endpoints: Endpoints) -> list:
    features = spec.features
    result = [
        env("APICURIO_UI_HUB_API_URL", external_url("https", endpoints.api)),
        env("APICURIO_UI_EDITING_URL", external_url("wss", endpoints.ws)),
        env("APICURIO_UI_LOGOUT_REDIRECT", "/"),
    ]
    if features.asyncAPI:
        result.append(env("APICURIO_UI_FEATURE_ASYNCAPI", "true"))
    if features.graphQL:
        result.append(env("APICURIO_UI_FEATURE_GRAPHQL", "true"))
    if features.microcks.apiUrl:
        result.append(env("APICURIO_UI_FEATURE_MICROCKS", "true"))
    return result


def _module_env(spec: StudioSpec, module: Module, endpoints: Endpoints) -> list:
    if module == Module.API:
        return _keycloak_env(spec, endpoints) + _database_env(spec) + _microcks_env(spec)
    if module == Module.WS:
        return _database_env(spec)
    return _keycloak_env(spec, endpoints) + _ui_env(spec, endpoints)


def prepare_deployment(spec: StudioSpec, module: Module, endpoints: Endpoints) -> dict:
    if module not in STUDIO_MODULES:
        raise ValueError(f"{module.value} is not a studio module")
    module_spec = spec.module_spec(module)
    probe_path = _PROBE_PATHS[module]
    container = {
        "name": _CONTAINER_NAMES[module],
        "image": module_spec.image,
        "ports": [{"containerPort": common.HTTP_PORT, "protocol": "TCP"}],
        "env": _module_env(spec, module, endpoints),
        "resources": module_spec.resources or DEFAULT_RESOURCES[module],
        "livenessProbe": http_probe(probe_path, 30),
        "readinessProbe": http_probe(probe_path, 15),
    }
    return common.prepare_deployment(spec, module, container)
