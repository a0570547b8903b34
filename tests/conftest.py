"""Pytest configuration and fixtures."""

import base64
import copy

import pytest

from studio_operator.models import StudioStatus
from studio_operator.resources.common import ClusterCapabilities


class FakeCluster:
    """
    In-memory stand-in for ClusterClient.

    Records every call in `calls` as (verb, kind, name). Routes get a
    platform-assigned host, deployments report `ready_replicas[name]`.
    """

    def __init__(self):
        self.objects = {}
        self.studios = {}
        self.calls = []
        self.status_writes = []
        self.ready_replicas = {}
        self.fail_on = set()

    def add_studio(self, body: dict):
        self.studios[body["metadata"]["name"]] = copy.deepcopy(body)

    @staticmethod
    def _as_stored(body):
        """Secrets come back from the API with base64 `data`, never `stringData`."""
        stored = copy.deepcopy(body)
        if stored.get("kind") == "Secret" and "stringData" in stored:
            plain = stored.pop("stringData")
            stored["data"] = {k: base64.b64encode(v.encode()).decode() for k, v in plain.items()}
        return stored

    def _maybe_fail(self, kind, name):
        if (kind, name) in self.fail_on:
            raise RuntimeError(f"injected failure for {kind} {name}")

    def get(self, kind, name):
        self.calls.append(("get", kind, name))
        obj = self.objects.get((kind, name))
        return copy.deepcopy(obj) if obj is not None else None

    def create_or_replace(self, body):
        kind, name = body["kind"], body["metadata"]["name"]
        self.calls.append(("apply", kind, name))
        self._maybe_fail(kind, name)
        stored = self._as_stored(body)
        if kind == "Route":
            stored["spec"]["host"] = f"{name}-studio.apps.example.com"
        if kind == "Deployment":
            stored["status"] = {"readyReplicas": self.ready_replicas.get(name, 0)}
        self.objects[(kind, name)] = stored
        return copy.deepcopy(stored)

    def create_if_absent(self, body):
        kind, name = body["kind"], body["metadata"]["name"]
        self.calls.append(("ensure", kind, name))
        self._maybe_fail(kind, name)
        if (kind, name) in self.objects:
            return False
        self.objects[(kind, name)] = self._as_stored(body)
        return True

    def get_studio(self, name):
        self.calls.append(("get", "ApicurioStudio", name))
        body = self.studios.get(name)
        return copy.deepcopy(body) if body is not None else None

    def update_status(self, name, mutate):
        self.calls.append(("status", "ApicurioStudio", name))
        body = self.studios.get(name)
        if body is None:
            return None
        status = StudioStatus.from_resource(body.get("status"))
        if not mutate(status):
            return status
        body["status"] = status.to_resource()
        self.status_writes.append(copy.deepcopy(body["status"]))
        return status

    def kinds_named(self, prefix):
        return sorted(k for k in self.objects if k[1].startswith(prefix))


def make_studio(name="demo", spec=None, status=None, deleting=False):
    body = {
        "apiVersion": "studio.apicur.io/v1alpha1",
        "kind": "ApicurioStudio",
        "metadata": {
            "name": name,
            "namespace": "studio",
            "uid": f"uid-{name}",
            "resourceVersion": "1",
        },
        "spec": spec if spec is not None else {"name": name, "url": "apps.example.com"},
    }
    if status is not None:
        body["status"] = status
    if deleting:
        body["metadata"]["deletionTimestamp"] = "2026-01-01T00:00:00Z"
    return body


def module_status(state, message=None, when="2020-01-01T00:00:00Z"):
    result = {"state": state, "error": state == "Error", "lastTransitionTime": when}
    if message:
        result["message"] = message
    return result


def status_with(global_state="Deploying", **modules):
    """Status dict with every module Deploying unless overridden."""
    status = {"state": global_state, "error": False}
    for field in ("apiModule", "wsModule", "uiModule", "keycloakModule", "databaseModule"):
        status[field] = module_status(modules.get(field, "Deploying"))
    return status


@pytest.fixture
def cluster():
    return FakeCluster()


@pytest.fixture
def kubernetes_flavor():
    return ClusterCapabilities(routes=False)


@pytest.fixture
def openshift_flavor():
    return ClusterCapabilities(routes=True)
