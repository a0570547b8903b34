"""Tests for deployment event handling and drift repair."""

from unittest import mock

from studio_operator.aggregator import StatusAggregator
from studio_operator.models import Module, ModuleGroup, State
from studio_operator.reconciler import PrimaryReconciler
from studio_operator.watcher import DeploymentWatch, EventKind, owner_name, translate

from tests.conftest import make_studio, status_with

ALL_READY = dict(apiModule="Ready", wsModule="Ready", uiModule="Ready",
                 keycloakModule="Ready", databaseModule="Ready")


def make_deployment(module="apicurio-studio-api", name="demo-api", owner="demo",
                    ready=0, deleting=False):
    metadata = {
        "name": name,
        "namespace": "studio",
        "labels": {"app": "demo", "module": module},
    }
    if owner:
        metadata["ownerReferences"] = [
            {"apiVersion": "v1", "kind": "ConfigMap", "name": "unrelated", "uid": "x"},
            {"apiVersion": "studio.apicur.io/v1alpha1", "kind": "ApicurioStudio",
             "name": owner, "uid": f"uid-{owner}"},
        ]
    if deleting:
        metadata["deletionTimestamp"] = "2026-01-01T00:00:00Z"
    return {"metadata": metadata, "status": {"readyReplicas": ready}}


class TestTranslate:

    def test_modified(self):
        event = translate("MODIFIED", make_deployment(module="apicurio-studio-ws", ready=2))
        assert event.kind == EventKind.MODIFIED
        assert event.module == Module.WS
        assert event.instance == "demo"
        assert event.ready_replicas == 2
        assert not event.terminating

    def test_added_ignored(self):
        assert translate("ADDED", make_deployment()) is None
        assert translate(None, make_deployment()) is None

    def test_unrecognized_label_ignored(self):
        assert translate("MODIFIED", make_deployment(module="apicurio-studio-foo")) is None

    def test_no_owner_ignored(self):
        assert translate("DELETED", make_deployment(owner=None)) is None

    def test_owner_name_picks_studio(self):
        assert owner_name(make_deployment(owner="other")) == "other"

    def test_missing_status(self):
        deployment = make_deployment()
        del deployment["status"]
        assert translate("MODIFIED", deployment).ready_replicas == 0


class TestDeploymentWatch:

    def make_watch(self, cluster):
        aggregator = mock.Mock(spec=StatusAggregator)
        reconciler = mock.Mock(spec=PrimaryReconciler)
        return DeploymentWatch(cluster, aggregator, reconciler), aggregator, reconciler

    def test_modified_goes_to_aggregator(self, cluster):
        cluster.add_studio(make_studio())
        watch, aggregator, reconciler = self.make_watch(cluster)

        watch.handle("MODIFIED", make_deployment(ready=1))

        aggregator.observe_ready.assert_called_once_with("demo", Module.API, 1)
        reconciler.provision_group.assert_not_called()

    def test_terminating_workload_skipped(self, cluster):
        cluster.add_studio(make_studio())
        watch, aggregator, _ = self.make_watch(cluster)

        watch.handle("MODIFIED", make_deployment(ready=1, deleting=True))

        aggregator.observe_ready.assert_not_called()

    def test_owner_being_deleted(self, cluster):
        cluster.add_studio(make_studio(deleting=True))
        watch, aggregator, reconciler = self.make_watch(cluster)

        watch.handle("DELETED", make_deployment())

        aggregator.observe_deleted.assert_not_called()
        reconciler.provision_group.assert_not_called()

    def test_owner_gone(self, cluster):
        watch, aggregator, reconciler = self.make_watch(cluster)

        watch.handle("DELETED", make_deployment())

        aggregator.observe_deleted.assert_not_called()
        reconciler.provision_group.assert_not_called()

    def test_unrecognized_label_makes_no_calls(self, cluster):
        cluster.add_studio(make_studio())
        watch, aggregator, reconciler = self.make_watch(cluster)

        watch.handle("DELETED", make_deployment(module="apicurio-studio-foo"))

        assert cluster.calls == []
        aggregator.observe_deleted.assert_not_called()

    def test_deleted_marks_error_then_reprovisions_once(self, cluster):
        cluster.add_studio(make_studio(status=status_with("Ready", **ALL_READY)))
        aggregator = StatusAggregator(cluster)
        reconciler = mock.Mock(spec=PrimaryReconciler)
        seen = []
        reconciler.provision_group.side_effect = \
            lambda owner, group: seen.append(cluster.studios["demo"]["status"]["apiModule"]["state"])

        DeploymentWatch(cluster, aggregator, reconciler).handle("DELETED", make_deployment())

        reconciler.provision_group.assert_called_once_with(mock.ANY, ModuleGroup.STUDIO)
        assert seen == ["Error"]
        assert cluster.studios["demo"]["status"]["state"] == "Deploying"

    def test_deleted_identity_reprovisions_identity(self, cluster):
        cluster.add_studio(make_studio(status=status_with("Ready", **ALL_READY)))
        watch, aggregator, reconciler = self.make_watch(cluster)

        watch.handle("DELETED", make_deployment(module="apicurio-studio-auth", name="demo-auth"))

        aggregator.observe_deleted.assert_called_once_with("demo", Module.IDENTITY)
        reconciler.provision_group.assert_called_once_with(mock.ANY, ModuleGroup.IDENTITY)


class TestDriftRepair:

    def test_deleted_workload_is_recreated(self, cluster, kubernetes_flavor):
        cluster.add_studio(make_studio(status=status_with("Ready", **ALL_READY)))
        reconciler = PrimaryReconciler(cluster, kubernetes_flavor)
        watch = DeploymentWatch(cluster, StatusAggregator(cluster), reconciler)

        watch.handle("DELETED", make_deployment())

        assert ("Deployment", "demo-api") in cluster.objects
        status = cluster.studios["demo"]["status"]
        assert status["apiModule"]["state"] == "Deploying"
        assert status["apiModule"]["error"] is False
        assert status["keycloakModule"]["state"] == "Ready"
        assert status["state"] == "Deploying"
        assert cluster.kinds_named("demo-db") == []

    def test_recreated_workload_becomes_ready(self, cluster, kubernetes_flavor):
        cluster.add_studio(make_studio(status=status_with("Ready", **ALL_READY)))
        cluster.ready_replicas.update({"demo-ws": 1, "demo-ui": 1})
        aggregator = StatusAggregator(cluster)
        watch = DeploymentWatch(cluster, aggregator, PrimaryReconciler(cluster, kubernetes_flavor))

        watch.handle("DELETED", make_deployment())
        watch.handle("MODIFIED", make_deployment(ready=1))

        status = cluster.studios["demo"]["status"]
        assert status["apiModule"]["state"] == "Ready"
        assert status["state"] == State.READY.value
