"""Unit tests for create-or-update against mocked Kubernetes APIs."""

import copy

import pytest
from unittest.mock import MagicMock


def _make_cluster(uid="uid-1"):
    from tidb_discovery_tool.cluster import cluster_from_object

    return cluster_from_object({
        "kind": "TidbCluster",
        "metadata": {"name": "basic", "namespace": "default", "uid": uid},
        "spec": {"pd": {}},
    })


def _control():
    from tidb_discovery_tool.control import TypedControl

    core, apps, rbac = MagicMock(), MagicMock(), MagicMock()
    return TypedControl(core, apps, rbac), core, apps, rbac


def _not_found():
    from kubernetes.client.rest import ApiException

    return ApiException(status=404, reason="Not Found")


def _desired_deployment(cluster, spec_override=None):
    from tidb_discovery_tool.config import DiscoveryConfig
    from tidb_discovery_tool.deployment import DeploymentBuilder

    if spec_override is not None:
        cluster.spec.update(spec_override)
    return DeploymentBuilder(DiscoveryConfig()).build(cluster)


class TestCreate:

    @pytest.mark.unit
    def test_missing_object_is_created_with_owner(self):
        from tidb_discovery_tool.manager import build_rbac

        control, core, apps, rbac = _control()
        cluster = _make_cluster()
        role = build_rbac(cluster)["role"]
        rbac.read_namespaced_role.side_effect = _not_found()
        rbac.create_namespaced_role.side_effect = lambda namespace, body: body

        applied = control.create_or_update_role(cluster, role)

        rbac.create_namespaced_role.assert_called_once()
        assert rbac.create_namespaced_role.call_args[0][0] == "default"
        assert applied["metadata"]["ownerReferences"] == [cluster.owner_ref()]
        rbac.replace_namespaced_role.assert_not_called()

    @pytest.mark.unit
    def test_other_api_errors_propagate(self):
        from kubernetes.client.rest import ApiException
        from tidb_discovery_tool.manager import build_rbac

        control, core, apps, rbac = _control()
        cluster = _make_cluster()
        core.read_namespaced_service_account.side_effect = ApiException(status=500, reason="boom")

        with pytest.raises(ApiException):
            control.create_or_update_service_account(cluster, build_rbac(cluster)["serviceAccount"])
        core.create_namespaced_service_account.assert_not_called()


class TestUpdate:

    @pytest.mark.unit
    def test_unchanged_object_is_not_written(self):
        from tidb_discovery_tool.manager import build_rbac

        control, core, apps, rbac = _control()
        cluster = _make_cluster()
        binding = build_rbac(cluster)["roleBinding"]
        live = copy.deepcopy(binding)
        live["metadata"]["resourceVersion"] = "42"
        rbac.read_namespaced_role_binding.return_value = live

        applied = control.create_or_update_role_binding(cluster, binding)

        rbac.replace_namespaced_role_binding.assert_not_called()
        assert applied["metadata"]["resourceVersion"] == "42"

    @pytest.mark.unit
    def test_foreign_owner_rejected(self):
        from tidb_discovery_tool.errors import NotOwnedError
        from tidb_discovery_tool.manager import build_rbac

        control, core, apps, rbac = _control()
        cluster = _make_cluster()
        role = build_rbac(cluster)["role"]
        rbac.read_namespaced_role.return_value = build_rbac(_make_cluster(uid="other"))["role"]

        with pytest.raises(NotOwnedError):
            control.create_or_update_role(cluster, role)
        rbac.replace_namespaced_role.assert_not_called()

    @pytest.mark.unit
    def test_role_rules_replaced(self):
        from tidb_discovery_tool.manager import build_rbac

        control, core, apps, rbac = _control()
        cluster = _make_cluster()
        role = build_rbac(cluster)["role"]
        live = copy.deepcopy(role)
        live["rules"] = []
        rbac.read_namespaced_role.return_value = live
        rbac.replace_namespaced_role.side_effect = lambda name, namespace, body: body

        applied = control.create_or_update_role(cluster, role)

        assert applied["rules"] == role["rules"]
        assert rbac.replace_namespaced_role.call_args[0][:2] == ("basic-discovery", "default")

    @pytest.mark.unit
    def test_service_keeps_cluster_ip(self):
        from tidb_discovery_tool.service import build_discovery_service

        control, core, apps, rbac = _control()
        cluster = _make_cluster()
        svc = build_discovery_service(cluster, {"spec": {"template": {"metadata": {"labels": {"a": "b"}}}}})
        live = copy.deepcopy(svc)
        live["spec"]["clusterIP"] = "10.0.0.7"
        live["spec"]["selector"] = {"a": "old"}
        core.read_namespaced_service.return_value = live
        core.replace_namespaced_service.side_effect = lambda name, namespace, body: body

        applied = control.create_or_update_service(cluster, svc)

        assert applied["spec"]["clusterIP"] == "10.0.0.7"
        assert applied["spec"]["selector"] == {"a": "b"}


class TestDeploymentUpdate:

    @pytest.mark.unit
    def test_same_fingerprint_keeps_pod_spec(self):
        control, core, apps, rbac = _control()
        cluster = _make_cluster()
        desired = _desired_deployment(cluster)
        live = copy.deepcopy(desired)
        live["spec"]["template"]["spec"]["schedulerName"] = "default-scheduler"
        live["spec"]["template"]["metadata"]["labels"]["pod-template-hash"] = "abc"
        apps.read_namespaced_deployment.return_value = live

        applied = control.create_or_update_deployment(cluster, desired)

        apps.replace_namespaced_deployment.assert_not_called()
        assert applied["spec"]["template"]["metadata"]["labels"]["pod-template-hash"] == "abc"

    @pytest.mark.unit
    def test_changed_fingerprint_replaces_pod_spec(self):
        from tidb_discovery_tool.deployment import LAST_APPLIED_POD_TEMPLATE

        control, core, apps, rbac = _control()
        cluster = _make_cluster()
        live = _desired_deployment(cluster)
        live["spec"]["strategy"] = {"type": "RollingUpdate", "rollingUpdate": {"maxSurge": 1}}
        live["spec"]["template"]["metadata"]["labels"]["extra"] = "kept"
        desired = _desired_deployment(cluster, {"timezone": "Asia/Shanghai"})
        apps.read_namespaced_deployment.return_value = live
        apps.replace_namespaced_deployment.side_effect = lambda name, namespace, body: body

        applied = control.create_or_update_deployment(cluster, desired)

        apps.replace_namespaced_deployment.assert_called_once()
        assert applied["spec"]["template"]["spec"] == desired["spec"]["template"]["spec"]
        assert applied["metadata"]["annotations"][LAST_APPLIED_POD_TEMPLATE] == \
            desired["metadata"]["annotations"][LAST_APPLIED_POD_TEMPLATE]
        assert applied["spec"]["strategy"] == {"type": "Recreate"}
        assert applied["spec"]["template"]["metadata"]["labels"]["extra"] == "kept"
