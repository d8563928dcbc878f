"""Unit tests for discovery metadata, labels and RBAC objects."""

import pytest


def _make_cluster(kind, name="foo", namespace="db", uid="uid-1", labels=None, spec=None):
    from tidb_discovery_tool.cluster import cluster_from_object

    return cluster_from_object({
        "apiVersion": "pingcap.com/v1alpha1",
        "kind": kind,
        "metadata": {"name": name, "namespace": namespace, "uid": uid, "labels": labels or {}},
        "spec": spec or {},
    })


class TestClusterFromObject:

    @pytest.mark.unit
    def test_known_kinds(self):
        from tidb_discovery_tool.cluster import DMCluster, TidbCluster

        assert isinstance(_make_cluster("TidbCluster"), TidbCluster)
        assert isinstance(_make_cluster("DMCluster"), DMCluster)

    @pytest.mark.unit
    def test_unknown_kind(self):
        from tidb_discovery_tool.cluster import cluster_from_object

        assert cluster_from_object({"kind": "TidbMonitor", "metadata": {"name": "x"}}) is None
        assert cluster_from_object("TidbCluster") is None

    @pytest.mark.unit
    def test_defaults(self):
        tc = _make_cluster("TidbCluster")
        assert tc.timezone == "UTC"
        assert tc.instance_name == "foo"
        assert tc.without_local_pd() is True
        assert tc.is_tls_cluster_enabled() is False
        assert tc.prefer_ipv6 is False

    @pytest.mark.unit
    def test_instance_label_overrides_name(self):
        tc = _make_cluster("TidbCluster", labels={"app.kubernetes.io/instance": "shared"})
        assert tc.instance_name == "shared"


class TestDiscoveryMeta:

    @pytest.mark.unit
    def test_tidb_cluster_meta(self):
        from tidb_discovery_tool.meta import get_discovery_meta

        meta, label = get_discovery_meta(_make_cluster("TidbCluster"))
        assert meta["name"] == "foo-discovery"
        assert meta["namespace"] == "db"
        assert meta["labels"] == {
            "app.kubernetes.io/name": "tidb-cluster",
            "app.kubernetes.io/managed-by": "tidb-operator",
            "app.kubernetes.io/instance": "foo",
            "app.kubernetes.io/component": "discovery",
        }
        assert meta["ownerReferences"] == [{
            "apiVersion": "pingcap.com/v1alpha1",
            "kind": "TidbCluster",
            "name": "foo",
            "uid": "uid-1",
            "controller": True,
            "blockOwnerDeletion": True,
        }]
        assert label.label_selector() == {"matchLabels": meta["labels"]}

    @pytest.mark.unit
    def test_dm_cluster_meta_is_suffixed(self):
        from tidb_discovery_tool.meta import get_discovery_meta

        meta, _ = get_discovery_meta(_make_cluster("DMCluster"))
        assert meta["name"] == "foo-dm-discovery"
        assert meta["labels"]["app.kubernetes.io/name"] == "dm-cluster"
        assert meta["labels"]["app.kubernetes.io/instance"] == "foo-dm"
        assert meta["ownerReferences"][0]["kind"] == "DMCluster"

    @pytest.mark.unit
    def test_same_name_variants_do_not_collide(self):
        from tidb_discovery_tool.meta import get_discovery_meta

        tc_meta, _ = get_discovery_meta(_make_cluster("TidbCluster"))
        dm_meta, _ = get_discovery_meta(_make_cluster("DMCluster"))
        assert tc_meta["namespace"] == dm_meta["namespace"]
        assert tc_meta["name"] != dm_meta["name"]
        assert tc_meta["labels"] != dm_meta["labels"]

    @pytest.mark.unit
    def test_custom_name_fn(self):
        from tidb_discovery_tool.meta import get_discovery_meta

        meta, _ = get_discovery_meta(_make_cluster("DMCluster"), lambda n: f"x-{n}")
        assert meta["name"] == "x-foo-dm"

    @pytest.mark.unit
    def test_unsupported_type(self):
        from tidb_discovery_tool.meta import get_discovery_meta

        with pytest.raises(TypeError):
            get_discovery_meta({"kind": "TidbCluster"})


class TestRBAC:

    @pytest.mark.unit
    def test_policy_rule_per_variant(self):
        from tidb_discovery_tool.rbac import cluster_policy_rule

        tc_rule = cluster_policy_rule(_make_cluster("TidbCluster"))
        dm_rule = cluster_policy_rule(_make_cluster("DMCluster"))
        assert tc_rule == {
            "apiGroups": ["pingcap.com"],
            "resources": ["tidbclusters"],
            "resourceNames": ["foo"],
            "verbs": ["get"],
        }
        assert dm_rule["resources"] == ["dmclusters"]

    @pytest.mark.unit
    def test_role_grants_secret_read(self):
        from tidb_discovery_tool.meta import get_discovery_meta
        from tidb_discovery_tool.rbac import build_role, cluster_policy_rule

        tc = _make_cluster("TidbCluster")
        meta, _ = get_discovery_meta(tc)
        role = build_role(meta, cluster_policy_rule(tc))
        assert role["kind"] == "Role"
        assert role["metadata"]["name"] == "foo-discovery"
        assert role["rules"][1] == {
            "apiGroups": [""],
            "resources": ["secrets"],
            "verbs": ["get", "list", "watch"],
        }

    @pytest.mark.unit
    def test_binding_links_account_and_role(self):
        from tidb_discovery_tool.meta import get_discovery_meta
        from tidb_discovery_tool.rbac import build_role_binding, build_service_account

        meta, _ = get_discovery_meta(_make_cluster("DMCluster"))
        sa = build_service_account(meta)
        rb = build_role_binding(meta)
        assert sa["metadata"]["name"] == "foo-dm-discovery"
        assert rb["subjects"] == [{"kind": "ServiceAccount", "name": "foo-dm-discovery"}]
        assert rb["roleRef"] == {
            "kind": "Role",
            "name": "foo-dm-discovery",
            "apiGroup": "rbac.authorization.k8s.io",
        }
        assert rb["metadata"]["ownerReferences"] == sa["metadata"]["ownerReferences"]
