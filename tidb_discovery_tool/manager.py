"""Reconciles the discovery service of TidbCluster and DMCluster objects.

Every call derives the full desired set from the cluster object and applies
Role, ServiceAccount, RoleBinding, Deployment and Service in that order.
Nothing is cached between calls. Any failure aborts the pass with a
RequeueError, and the controller loop re-runs the whole sequence later.
"""

import logging
from typing import Any, Dict, Optional

from tidb_discovery_tool.cluster import TidbCluster, cluster_from_object
from tidb_discovery_tool.config import DiscoveryConfig
from tidb_discovery_tool.control import TypedControl
from tidb_discovery_tool.deployment import DeploymentBuilder
from tidb_discovery_tool.errors import requeue_errorf
from tidb_discovery_tool.meta import get_discovery_meta
from tidb_discovery_tool.rbac import (
    build_role,
    build_role_binding,
    build_service_account,
    cluster_policy_rule,
)
from tidb_discovery_tool.service import build_discovery_service

logger = logging.getLogger("tidb-discovery")


def discovery_applicable(cluster) -> bool:
    """A TidbCluster needs discovery only with PD or when spanning Kubernetes clusters."""
    if isinstance(cluster, TidbCluster):
        return not cluster.without_local_pd() or cluster.across_k8s()
    return True


def build_rbac(cluster) -> Dict[str, Dict[str, Any]]:
    meta, _ = get_discovery_meta(cluster)
    return {
        "role": build_role(meta, cluster_policy_rule(cluster)),
        "serviceAccount": build_service_account(meta),
        "roleBinding": build_role_binding(meta),
    }


def render_discovery(obj: Any, config: DiscoveryConfig) -> Optional[Dict[str, Dict[str, Any]]]:
    """Build the desired bundle without applying it.

    The Service selector comes from the desired Deployment here since nothing
    has been applied. Returns None when discovery does not apply to ``obj``.
    """
    cluster = cluster_from_object(obj)
    if cluster is None or not discovery_applicable(cluster):
        return None
    bundle = build_rbac(cluster)
    bundle["deployment"] = DeploymentBuilder(config).build(cluster)
    prefer_ipv6 = isinstance(cluster, TidbCluster) and cluster.prefer_ipv6
    bundle["service"] = build_discovery_service(cluster, bundle["deployment"], prefer_ipv6)
    return bundle


class DiscoveryManager:
    """Reconciles the discovery resource bundle of one cluster per call."""

    def __init__(self, control: TypedControl, config: Optional[DiscoveryConfig] = None):
        self.control = control
        self.builder = DeploymentBuilder(config or DiscoveryConfig.from_env())

    def reconcile(self, obj: Any) -> None:
        cluster = cluster_from_object(obj)
        if cluster is None:
            logger.warning(f"unsupported type {type(obj).__name__} for discovery")
            return
        if not discovery_applicable(cluster):
            return
        prefer_ipv6 = isinstance(cluster, TidbCluster) and cluster.prefer_ipv6

        rbac = build_rbac(cluster)
        try:
            self.control.create_or_update_role(cluster, rbac["role"])
        except Exception as e:
            raise requeue_errorf("error creating or updating discovery role: %s", e, cause=e) from e
        try:
            self.control.create_or_update_service_account(cluster, rbac["serviceAccount"])
        except Exception as e:
            raise requeue_errorf("error creating or updating discovery serviceaccount: %s", e, cause=e) from e
        try:
            self.control.create_or_update_role_binding(cluster, rbac["roleBinding"])
        except Exception as e:
            raise requeue_errorf("error creating or updating discovery rolebinding: %s", e, cause=e) from e

        try:
            desired = self.builder.build(cluster)
        except Exception as e:
            raise requeue_errorf("error generating discovery deployment: %s", e, cause=e) from e
        try:
            deployment = self.control.create_or_update_deployment(cluster, desired)
        except Exception as e:
            raise requeue_errorf("error creating or updating discovery deployment: %s", e, cause=e) from e

        try:
            self.control.create_or_update_service(
                cluster, build_discovery_service(cluster, deployment, prefer_ipv6)
            )
        except Exception as e:
            raise requeue_errorf("error creating or updating discovery service: %s", e, cause=e) from e


class FakeDiscoveryManager:
    """Stand-in for controllers that only need to observe reconcile failures."""

    def __init__(self):
        self.err: Optional[Exception] = None

    def set_reconcile_error(self, err: Optional[Exception]) -> None:
        self.err = err

    def reconcile(self, obj: Any) -> None:
        if self.err is not None:
            raise self.err
