"""Discovery service tools for TidbCluster and DMCluster objects.

Tools:
    render_discovery_resources - Show the discovery resources a cluster should have
    reconcile_discovery        - Create or update those resources in the cluster
"""

import logging
from typing import Any, Dict

from mcp.types import ToolAnnotations

from tidb_discovery_tool.cluster import API_VERSION, GROUP_NAME, PLURALS, cluster_from_object
from tidb_discovery_tool.config import DiscoveryConfig
from tidb_discovery_tool.control import TypedControl
from tidb_discovery_tool.deployment import LAST_APPLIED_POD_TEMPLATE
from tidb_discovery_tool.errors import RequeueError
from tidb_discovery_tool.k8s_config import (
    get_apps_client,
    get_core_client,
    get_custom_objects_client,
    get_rbac_client,
)
from tidb_discovery_tool.manager import DiscoveryManager, discovery_applicable, render_discovery

logger = logging.getLogger("tidb-discovery")


def _fetch_cluster(kind: str, name: str, namespace: str, context: str) -> Dict[str, Any]:
    plural = PLURALS.get(kind)
    if plural is None:
        raise ValueError(f"Unsupported kind '{kind}', expected one of: {', '.join(sorted(PLURALS))}")
    custom_api = get_custom_objects_client(context)
    return custom_api.get_namespaced_custom_object(
        group=GROUP_NAME, version=API_VERSION, namespace=namespace,
        plural=plural, name=name,
    )


def _not_found(kind: str, name: str, namespace: str, error_msg: str) -> Dict[str, Any]:
    if "404" in error_msg or "not found" in error_msg.lower():
        return {
            "success": False,
            "error": f"{kind} '{name}' not found in namespace {namespace}",
            "hint": "Use list_custom_resources with group pingcap.com to find clusters",
        }
    return {"success": False, "error": error_msg}


def register_discovery_tools(server, non_destructive: bool):
    """Register discovery rendering and reconciliation tools."""

    @server.tool(
        annotations=ToolAnnotations(
            title="Render Discovery Resources",
            readOnlyHint=True,
        ),
    )
    def render_discovery_resources(
        kind: str,
        name: str,
        namespace: str,
        context: str = ""
    ) -> Dict[str, Any]:
        """Render the discovery Role, ServiceAccount, RoleBinding, Deployment and Service for a cluster.

        Nothing is written to the cluster. The Service selector shown is the
        desired pod template labels of the Deployment.

        Args:
            kind: "TidbCluster" or "DMCluster"
            name: Cluster name
            namespace: Cluster namespace
            context: Kubernetes context (uses current if not specified)
        """
        try:
            obj = _fetch_cluster(kind, name, namespace, context)
            bundle = render_discovery(obj, DiscoveryConfig.from_env())
            if bundle is None:
                return {
                    "success": True,
                    "context": context or "current",
                    "applicable": False,
                    "message": f"{kind} {namespace}/{name} does not run a discovery service",
                }
            deployment = bundle["deployment"]
            return {
                "success": True,
                "context": context or "current",
                "applicable": True,
                "name": deployment["metadata"]["name"],
                "fingerprint": deployment["metadata"]["annotations"][LAST_APPLIED_POD_TEMPLATE],
                "resources": bundle,
            }
        except Exception as e:
            logger.error(f"Error rendering discovery resources: {e}")
            return _not_found(kind, name, namespace, str(e))

    @server.tool(
        annotations=ToolAnnotations(
            title="Reconcile Discovery Service",
            destructiveHint=True,
        ),
    )
    def reconcile_discovery(
        kind: str,
        name: str,
        namespace: str,
        context: str = ""
    ) -> Dict[str, Any]:
        """Create or update the discovery service resources of a cluster.

        Applies Role, ServiceAccount, RoleBinding, Deployment and Service in
        that order. Safe to repeat; unchanged resources are left alone.

        Args:
            kind: "TidbCluster" or "DMCluster"
            name: Cluster name
            namespace: Cluster namespace
            context: Kubernetes context (uses current if not specified)
        """
        if non_destructive:
            return {
                "success": False,
                "error": "Blocked: reconcile_discovery writes to the cluster and is disabled in non-destructive mode",
            }
        try:
            obj = _fetch_cluster(kind, name, namespace, context)
            cluster = cluster_from_object(obj)
            applicable = cluster is not None and discovery_applicable(cluster)
            control = TypedControl(
                get_core_client(context),
                get_apps_client(context),
                get_rbac_client(context),
            )
            DiscoveryManager(control, DiscoveryConfig.from_env()).reconcile(obj)
            return {
                "success": True,
                "context": context or "current",
                "applicable": applicable,
                "cluster": f"{namespace}/{name}",
            }
        except RequeueError as e:
            logger.error(f"Error reconciling discovery for {namespace}/{name}: {e}")
            return {"success": False, "error": str(e), "retryable": True}
        except Exception as e:
            logger.error(f"Error reconciling discovery: {e}")
            return _not_found(kind, name, namespace, str(e))
