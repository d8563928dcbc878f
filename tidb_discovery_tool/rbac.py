"""Role, ServiceAccount and RoleBinding for the discovery workload.

The discovery service reads its own cluster object and the cluster TLS
secrets, nothing else.
"""

import copy
from typing import Any, Dict

from tidb_discovery_tool.cluster import GROUP_NAME, DMCluster, TidbCluster

RBAC_GROUP_NAME = "rbac.authorization.k8s.io"
CORE_GROUP_NAME = ""


def cluster_policy_rule(cluster) -> Dict[str, Any]:
    """Allow ``get`` on exactly the owning cluster object."""
    if not isinstance(cluster, (TidbCluster, DMCluster)):
        raise TypeError(f"unsupported type {type(cluster).__name__} for discovery policy rule")
    return {
        "apiGroups": [GROUP_NAME],
        "resources": [cluster.PLURAL],
        "resourceNames": [cluster.name],
        "verbs": ["get"],
    }


def build_role(meta: Dict[str, Any], cluster_rule: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "apiVersion": f"{RBAC_GROUP_NAME}/v1",
        "kind": "Role",
        "metadata": copy.deepcopy(meta),
        "rules": [
            copy.deepcopy(cluster_rule),
            {
                "apiGroups": [CORE_GROUP_NAME],
                "resources": ["secrets"],
                "verbs": ["get", "list", "watch"],
            },
        ],
    }


def build_service_account(meta: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "ServiceAccount",
        "metadata": copy.deepcopy(meta),
    }


def build_role_binding(meta: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "apiVersion": f"{RBAC_GROUP_NAME}/v1",
        "kind": "RoleBinding",
        "metadata": copy.deepcopy(meta),
        "subjects": [{
            "kind": "ServiceAccount",
            "name": meta["name"],
        }],
        "roleRef": {
            "kind": "Role",
            "name": meta["name"],
            "apiGroup": RBAC_GROUP_NAME,
        },
    }
