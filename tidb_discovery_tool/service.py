"""ClusterIP Service in front of the discovery Deployment."""

import copy
from typing import Any, Dict

from tidb_discovery_tool.deployment import DISCOVERY_PORT, PROXY_PORT
from tidb_discovery_tool.meta import get_discovery_meta

IPV6_FAMILY = "IPv6"
PREFER_DUAL_STACK = "PreferDualStack"


def set_service_when_prefer_ipv6(service: Dict[str, Any]) -> None:
    """Make the service allocate an IPv6 cluster IP first."""
    spec = service.setdefault("spec", {})
    spec["ipFamilies"] = [IPV6_FAMILY]
    spec["ipFamilyPolicy"] = PREFER_DUAL_STACK


def build_discovery_service(cluster, deployment: Dict[str, Any], prefer_ipv6: bool = False) -> Dict[str, Any]:
    """Build the discovery Service.

    The selector is taken from the pod template labels of ``deployment``,
    which should be the Deployment as returned by the API server so the
    Service follows the pods that actually exist.
    """
    meta, _ = get_discovery_meta(cluster)
    template_labels = (
        deployment.get("spec", {}).get("template", {}).get("metadata", {}).get("labels") or {}
    )
    service = {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": meta,
        "spec": {
            "type": "ClusterIP",
            "ports": [
                {
                    "name": "discovery",
                    "port": DISCOVERY_PORT,
                    "targetPort": DISCOVERY_PORT,
                    "protocol": "TCP",
                },
                {
                    "name": "proxy",
                    "port": PROXY_PORT,
                    "targetPort": PROXY_PORT,
                    "protocol": "TCP",
                },
            ],
            "selector": copy.deepcopy(template_labels),
        },
    }
    if prefer_ipv6:
        set_service_when_prefer_ipv6(service)
    return service
