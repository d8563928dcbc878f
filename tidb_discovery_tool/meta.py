"""Object metadata shared by every discovery resource of a cluster."""

from typing import Any, Callable, Dict, Tuple

from tidb_discovery_tool.cluster import DMCluster, TidbCluster
from tidb_discovery_tool.labels import Label

# DMCluster discovery objects carry this suffix so they never collide with a
# TidbCluster of the same name in the same namespace.
DM_NAME_SUFFIX = "-dm"


def discovery_member_name(cluster_name: str) -> str:
    return f"{cluster_name}-discovery"


def get_discovery_meta(cluster, name_fn: Callable[[str], str] = discovery_member_name) -> Tuple[Dict[str, Any], Label]:
    """Derive the metadata and label set of the discovery resources.

    Returns:
        A ``(metadata, label)`` pair. Metadata holds name, namespace, labels
        and the owner reference list; label is the discovery label set.
    """
    if isinstance(cluster, TidbCluster):
        name = cluster.name
        discovery_label = Label.new().instance(cluster.instance_name).discovery()
    elif isinstance(cluster, DMCluster):
        name = f"{cluster.name}{DM_NAME_SUFFIX}"
        discovery_label = Label.new_dm().instance(f"{cluster.instance_name}{DM_NAME_SUFFIX}").discovery()
    else:
        raise TypeError(f"unsupported type {type(cluster).__name__} for discovery meta")

    meta = {
        "name": name_fn(name),
        "namespace": cluster.namespace,
        "labels": discovery_label.labels(),
        "ownerReferences": [cluster.owner_ref()],
    }
    return meta, discovery_label
