"""TidbCluster and DMCluster custom resources as seen by the discovery reconciler.

Both variants are read from the raw custom resource dict returned by
CustomObjectsApi. Only the fields discovery needs are interpreted; everything
is returned as fresh copies so builders can extend the results freely.
"""

import copy
from typing import Any, Dict, List, Optional, Union

from tidb_discovery_tool.labels import INSTANCE_LABEL_KEY
from tidb_discovery_tool.merge import combine_string_map

GROUP_NAME = "pingcap.com"
API_VERSION = "v1alpha1"
TIDB_CLUSTER_KIND = "TidbCluster"
DM_CLUSTER_KIND = "DMCluster"
TIDB_CLUSTER_PLURAL = "tidbclusters"
DM_CLUSTER_PLURAL = "dmclusters"

DEFAULT_TIMEZONE = "UTC"


class ComponentAccessor:
    """Resolves a component's pod settings against cluster-level defaults.

    Component-level values win over cluster-level ones. Map-valued settings
    (labels, annotations, node selectors) are combined with the component
    entries taking precedence.
    """

    def __init__(self, cluster_spec: Dict[str, Any], component_spec: Optional[Dict[str, Any]]):
        self._cluster = cluster_spec or {}
        self._component = component_spec or {}

    def _pick(self, key: str) -> Any:
        value = self._component.get(key)
        if value is None:
            value = self._cluster.get(key)
        return copy.deepcopy(value)

    def _own(self, key: str) -> List[Dict[str, Any]]:
        return copy.deepcopy(self._component.get(key) or [])

    def image_pull_policy(self) -> Optional[str]:
        return self._pick("imagePullPolicy")

    def image_pull_secrets(self) -> Optional[List[Dict[str, Any]]]:
        return self._pick("imagePullSecrets")

    def host_network(self) -> bool:
        return bool(self._pick("hostNetwork"))

    def scheduler_name(self) -> Optional[str]:
        return self._pick("schedulerName")

    def affinity(self) -> Optional[Dict[str, Any]]:
        return self._pick("affinity")

    def priority_class_name(self) -> Optional[str]:
        return self._pick("priorityClassName")

    def node_selector(self) -> Dict[str, str]:
        return combine_string_map(self._cluster.get("nodeSelector"), self._component.get("nodeSelector"))

    def tolerations(self) -> Optional[List[Dict[str, Any]]]:
        if self._component.get("tolerations"):
            return copy.deepcopy(self._component["tolerations"])
        return copy.deepcopy(self._cluster.get("tolerations"))

    def pod_security_context(self) -> Optional[Dict[str, Any]]:
        return self._pick("podSecurityContext")

    def dns_config(self) -> Optional[Dict[str, Any]]:
        return self._pick("dnsConfig")

    def dns_policy(self) -> str:
        policy = self._pick("dnsPolicy")
        if policy:
            return policy
        if self.host_network():
            return "ClusterFirstWithHostNet"
        return "ClusterFirst"

    def termination_grace_period_seconds(self) -> Optional[int]:
        return self._pick("terminationGracePeriodSeconds")

    def topology_spread_constraints(self) -> Optional[List[Dict[str, Any]]]:
        return self._pick("topologySpreadConstraints")

    def env(self) -> List[Dict[str, Any]]:
        return self._own("env")

    def env_from(self) -> List[Dict[str, Any]]:
        return self._own("envFrom")

    def additional_containers(self) -> List[Dict[str, Any]]:
        return self._own("additionalContainers")

    def init_containers(self) -> List[Dict[str, Any]]:
        return self._own("initContainers")

    def additional_volumes(self) -> List[Dict[str, Any]]:
        return self._own("additionalVolumes")

    def additional_volume_mounts(self) -> List[Dict[str, Any]]:
        return self._own("additionalVolumeMounts")

    def labels(self) -> Dict[str, str]:
        return combine_string_map(self._cluster.get("labels"), self._component.get("labels"))

    def annotations(self) -> Dict[str, str]:
        return combine_string_map(self._cluster.get("annotations"), self._component.get("annotations"))

    def build_pod_spec(self) -> Dict[str, Any]:
        """Return the pod spec skeleton shared by every component workload."""
        spec: Dict[str, Any] = {
            "containers": [],
            "restartPolicy": "Always",
            "dnsPolicy": self.dns_policy(),
        }
        optional = {
            "schedulerName": self.scheduler_name(),
            "affinity": self.affinity(),
            "nodeSelector": self.node_selector() or None,
            "tolerations": self.tolerations(),
            "securityContext": self.pod_security_context(),
            "topologySpreadConstraints": self.topology_spread_constraints(),
            "dnsConfig": self.dns_config(),
            "priorityClassName": self.priority_class_name(),
            "imagePullSecrets": self.image_pull_secrets(),
            "terminationGracePeriodSeconds": self.termination_grace_period_seconds(),
        }
        spec.update({k: v for k, v in optional.items() if v is not None})
        if self.host_network():
            spec["hostNetwork"] = True
        return spec


class _ClusterObject:
    KIND = ""
    PLURAL = ""

    def __init__(self, obj: Dict[str, Any]):
        metadata = obj.get("metadata") or {}
        self.name: str = metadata.get("name", "")
        self.namespace: str = metadata.get("namespace", "")
        self.uid: str = metadata.get("uid", "")
        self.labels: Dict[str, str] = dict(metadata.get("labels") or {})
        self.spec: Dict[str, Any] = copy.deepcopy(obj.get("spec") or {})

    @classmethod
    def from_dict(cls, obj: Dict[str, Any]):
        return cls(obj)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.namespace}/{self.name})"

    @property
    def instance_name(self) -> str:
        return self.labels.get(INSTANCE_LABEL_KEY) or self.name

    @property
    def timezone(self) -> str:
        return self.spec.get("timezone") or DEFAULT_TIMEZONE

    @property
    def discovery_resources(self) -> Dict[str, Any]:
        discovery = self.spec.get("discovery") or {}
        resources: Dict[str, Any] = {}
        for key in ("limits", "requests"):
            if discovery.get(key):
                resources[key] = copy.deepcopy(discovery[key])
        return resources

    def base_discovery_spec(self) -> ComponentAccessor:
        return ComponentAccessor(self.spec, self.spec.get("discovery"))

    def owner_ref(self) -> Dict[str, Any]:
        return {
            "apiVersion": f"{GROUP_NAME}/{API_VERSION}",
            "kind": self.KIND,
            "name": self.name,
            "uid": self.uid,
            "controller": True,
            "blockOwnerDeletion": True,
        }


class TidbCluster(_ClusterObject):
    KIND = TIDB_CLUSTER_KIND
    PLURAL = TIDB_CLUSTER_PLURAL

    def without_local_pd(self) -> bool:
        return self.spec.get("pd") is None

    def across_k8s(self) -> bool:
        return bool(self.spec.get("acrossK8s"))

    def is_tls_cluster_enabled(self) -> bool:
        tls = self.spec.get("tlsCluster") or {}
        return bool(tls.get("enabled"))

    @property
    def prefer_ipv6(self) -> bool:
        return bool(self.spec.get("preferIPv6"))


class DMCluster(_ClusterObject):
    KIND = DM_CLUSTER_KIND
    PLURAL = DM_CLUSTER_PLURAL


Cluster = Union[TidbCluster, DMCluster]

_KINDS = {
    TIDB_CLUSTER_KIND: TidbCluster,
    DM_CLUSTER_KIND: DMCluster,
}

PLURALS = {cls.KIND: cls.PLURAL for cls in _KINDS.values()}


def cluster_from_object(obj: Any) -> Optional[Cluster]:
    """Wrap a raw custom resource dict in its cluster variant.

    Already-wrapped clusters are returned unchanged. Anything else, including
    dicts of an unknown kind, yields None.
    """
    if isinstance(obj, (TidbCluster, DMCluster)):
        return obj
    if not isinstance(obj, dict):
        return None
    cls = _KINDS.get(obj.get("kind", ""))
    if cls is None:
        return None
    return cls.from_dict(obj)
