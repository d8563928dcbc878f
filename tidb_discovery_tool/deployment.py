"""Deployment for the discovery service of a TidbCluster or DMCluster."""

import copy
import json
from typing import Any, Dict, List

from tidb_discovery_tool.cluster import DMCluster, TidbCluster
from tidb_discovery_tool.config import DiscoveryConfig
from tidb_discovery_tool.errors import FingerprintError, MergeError
from tidb_discovery_tool.labels import PD_LABEL_VAL
from tidb_discovery_tool.merge import (
    append_env,
    combine_string_map,
    container_resource,
    merge_patch_containers,
)
from tidb_discovery_tool.meta import get_discovery_meta

LAST_APPLIED_POD_TEMPLATE = "pingcap.com/last-applied-podtemplate"

DISCOVERY_CONTAINER_NAME = "discovery"
DISCOVERY_COMMAND = ["/usr/local/bin/tidb-discovery"]
DISCOVERY_PORT = 10261
PROXY_PORT = 10262

PD_TLS_VOLUME_NAME = "pd-tls"
PD_TLS_CERT_PATH = "/var/lib/pd-tls"
TLS_ENABLED_ENV = "TC_TLS_ENABLED"


def cluster_tls_secret_name(cluster_name: str, component: str) -> str:
    return f"{cluster_name}-{component}-cluster-secret"


def pod_spec_fingerprint(pod_spec: Dict[str, Any]) -> str:
    """Serialize a pod spec into a stable string.

    Keys are sorted so two specs that differ only in key order produce the
    same fingerprint.
    """
    try:
        return json.dumps(pod_spec, sort_keys=True, separators=(",", ":"))
    except (TypeError, ValueError) as e:
        raise FingerprintError(f"failed to serialize pod spec: {e}") from e


def _discovery_envs(cluster, base_envs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    envs = [
        {
            "name": "MY_POD_NAMESPACE",
            "valueFrom": {"fieldRef": {"fieldPath": "metadata.namespace"}},
        },
        {"name": "TZ", "value": cluster.timezone},
        # DMCluster discovery keeps TC_NAME too, only the proxy server reads it
        {"name": "TC_NAME", "value": cluster.name},
    ]
    return append_env(envs, base_envs)


def _with_pd_tls(pod_spec: Dict[str, Any], cluster_name: str) -> Dict[str, Any]:
    spec = copy.deepcopy(pod_spec)
    spec["volumes"] = spec.get("volumes", []) + [{
        "name": PD_TLS_VOLUME_NAME,
        "secret": {"secretName": cluster_tls_secret_name(cluster_name, PD_LABEL_VAL)},
    }]
    for container in spec["containers"]:
        if container.get("name") != DISCOVERY_CONTAINER_NAME:
            continue
        container["volumeMounts"] = container.get("volumeMounts", []) + [{
            "name": PD_TLS_VOLUME_NAME,
            "readOnly": True,
            "mountPath": PD_TLS_CERT_PATH,
        }]
        container["env"] = container.get("env", []) + [{"name": TLS_ENABLED_ENV, "value": "true"}]
    return spec


class DeploymentBuilder:
    """Builds the desired discovery Deployment from a cluster object."""

    def __init__(self, config: DiscoveryConfig):
        self.config = config

    def discovery_container(self, cluster, base_spec) -> Dict[str, Any]:
        container: Dict[str, Any] = {
            "name": DISCOVERY_CONTAINER_NAME,
            "image": self.config.discovery_image,
            "command": list(DISCOVERY_COMMAND),
            "resources": container_resource(cluster.discovery_resources),
            "env": _discovery_envs(cluster, base_spec.env()),
            "volumeMounts": base_spec.additional_volume_mounts(),
            "ports": [
                {"name": "discovery", "protocol": "TCP", "containerPort": DISCOVERY_PORT},
                {"name": "proxy", "protocol": "TCP", "containerPort": PROXY_PORT},
            ],
        }
        pull_policy = base_spec.image_pull_policy()
        if pull_policy:
            container["imagePullPolicy"] = pull_policy
        env_from = base_spec.env_from()
        if env_from:
            container["envFrom"] = env_from
        return container

    def build(self, cluster) -> Dict[str, Any]:
        """Return the desired Deployment manifest.

        Raises:
            MergeError: the cluster's additional containers cannot be merged.
            FingerprintError: the pod spec cannot be serialized.
        """
        if not isinstance(cluster, (TidbCluster, DMCluster)):
            raise TypeError(f"unsupported type {type(cluster).__name__} for discovery deployment")

        base_spec = cluster.base_discovery_spec()
        pod_spec = base_spec.build_pod_spec()
        meta, discovery_label = get_discovery_meta(cluster)

        containers = pod_spec["containers"] + [self.discovery_container(cluster, base_spec)]
        try:
            pod_spec["containers"] = merge_patch_containers(containers, base_spec.additional_containers())
        except MergeError as e:
            raise MergeError(
                f"failed to merge containers spec for Discovery of [{meta['namespace']}/{meta['name']}], error: {e}"
            ) from e

        init_containers = pod_spec.get("initContainers", []) + base_spec.init_containers()
        if init_containers:
            pod_spec["initContainers"] = init_containers
        pod_spec["serviceAccountName"] = meta["name"]
        volumes = pod_spec.get("volumes", []) + base_spec.additional_volumes()
        if volumes:
            pod_spec["volumes"] = volumes

        if isinstance(cluster, TidbCluster) and cluster.is_tls_cluster_enabled() and not cluster.without_local_pd():
            pod_spec = _with_pd_tls(pod_spec, cluster.name)

        template_meta: Dict[str, Any] = {
            "labels": combine_string_map(discovery_label.labels(), base_spec.labels()),
        }
        annotations = base_spec.annotations()
        if annotations:
            template_meta["annotations"] = annotations

        deployment_meta = copy.deepcopy(meta)
        deployment_meta["annotations"] = {LAST_APPLIED_POD_TEMPLATE: pod_spec_fingerprint(pod_spec)}

        return {
            "apiVersion": "apps/v1",
            "kind": "Deployment",
            "metadata": deployment_meta,
            "spec": {
                "strategy": {"type": "Recreate"},
                "replicas": 1,
                "selector": discovery_label.label_selector(),
                "template": {
                    "metadata": template_meta,
                    "spec": pod_spec,
                },
            },
        }
