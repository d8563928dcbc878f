"""Create-or-update for the resource kinds the discovery reconciler manages.

Each ``create_or_update_*`` call reads the live object, creates it when it is
missing, and otherwise folds the desired fields into the live object before
replacing it. The live object's resourceVersion rides along on the replace,
so a concurrent writer surfaces as a 409 instead of a lost update.
"""

import copy
import logging
from typing import Any, Callable, Dict, Optional

from kubernetes import client
from kubernetes.client.rest import ApiException

from tidb_discovery_tool.deployment import LAST_APPLIED_POD_TEMPLATE
from tidb_discovery_tool.errors import NotOwnedError

logger = logging.getLogger("tidb-discovery")

MergeFn = Callable[[Dict[str, Any], Dict[str, Any]], None]


class _Ops:
    def __init__(self, kind: str, read, create, replace):
        self.kind = kind
        self.read = read
        self.create = create
        self.replace = replace


def _metadata(obj: Dict[str, Any]) -> Dict[str, Any]:
    return obj.setdefault("metadata", {})


def _controller_ref(obj: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    for ref in _metadata(obj).get("ownerReferences") or []:
        if ref.get("controller"):
            return ref
    return None


def _set_owner_ref(obj: Dict[str, Any], owner_ref: Dict[str, Any]) -> None:
    refs = [r for r in _metadata(obj).get("ownerReferences") or [] if r.get("uid") != owner_ref["uid"]]
    refs.append(copy.deepcopy(owner_ref))
    _metadata(obj)["ownerReferences"] = refs


def _merge_string_map(existing: Dict[str, Any], desired: Dict[str, Any], key: str) -> None:
    values = desired.get(key)
    if not values:
        return
    merged = dict(existing.get(key) or {})
    merged.update(values)
    existing[key] = merged


def _merge_role(existing: Dict[str, Any], desired: Dict[str, Any]) -> None:
    _metadata(existing)["labels"] = copy.deepcopy(desired["metadata"].get("labels"))
    existing["rules"] = copy.deepcopy(desired.get("rules"))


def _merge_service_account(existing: Dict[str, Any], desired: Dict[str, Any]) -> None:
    _merge_string_map(_metadata(existing), desired["metadata"], "labels")
    _merge_string_map(_metadata(existing), desired["metadata"], "annotations")


def _merge_role_binding(existing: Dict[str, Any], desired: Dict[str, Any]) -> None:
    _metadata(existing)["labels"] = copy.deepcopy(desired["metadata"].get("labels"))
    existing["subjects"] = copy.deepcopy(desired.get("subjects"))
    existing["roleRef"] = copy.deepcopy(desired.get("roleRef"))


def _merge_service(existing: Dict[str, Any], desired: Dict[str, Any]) -> None:
    _metadata(existing)["labels"] = copy.deepcopy(desired["metadata"].get("labels"))
    _merge_string_map(_metadata(existing), desired["metadata"], "annotations")
    spec = existing.setdefault("spec", {})
    # clusterIP is allocated by the API server and immutable
    for key, value in desired.get("spec", {}).items():
        if key in ("clusterIP", "clusterIPs"):
            continue
        spec[key] = copy.deepcopy(value)


def deployment_pod_spec_changed(desired: Dict[str, Any], existing: Dict[str, Any]) -> bool:
    """Compare the pod spec fingerprints recorded on both Deployments."""
    want = (desired.get("metadata", {}).get("annotations") or {}).get(LAST_APPLIED_POD_TEMPLATE)
    have = (existing.get("metadata", {}).get("annotations") or {}).get(LAST_APPLIED_POD_TEMPLATE)
    return want != have


def _merge_deployment(existing: Dict[str, Any], desired: Dict[str, Any]) -> None:
    pod_spec_changed = deployment_pod_spec_changed(desired, existing)
    meta = _metadata(existing)
    meta["labels"] = copy.deepcopy(desired["metadata"].get("labels"))
    _merge_string_map(meta, desired["metadata"], "annotations")

    spec = existing.setdefault("spec", {})
    desired_spec = desired.get("spec", {})
    spec["replicas"] = desired_spec.get("replicas")
    strategy_type = desired_spec.get("strategy", {}).get("type")
    if strategy_type:
        strategy = dict(spec.get("strategy") or {})
        strategy["type"] = strategy_type
        if strategy_type == "Recreate":
            strategy.pop("rollingUpdate", None)
        spec["strategy"] = strategy

    # the selector is immutable, so template labels are left as they are
    template = spec.setdefault("template", {})
    _merge_string_map(template.setdefault("metadata", {}), desired_spec.get("template", {}).get("metadata", {}), "annotations")
    if pod_spec_changed:
        template["spec"] = copy.deepcopy(desired_spec.get("template", {}).get("spec"))


class TypedControl:
    """Idempotent create-or-update against the Kubernetes API."""

    def __init__(
        self,
        core_api: client.CoreV1Api,
        apps_api: client.AppsV1Api,
        rbac_api: client.RbacAuthorizationV1Api,
        api_client: Optional[client.ApiClient] = None,
    ):
        self.api_client = api_client or client.ApiClient()
        self._roles = _Ops(
            "Role",
            rbac_api.read_namespaced_role,
            rbac_api.create_namespaced_role,
            rbac_api.replace_namespaced_role,
        )
        self._service_accounts = _Ops(
            "ServiceAccount",
            core_api.read_namespaced_service_account,
            core_api.create_namespaced_service_account,
            core_api.replace_namespaced_service_account,
        )
        self._role_bindings = _Ops(
            "RoleBinding",
            rbac_api.read_namespaced_role_binding,
            rbac_api.create_namespaced_role_binding,
            rbac_api.replace_namespaced_role_binding,
        )
        self._deployments = _Ops(
            "Deployment",
            apps_api.read_namespaced_deployment,
            apps_api.create_namespaced_deployment,
            apps_api.replace_namespaced_deployment,
        )
        self._services = _Ops(
            "Service",
            core_api.read_namespaced_service,
            core_api.create_namespaced_service,
            core_api.replace_namespaced_service,
        )

    def _to_dict(self, obj: Any) -> Dict[str, Any]:
        return self.api_client.sanitize_for_serialization(obj)

    def _create_or_update(self, ops: _Ops, owner, desired: Dict[str, Any], merge: MergeFn) -> Dict[str, Any]:
        desired = copy.deepcopy(desired)
        owner_ref = owner.owner_ref()
        _set_owner_ref(desired, owner_ref)
        name = desired["metadata"]["name"]
        namespace = desired["metadata"]["namespace"]

        try:
            live = ops.read(name, namespace)
        except ApiException as e:
            if e.status != 404:
                raise
            created = ops.create(namespace, desired)
            logger.info(f"Created {ops.kind} {namespace}/{name}")
            return self._to_dict(created)

        existing = self._to_dict(live)
        controller = _controller_ref(existing)
        if controller is None or controller.get("uid") != owner_ref["uid"]:
            raise NotOwnedError(
                f"{ops.kind} {namespace}/{name} already exists but is not controlled by "
                f"{owner_ref['kind']} {namespace}/{owner_ref['name']}"
            )

        mutated = copy.deepcopy(existing)
        merge(mutated, desired)
        _set_owner_ref(mutated, owner_ref)
        if mutated == existing:
            logger.debug(f"{ops.kind} {namespace}/{name} is up to date")
            return existing

        updated = ops.replace(name, namespace, mutated)
        logger.info(f"Updated {ops.kind} {namespace}/{name}")
        return self._to_dict(updated)

    def create_or_update_role(self, owner, role: Dict[str, Any]) -> Dict[str, Any]:
        return self._create_or_update(self._roles, owner, role, _merge_role)

    def create_or_update_service_account(self, owner, sa: Dict[str, Any]) -> Dict[str, Any]:
        return self._create_or_update(self._service_accounts, owner, sa, _merge_service_account)

    def create_or_update_role_binding(self, owner, rb: Dict[str, Any]) -> Dict[str, Any]:
        return self._create_or_update(self._role_bindings, owner, rb, _merge_role_binding)

    def create_or_update_deployment(self, owner, deploy: Dict[str, Any]) -> Dict[str, Any]:
        return self._create_or_update(self._deployments, owner, deploy, _merge_deployment)

    def create_or_update_service(self, owner, svc: Dict[str, Any]) -> Dict[str, Any]:
        return self._create_or_update(self._services, owner, svc, _merge_service)
