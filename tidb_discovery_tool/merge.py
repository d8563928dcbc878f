"""Merge helpers for pod spec fragments.

Containers are merged the way a strategic merge patch treats ``Container``
objects: maps merge recursively, an explicit ``None`` removes a key, and
lists that carry a patch merge key are merged element-wise by that key.
Every other list in the patch replaces the base list.
"""

import copy
from typing import Any, Dict, List, Optional

from tidb_discovery_tool.errors import MergeError

# patchMergeKey of the Container list fields
CONTAINER_MERGE_KEYS: Dict[str, str] = {
    "env": "name",
    "ports": "containerPort",
    "volumeMounts": "mountPath",
    "volumeDevices": "devicePath",
    "resizePolicy": "resourceName",
}

RESOURCE_STORAGE = "storage"


def combine_string_map(*maps: Optional[Dict[str, str]]) -> Dict[str, str]:
    """Combine maps into a new one; later maps win on key collision."""
    result: Dict[str, str] = {}
    for m in maps:
        if m:
            result.update(m)
    return result


def append_env(base: List[Dict[str, Any]], overrides: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Return base env vars with overrides applied by name.

    An override sharing a name with a base entry replaces it in place; other
    overrides are appended in their given order.
    """
    result = [copy.deepcopy(e) for e in base]
    index = {e.get("name"): i for i, e in enumerate(result)}
    for env in overrides or []:
        name = env.get("name")
        if name in index:
            result[index[name]] = copy.deepcopy(env)
        else:
            index[name] = len(result)
            result.append(copy.deepcopy(env))
    return result


def container_resource(requirements: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Copy resource requirements without the storage resource, which containers cannot request."""
    trimmed = copy.deepcopy(requirements or {})
    for key in ("limits", "requests"):
        if trimmed.get(key):
            trimmed[key].pop(RESOURCE_STORAGE, None)
    return trimmed


def _index_by(items: List[Any], key: str, where: str) -> Dict[Any, int]:
    index: Dict[Any, int] = {}
    for i, item in enumerate(items):
        if not isinstance(item, dict) or item.get(key) is None:
            raise MergeError(f"{where}: element {i} has no '{key}'")
        if item[key] in index:
            raise MergeError(f"{where}: duplicate {key} {item[key]!r}")
        index[item[key]] = i
    return index


def _merge_keyed_list(base: List[Any], patch: List[Any], key: str, where: str) -> List[Any]:
    result = copy.deepcopy(base)
    base_index = _index_by(result, key, f"{where} (base)")
    _index_by(patch, key, f"{where} (patch)")
    for item in patch:
        i = base_index.get(item[key])
        if i is None:
            result.append(copy.deepcopy(item))
        else:
            result[i] = _merge_map(result[i], item, {}, where)
    return result


def _merge_map(base: Dict[str, Any], patch: Dict[str, Any], list_keys: Dict[str, str], where: str) -> Dict[str, Any]:
    result = copy.deepcopy(base)
    for key, value in patch.items():
        if value is None:
            result.pop(key, None)
        elif isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _merge_map(result[key], value, {}, f"{where}.{key}")
        elif key in list_keys and isinstance(value, list) and isinstance(result.get(key), list):
            result[key] = _merge_keyed_list(result[key], value, list_keys[key], f"{where}.{key}")
        else:
            result[key] = copy.deepcopy(value)
    return result


def merge_containers(base: Dict[str, Any], patch: Dict[str, Any]) -> Dict[str, Any]:
    """Strategic-merge a single container patch onto a base container."""
    return _merge_map(base, patch, CONTAINER_MERGE_KEYS, f"container {base.get('name')!r}")


def merge_patch_containers(base: List[Dict[str, Any]], patches: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Merge container overrides into a base container list by name.

    Containers present in both lists are deep-merged with the patch winning,
    base containers without a patch are kept as they are, and patch containers
    unknown to the base are appended in patch order.

    Raises:
        MergeError: a container is not a mapping, has no name, or a name
            appears twice on the same side.
    """
    base_index = _index_by(base, "name", "containers")
    patch_index = _index_by(patches or [], "name", "container overrides")

    out: List[Dict[str, Any]] = []
    for container in base:
        i = patch_index.get(container["name"])
        if i is None:
            out.append(copy.deepcopy(container))
        else:
            out.append(merge_containers(container, patches[i]))
    for container in patches or []:
        if container["name"] not in base_index:
            out.append(copy.deepcopy(container))
    return out
