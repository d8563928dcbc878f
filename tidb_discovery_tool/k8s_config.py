"""Kubernetes client construction.

Every getter takes an optional kubeconfig context name. An empty context uses
the current kubeconfig context, and when no kubeconfig is available the
in-cluster service account configuration is used instead.
"""

import logging
from typing import Optional

from kubernetes import client, config
from kubernetes.config.config_exception import ConfigException

logger = logging.getLogger("tidb-discovery")


def get_api_client(context: Optional[str] = "") -> client.ApiClient:
    """Return an ApiClient bound to the given kubeconfig context."""
    try:
        return config.new_client_from_config(context=context or None)
    except ConfigException as e:
        if context:
            raise
        logger.debug(f"No usable kubeconfig ({e}), falling back to in-cluster config")
        config.load_incluster_config()
        return client.ApiClient()


def get_core_client(context: str = "") -> client.CoreV1Api:
    return client.CoreV1Api(get_api_client(context))


def get_apps_client(context: str = "") -> client.AppsV1Api:
    return client.AppsV1Api(get_api_client(context))


def get_rbac_client(context: str = "") -> client.RbacAuthorizationV1Api:
    return client.RbacAuthorizationV1Api(get_api_client(context))


def get_custom_objects_client(context: str = "") -> client.CustomObjectsApi:
    return client.CustomObjectsApi(get_api_client(context))
