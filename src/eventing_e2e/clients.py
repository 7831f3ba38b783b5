"""Kubernetes API clients used by the harness.

Example:
    >>> from eventing_e2e.clients import build_cluster_clients
    >>> from eventing_e2e.config import HarnessConfig
    >>> clients = build_cluster_clients(HarnessConfig(kubeconfig="~/.kube/config"))
    >>> clients.core.list_namespace(limit=1)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import structlog
from kubernetes import client
from kubernetes import config as k8s_config
from kubernetes.dynamic import DynamicClient

from eventing_e2e.config import HarnessConfig

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ClusterClients:
    """Bundle of API handles shared by every session in a run.

    Attributes:
        core: CoreV1Api (namespaces, service accounts, secrets, events, pods).
        dynamic: DynamicClient for creating and deleting tracked objects.
    """

    core: Any
    dynamic: Any


def build_cluster_clients(config: HarnessConfig) -> ClusterClients:
    """Load cluster credentials and construct the API clients.

    Loading order:
    1. Explicit kubeconfig path from config
    2. In-cluster configuration
    3. Default kubeconfig (~/.kube/config)

    Raises:
        kubernetes.config.ConfigException: If no configuration can be loaded.
    """
    if config.kubeconfig:
        k8s_config.load_kube_config(config_file=config.kubeconfig, context=config.cluster)
        logger.info("kubeconfig_loaded", kubeconfig=config.kubeconfig, context=config.cluster)
    else:
        try:
            k8s_config.load_incluster_config()
            logger.info("incluster_config_loaded")
        except k8s_config.ConfigException:
            k8s_config.load_kube_config(context=config.cluster)
            logger.info("default_kubeconfig_loaded", context=config.cluster)

    api_client = client.ApiClient()
    return ClusterClients(
        core=client.CoreV1Api(api_client),
        dynamic=DynamicClient(api_client),
    )


__all__ = ["ClusterClients", "build_cluster_clients"]
