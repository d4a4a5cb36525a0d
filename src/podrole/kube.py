"""Kubernetes API client construction.

In-cluster service account credentials are used by default. A kubeconfig
file is only consulted when KUBECONFIG is set, for development outside a
cluster.
"""

from __future__ import annotations

import logging

from kubernetes_asyncio import client, config
from kubernetes_asyncio.config import ConfigException

from podrole.config import Settings
from podrole.errors import FatalStartupError

logger = logging.getLogger(__name__)


async def create_api_client(settings: Settings) -> client.ApiClient:
    """Build an API client for the lease and pod APIs.

    Raises:
        FatalStartupError: If no usable cluster configuration is found
    """
    try:
        if settings.kubeconfig:
            await config.load_kube_config(config_file=settings.kubeconfig)
            logger.info(f"Loaded kubeconfig from {settings.kubeconfig}")
        else:
            config.load_incluster_config()
            logger.info("Loaded in-cluster Kubernetes configuration")
    except (ConfigException, OSError) as e:
        raise FatalStartupError(f"Failed to load Kubernetes configuration: {e}") from e

    return client.ApiClient()
