"""
Kubernetes utilities for the MSSQL operator.

This module loads the Kubernetes client configuration for both in-cluster
and local development setups.
"""

import logging

from kubernetes import config

logger = logging.getLogger(__name__)


def load_kubernetes_config() -> None:
    """
    Load Kubernetes configuration.

    Tries the in-cluster service account first and falls back to the local
    kubeconfig for development.

    Raises:
        config.ConfigException: If neither configuration can be loaded
    """
    try:
        config.load_incluster_config()
        logger.debug("Loaded in-cluster Kubernetes configuration")
    except config.ConfigException:
        try:
            config.load_kube_config()
            logger.debug("Loaded kubeconfig from local environment")
        except config.ConfigException as e:
            logger.error(f"Failed to load Kubernetes configuration: {e}")
            raise
