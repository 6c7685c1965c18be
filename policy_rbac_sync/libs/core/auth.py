"""
Authentication Module

Discovers Kubernetes credentials for the hub cluster the controller watches.
"""

import logging
from typing import Optional, Tuple

from kubernetes import client, config
from kubernetes.config.config_exception import ConfigException

from .constants import ErrorMessages
from .exceptions import AuthenticationError
from .utils import disable_ssl_warnings, handle_ssl_error

logger = logging.getLogger(__name__)


class KubeAuth:
    """Handles Kubernetes authentication and API client construction"""

    def __init__(self, kubeconfig: Optional[str] = None, skip_tls: bool = False):
        """
        Initialize Kubernetes authentication handler

        Args:
            kubeconfig: Explicit kubeconfig path (optional, defaults to ~/.kube/config)
            skip_tls: Whether to skip TLS verification against the API server
        """
        self.kubeconfig = kubeconfig or None
        self.skip_tls = skip_tls
        self.k8s_client = None
        self.custom_api = None
        self.core_api = None

    def configure_auth(self) -> bool:
        """
        Load in-cluster configuration, falling back to kubeconfig

        Returns:
            bool: True if authentication was configured successfully

        Raises:
            AuthenticationError: If neither configuration source is usable
        """
        configuration = client.Configuration()

        try:
            if self.kubeconfig:
                config.load_kube_config(config_file=self.kubeconfig, client_configuration=configuration)
                logger.info(f"Loaded kubeconfig from {self.kubeconfig}")
            else:
                try:
                    config.load_incluster_config(client_configuration=configuration)
                    logger.info("Loaded in-cluster configuration")
                except ConfigException as incluster_error:
                    logger.debug(f"In-cluster configuration unavailable: {incluster_error}")
                    config.load_kube_config(client_configuration=configuration)
                    logger.info("Loaded kubeconfig from default location")
        except (ConfigException, OSError) as e:
            raise AuthenticationError(f"Failed to configure authentication: {e}")

        if self.skip_tls:
            configuration.verify_ssl = False
            configuration.ssl_ca_cert = None
            disable_ssl_warnings()

        self.k8s_client = client.ApiClient(configuration)
        self.custom_api = client.CustomObjectsApi(self.k8s_client)
        self.core_api = client.CoreV1Api(self.k8s_client)
        return True

    def is_authenticated(self) -> bool:
        """Check if authentication is properly configured"""
        return self.k8s_client is not None

    def test_connection(self) -> bool:
        """
        Test the connection to the Kubernetes API server

        Raises:
            AuthenticationError: If connection test fails
        """
        if not self.is_authenticated():
            raise AuthenticationError(ErrorMessages.NOT_AUTHENTICATED)

        try:
            self.core_api.get_api_resources()
            logger.info("Successfully tested connection to the Kubernetes API")
            return True
        except Exception as e:
            handle_ssl_error(e, AuthenticationError)

    def get_kubernetes_clients(self) -> Tuple[Optional[client.ApiClient], Optional[client.CustomObjectsApi],
                                              Optional[client.CoreV1Api]]:
        """
        Get initialized Kubernetes API clients

        Returns:
            Tuple of (k8s_client, custom_api, core_api)
        """
        return self.k8s_client, self.custom_api, self.core_api
