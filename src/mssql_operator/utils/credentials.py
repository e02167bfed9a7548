"""
SQL Server credential resolution for MSSQLDatabase resources.

Each resource references a ConfigMap with the server address and a Secret
with the login. This module reads both from the resource's namespace and
turns them into a ConnectionDescriptor for the administrative catalog.
"""

import asyncio
import base64
import binascii
import logging

from kubernetes import client
from kubernetes.client.rest import ApiException

from ..constants import (
    CONFIG_MAP_INSTANCE_KEY,
    DEFAULT_ADMIN_CATALOG,
    ERROR_CONFIG_MAP_MISSING_KEY,
    ERROR_CONFIG_MAP_NOT_FOUND,
    ERROR_SECRET_MISSING_KEY,
    ERROR_SECRET_NOT_FOUND,
    ERROR_SECRET_UNDECODABLE,
    SECRET_PASSWORD_KEY,
    SECRET_USER_ID_KEY,
)
from ..errors import ConfigurationError, KubernetesAPIError
from ..models.database import ConnectionDescriptor, DatabaseResource

logger = logging.getLogger(__name__)


class CredentialResolver:
    """Resolves the SQL Server connection for a database resource."""

    def __init__(
        self,
        k8s_client: client.ApiClient | None = None,
        admin_catalog: str = DEFAULT_ADMIN_CATALOG,
    ):
        """
        Initialize credential resolver.

        Args:
            k8s_client: Optional Kubernetes API client
            admin_catalog: Catalog the resolved connection opens in
        """
        self.k8s_client = k8s_client
        self.admin_catalog = admin_catalog
        self._v1: client.CoreV1Api | None = None

    @property
    def v1(self) -> client.CoreV1Api:
        """Get CoreV1Api client."""
        if self._v1 is None:
            if self.k8s_client:
                self._v1 = client.CoreV1Api(self.k8s_client)
            else:
                self._v1 = client.CoreV1Api()
        return self._v1

    async def resolve(self, resource: DatabaseResource) -> ConnectionDescriptor:
        """
        Resolve the connection descriptor for a resource.

        Args:
            resource: Resource whose references should be resolved

        Returns:
            Connection descriptor targeting the administrative catalog

        Raises:
            ConfigurationError: If a referenced resource or required key is missing
                or a Secret value is not base64-encoded UTF-8 text
            KubernetesAPIError: If reading a referenced resource fails otherwise
        """
        config_map = await self._read_config_map(
            resource.spec.config_map, resource.namespace
        )
        config_data = config_map.data or {}
        if CONFIG_MAP_INSTANCE_KEY not in config_data:
            raise ConfigurationError(
                ERROR_CONFIG_MAP_MISSING_KEY.format(
                    resource.spec.config_map, CONFIG_MAP_INSTANCE_KEY
                ),
                resource_kind="ConfigMap",
                resource_name=resource.spec.config_map,
                missing_key=CONFIG_MAP_INSTANCE_KEY,
                user_action=(
                    f"Add the '{CONFIG_MAP_INSTANCE_KEY}' key with the SQL Server "
                    f"address to ConfigMap '{resource.spec.config_map}'"
                ),
            )

        secret = await self._read_secret(resource.spec.credentials, resource.namespace)
        secret_data = secret.data or {}
        for key in (SECRET_USER_ID_KEY, SECRET_PASSWORD_KEY):
            if key not in secret_data:
                raise ConfigurationError(
                    ERROR_SECRET_MISSING_KEY.format(resource.spec.credentials, key),
                    resource_kind="Secret",
                    resource_name=resource.spec.credentials,
                    missing_key=key,
                    user_action=(
                        f"Add the '{key}' key to Secret '{resource.spec.credentials}'"
                    ),
                )

        return ConnectionDescriptor(
            server=config_data[CONFIG_MAP_INSTANCE_KEY],
            user=_decode_secret_value(
                secret_data, SECRET_USER_ID_KEY, resource.spec.credentials
            ),
            password=_decode_secret_value(
                secret_data, SECRET_PASSWORD_KEY, resource.spec.credentials
            ),
            database=self.admin_catalog,
        )

    async def _read_config_map(self, name: str, namespace: str) -> client.V1ConfigMap:
        try:
            return await asyncio.to_thread(
                self.v1.read_namespaced_config_map, name=name, namespace=namespace
            )
        except ApiException as e:
            if e.status == 404:
                raise ConfigurationError(
                    ERROR_CONFIG_MAP_NOT_FOUND.format(name, namespace),
                    resource_kind="ConfigMap",
                    resource_name=name,
                    user_action=f"Create ConfigMap '{name}' in namespace {namespace}",
                ) from e
            raise KubernetesAPIError(
                f"Failed to read ConfigMap {namespace}/{name}",
                reason=e.reason,
            ) from e

    async def _read_secret(self, name: str, namespace: str) -> client.V1Secret:
        try:
            return await asyncio.to_thread(
                self.v1.read_namespaced_secret, name=name, namespace=namespace
            )
        except ApiException as e:
            if e.status == 404:
                raise ConfigurationError(
                    ERROR_SECRET_NOT_FOUND.format(name, namespace),
                    resource_kind="Secret",
                    resource_name=name,
                    user_action=f"Create Secret '{name}' in namespace {namespace}",
                ) from e
            raise KubernetesAPIError(
                f"Failed to read Secret {namespace}/{name}",
                reason=e.reason,
            ) from e


def _decode_secret_value(data: dict[str, str], key: str, secret_name: str) -> str:
    # The API returns secret data base64-encoded
    try:
        return base64.b64decode(data[key], validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as e:
        raise ConfigurationError(
            ERROR_SECRET_UNDECODABLE.format(secret_name, key),
            resource_kind="Secret",
            resource_name=secret_name,
            user_action=(
                f"Store the '{key}' value of Secret '{secret_name}' as UTF-8 text"
            ),
        ) from e
