"""Unit tests for credential resolution from ConfigMaps and Secrets."""

import base64
from unittest.mock import MagicMock, patch

import pytest
from kubernetes import client
from kubernetes.client.rest import ApiException

from mssql_operator.errors import ConfigurationError, KubernetesAPIError
from mssql_operator.utils.credentials import CredentialResolver


def _b64(value: str) -> str:
    return base64.b64encode(value.encode()).decode()


def _config_map(data):
    return client.V1ConfigMap(
        metadata=client.V1ObjectMeta(name="sql-instance", namespace="team-a"),
        data=data,
    )


def _secret(data):
    return client.V1Secret(
        metadata=client.V1ObjectMeta(name="sql-login", namespace="team-a"),
        data=data,
    )


@pytest.fixture
def mock_v1():
    v1 = MagicMock()
    v1.read_namespaced_config_map.return_value = _config_map(
        {"instance": "sql.example.internal,1433"}
    )
    v1.read_namespaced_secret.return_value = _secret(
        {"userid": _b64("sa"), "password": _b64("s3cret")}
    )
    return v1


@pytest.fixture
def credential_resolver(mock_v1):
    resolver = CredentialResolver()
    resolver._v1 = mock_v1
    return resolver


class TestCredentialResolverInit:
    """Test CredentialResolver initialization."""

    def test_init_defaults(self):
        resolver = CredentialResolver()
        assert resolver.k8s_client is None
        assert resolver.admin_catalog == "master"

    def test_v1_property_creates_client(self):
        """Should create CoreV1Api client on first access."""
        resolver = CredentialResolver()

        with patch("mssql_operator.utils.credentials.client.CoreV1Api") as mock_api:
            _ = resolver.v1
            _ = resolver.v1
            mock_api.assert_called_once_with()

    def test_v1_property_uses_given_client(self):
        api_client = MagicMock()
        resolver = CredentialResolver(k8s_client=api_client)

        with patch("mssql_operator.utils.credentials.client.CoreV1Api") as mock_api:
            _ = resolver.v1
            mock_api.assert_called_once_with(api_client)


class TestResolve:
    """Test resolving a connection for a resource."""

    @pytest.mark.asyncio
    async def test_resolves_connection(self, credential_resolver, mock_v1, make_resource):
        connection = await credential_resolver.resolve(make_resource())

        assert connection.server == "sql.example.internal,1433"
        assert connection.user == "sa"
        assert connection.password == "s3cret"
        assert connection.database == "master"
        mock_v1.read_namespaced_config_map.assert_called_once_with(
            name="sql-instance", namespace="team-a"
        )
        mock_v1.read_namespaced_secret.assert_called_once_with(
            name="sql-login", namespace="team-a"
        )

    @pytest.mark.asyncio
    async def test_uses_configured_admin_catalog(self, mock_v1, make_resource):
        resolver = CredentialResolver(admin_catalog="admin")
        resolver._v1 = mock_v1

        connection = await resolver.resolve(make_resource())

        assert connection.database == "admin"

    @pytest.mark.asyncio
    async def test_password_not_in_repr(self, credential_resolver, make_resource):
        connection = await credential_resolver.resolve(make_resource())

        assert "s3cret" not in repr(connection)

    @pytest.mark.asyncio
    async def test_missing_config_map(self, credential_resolver, mock_v1, make_resource):
        mock_v1.read_namespaced_config_map.side_effect = ApiException(
            status=404, reason="Not Found"
        )

        with pytest.raises(ConfigurationError) as exc_info:
            await credential_resolver.resolve(make_resource())

        assert "ConfigMap 'sql-instance' not found in namespace team-a" in str(
            exc_info.value
        )
        assert exc_info.value.resource_kind == "ConfigMap"
        mock_v1.read_namespaced_secret.assert_not_called()

    @pytest.mark.asyncio
    async def test_config_map_without_instance_key(
        self, credential_resolver, mock_v1, make_resource
    ):
        mock_v1.read_namespaced_config_map.return_value = _config_map({"other": "x"})

        with pytest.raises(ConfigurationError) as exc_info:
            await credential_resolver.resolve(make_resource())

        assert exc_info.value.missing_key == "instance"
        assert "does not contain the 'instance' data property" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_config_map_without_data(
        self, credential_resolver, mock_v1, make_resource
    ):
        mock_v1.read_namespaced_config_map.return_value = _config_map(None)

        with pytest.raises(ConfigurationError):
            await credential_resolver.resolve(make_resource())

    @pytest.mark.asyncio
    async def test_missing_secret(self, credential_resolver, mock_v1, make_resource):
        mock_v1.read_namespaced_secret.side_effect = ApiException(
            status=404, reason="Not Found"
        )

        with pytest.raises(ConfigurationError) as exc_info:
            await credential_resolver.resolve(make_resource())

        assert "Secret 'sql-login' not found in namespace team-a" in str(exc_info.value)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("missing", ["userid", "password"])
    async def test_secret_without_required_key(
        self, credential_resolver, mock_v1, make_resource, missing
    ):
        data = {"userid": _b64("sa"), "password": _b64("s3cret")}
        del data[missing]
        mock_v1.read_namespaced_secret.return_value = _secret(data)

        with pytest.raises(ConfigurationError) as exc_info:
            await credential_resolver.resolve(make_resource())

        assert exc_info.value.missing_key == missing
        assert exc_info.value.resource_kind == "Secret"

    @pytest.mark.asyncio
    async def test_forbidden_is_api_error(
        self, credential_resolver, mock_v1, make_resource
    ):
        mock_v1.read_namespaced_secret.side_effect = ApiException(
            status=403, reason="Forbidden"
        )

        with pytest.raises(KubernetesAPIError) as exc_info:
            await credential_resolver.resolve(make_resource())

        assert not exc_info.value.retryable

    @pytest.mark.asyncio
    async def test_server_error_is_retryable_api_error(
        self, credential_resolver, mock_v1, make_resource
    ):
        mock_v1.read_namespaced_config_map.side_effect = ApiException(
            status=500, reason="Internal Server Error"
        )

        with pytest.raises(KubernetesAPIError) as exc_info:
            await credential_resolver.resolve(make_resource())

        assert exc_info.value.retryable

    @pytest.mark.asyncio
    async def test_non_utf8_secret_value(
        self, credential_resolver, mock_v1, make_resource
    ):
        mock_v1.read_namespaced_secret.return_value = _secret(
            {
                "userid": _b64("sa"),
                "password": base64.b64encode(b"\xff\xfe\xfa").decode(),
            }
        )

        with pytest.raises(ConfigurationError) as exc_info:
            await credential_resolver.resolve(make_resource())

        assert "Secret 'sql-login' property 'password'" in str(exc_info.value)
        assert exc_info.value.resource_name == "sql-login"

    @pytest.mark.asyncio
    async def test_secret_value_not_base64(
        self, credential_resolver, mock_v1, make_resource
    ):
        mock_v1.read_namespaced_secret.return_value = _secret(
            {"userid": "not base64!", "password": _b64("s3cret")}
        )

        with pytest.raises(ConfigurationError) as exc_info:
            await credential_resolver.resolve(make_resource())

        assert "property 'userid'" in str(exc_info.value)
