"""Tests for the Duplo broker client."""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import patch

import httpx
import pytest

from duplo_jit.client import DuploClient, K8sClusterConfig
from duplo_jit.exceptions import BrokerAuthenticationError, DuploJitError, TenantNotFound, UpstreamUnavailable

from .conftest import BASE_URL

TENANTS = [
    {"TenantId": "0" * 36, "AccountName": "dev", "PlanID": "default"},
    {"TenantId": "1" * 36, "AccountName": "prod", "PlanID": "default"},
]


def _response(status: int, path: str, **kwargs) -> httpx.Response:
    return httpx.Response(status, request=httpx.Request("GET", f"{BASE_URL}/{path}"), **kwargs)


@pytest.fixture
def client():
    client = DuploClient(BASE_URL + "/", token="tok")
    yield client
    client.close()


class TestDuploClientInit:
    def test_strips_trailing_slash(self, client):
        assert client.host == BASE_URL

    @pytest.mark.parametrize("host, token", [("", "tok"), (BASE_URL, ""), (BASE_URL, None)])
    def test_requires_host_and_token(self, host, token):
        with pytest.raises(DuploJitError):
            DuploClient(host, token)

    def test_context_manager(self):
        with DuploClient(BASE_URL, token="tok") as client:
            assert client.token == "tok"


class TestRequests:
    def test_sends_bearer_token(self, client):
        with patch.object(httpx.Client, "get", return_value=_response(200, "v3/features/system", json={})) as mock_get:
            client.features_system()

        url = mock_get.call_args[0][0]
        headers = mock_get.call_args[1]["headers"]
        assert url == f"{BASE_URL}/v3/features/system"
        assert headers["Authorization"] == "Bearer tok"
        assert "otpcode" not in headers

    def test_sends_otp(self):
        with DuploClient(BASE_URL, token="tok", otp="123456") as client, \
             patch.object(httpx.Client, "get", return_value=_response(200, "v3/features/system", json={})) as mock_get:
            client.features_system()
        assert mock_get.call_args[1]["headers"]["otpcode"] == "123456"

    def test_features_system(self, client):
        response = _response(200, "v3/features/system", json={"IsOtpNeeded": True})
        with patch.object(httpx.Client, "get", return_value=response):
            assert client.features_system() == {"IsOtpNeeded": True}

    def test_unauthorized(self, client):
        with patch.object(httpx.Client, "get", return_value=_response(401, "v3/features/system", text="no")):
            with pytest.raises(BrokerAuthenticationError) as excinfo:
                client.features_system()
        assert excinfo.value.status_code == 401

    def test_server_error_carries_context(self, client):
        response = _response(
            500, "v3/features/system", json={"Message": "boom"}, headers={"content-type": "application/json"}
        )
        with patch.object(httpx.Client, "get", return_value=response):
            with pytest.raises(UpstreamUnavailable) as excinfo:
                client.features_system()

        error = excinfo.value
        assert error.status_code == 500
        assert error.url == f"{BASE_URL}/v3/features/system"
        assert error.response["Message"] == "boom"
        assert error.possible_missing_api

    def test_legacy_api_hint(self, client):
        with patch.object(httpx.Client, "get", return_value=_response(404, "admin/GetTenantsForUser", text="nope")):
            with pytest.raises(UpstreamUnavailable, match="verify your Duplo connection"):
                client.list_tenants_for_user()

    def test_transport_error(self, client):
        with patch.object(httpx.Client, "get", side_effect=httpx.ConnectError("refused")):
            with pytest.raises(UpstreamUnavailable) as excinfo:
                client.features_system()
        assert excinfo.value.status_code == -1


class TestTenants:
    def _patched(self):
        return patch.object(httpx.Client, "get", return_value=_response(200, "admin/GetTenantsForUser", json=TENANTS))

    def test_list(self, client):
        with self._patched():
            tenants = client.list_tenants_for_user()
        assert [t.account_name for t in tenants] == ["dev", "prod"]

    def test_resolve_by_name(self, client):
        with self._patched():
            assert client.resolve_tenant("prod").tenant_id == "1" * 36

    def test_resolve_by_id(self, client):
        with self._patched():
            assert client.resolve_tenant("0" * 36).account_name == "dev"

    def test_resolve_missing(self, client):
        with self._patched():
            with pytest.raises(TenantNotFound):
                client.resolve_tenant("staging")


class TestJitAccess:
    AWS = {"AccessKeyId": "AKIA", "SecretAccessKey": "s", "Region": "us-west-2", "Validity": 900}

    def test_admin_aws(self, client):
        with patch.object(httpx.Client, "get", return_value=_response(200, "v3/admin/aws/jitAccess/admin", json=self.AWS)):
            creds = client.admin_get_jit_aws_credentials()
        assert creds.access_key_id == "AKIA"
        assert creds.validity == 900

    def test_admin_aws_falls_back_to_legacy_api(self, client):
        responses = [
            _response(404, "v3/admin/aws/jitAccess/admin", text="not found"),
            _response(200, "adminproxy/GetJITAwsConsoleAccessUrl", json=self.AWS),
        ]
        with patch.object(httpx.Client, "get", side_effect=responses) as mock_get:
            creds = client.admin_get_jit_aws_credentials()

        assert creds.region == "us-west-2"
        assert mock_get.call_args[0][0] == f"{BASE_URL}/adminproxy/GetJITAwsConsoleAccessUrl"

    def test_admin_aws_other_errors_propagate(self, client):
        with patch.object(httpx.Client, "get", return_value=_response(403, "v3/admin/aws/jitAccess/admin", text="x")):
            with pytest.raises(UpstreamUnavailable):
                client.admin_get_jit_aws_credentials()

    def test_tenant_aws(self, client):
        path = "subscriptions/abc/GetAwsConsoleTokenUrl"
        with patch.object(httpx.Client, "get", return_value=_response(200, path, json=self.AWS)) as mock_get:
            client.tenant_get_jit_aws_credentials("abc")
        assert mock_get.call_args[0][0] == f"{BASE_URL}/{path}"

    def test_k8s_config(self, client):
        body = {
            "Name": "default",
            "ApiServer": "https://k8s.example.com",
            "Token": "k8s-token",
            "CertificateAuthorityDataBase64": "Q0E=",
            "LastTokenRefreshTime": "2024-03-01T10:00:00Z",
        }
        path = "v3/admin/plans/default/k8sClusterConfig"
        with patch.object(httpx.Client, "get", return_value=_response(200, path, json=body)):
            config = client.admin_get_k8s_jit_access("default")

        assert isinstance(config, K8sClusterConfig)
        assert config.api_server == "https://k8s.example.com"
        assert config.last_token_refresh_time.isoformat() == "2024-03-01T10:00:00+00:00"

    def test_k8s_refresh_time_with_seven_fraction_digits(self):
        config = K8sClusterConfig.from_api(
            {"ApiServer": "https://k8s.example.com", "Token": "t", "LastTokenRefreshTime": "2024-05-01T12:34:56.1234567Z"}
        )
        assert config.last_token_refresh_time == datetime(2024, 5, 1, 12, 34, 56, 123456, tzinfo=timezone.utc)


class TestUpstreamUnavailable:
    def test_str_is_message(self):
        error = UpstreamUnavailable("url: x, status: 503, message: busy", status_code=503)
        assert str(error) == "url: x, status: 503, message: busy"
        assert error.message == str(error)
        assert error.possible_missing_api is False
