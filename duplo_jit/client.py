"""Synchronous HTTP client for the Duplo broker API."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import httpx

from ._http import build_headers, handle_response
from ._timestamps import parse_timestamp
from .config import DEFAULT_TIMEOUT_SECONDS, sanitize_base_url
from .exceptions import DuploJitError, TenantNotFound, UpstreamUnavailable

logger = logging.getLogger(__name__)


@dataclass
class AwsJitCredentials:
    """Just-in-time AWS credentials as returned by the broker."""

    access_key_id: str
    secret_access_key: str
    console_url: str = ""
    region: str = ""
    session_token: str = ""
    validity: int = 0

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> AwsJitCredentials:
        return cls(
            access_key_id=data.get("AccessKeyId", ""),
            secret_access_key=data.get("SecretAccessKey", ""),
            console_url=data.get("ConsoleUrl") or "",
            region=data.get("Region") or "",
            session_token=data.get("SessionToken") or "",
            validity=int(data.get("Validity") or 0),
        )


@dataclass
class K8sClusterConfig:
    """Just-in-time Kubernetes access as returned by the broker."""

    name: str
    api_server: str
    token: str
    certificate_authority_data_base64: str = ""
    last_token_refresh_time: datetime | None = None
    validity: int = 0

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> K8sClusterConfig:
        refreshed = data.get("LastTokenRefreshTime")
        return cls(
            name=data.get("Name") or "",
            api_server=data.get("ApiServer") or "",
            token=data.get("Token") or "",
            certificate_authority_data_base64=data.get("CertificateAuthorityDataBase64") or "",
            last_token_refresh_time=parse_timestamp(refreshed) if refreshed else None,
            validity=int(data.get("Validity") or 0),
        )


@dataclass
class UserTenant:
    """A user's view of a Duplo tenant."""

    tenant_id: str
    account_name: str
    plan_id: str = ""

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> UserTenant:
        return cls(
            tenant_id=data.get("TenantId") or "",
            account_name=data.get("AccountName") or "",
            plan_id=data.get("PlanID") or "",
        )


class DuploClient:
    """Synchronous client for the Duplo broker API.

    Example:
        >>> from duplo_jit import DuploClient
        >>> with DuploClient("https://example.duplocloud.net", token="...") as client:
        ...     print(client.features_system())
    """

    def __init__(
        self,
        host: str,
        token: str,
        *,
        otp: str | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        """Initialize the broker client.

        Args:
            host: Broker base URL, e.g. ``https://example.duplocloud.net``.
            token: Broker session (bearer) token.
            otp: Optional one-time passcode, sent with every request.
            timeout: Per-request timeout in seconds (default: 20).

        Raises:
            DuploJitError: If the host or token is missing.
        """
        if not host or not token:
            raise DuploJitError("missing config for Duplo 'host' and/or 'token'")

        self.host = sanitize_base_url(host)
        self.token = token
        self.otp = otp or None
        self._client = httpx.Client(timeout=timeout)

    def _get(self, api_name: str, api_path: str) -> Any:
        url = f"{self.host}/{api_path}"
        logger.debug("getAPI %s: prepared request: %s", api_name, url)
        try:
            response = self._client.get(url, headers=build_headers(self.token, self.otp))
        except httpx.HTTPError as e:
            logger.debug("getAPI %s: failed: %s", api_name, e)
            raise UpstreamUnavailable(f"{api_name}: {e}", url=url) from e
        result = handle_response(response)
        logger.debug("getAPI %s: received response", api_name)
        return result

    def features_system(self) -> dict[str, Any]:
        """Retrieve system features. Doubles as a cheap authenticated ping."""
        return self._get("FeaturesSystem()", "v3/features/system") or {}

    def get_tenant_features(self, tenant_id: str) -> dict[str, Any]:
        return self._get(f"GetTenantFeatures({tenant_id})", f"v3/features/tenant/{tenant_id}") or {}

    def list_tenants_for_user(self) -> list[UserTenant]:
        data = self._get("GetTenantsForUser()", "admin/GetTenantsForUser") or []
        return [UserTenant.from_api(item) for item in data]

    def get_tenant_by_name_for_user(self, name: str) -> UserTenant | None:
        for tenant in self.list_tenants_for_user():
            if tenant.account_name == name:
                return tenant
        return None

    def get_tenant_for_user(self, tenant_id: str) -> UserTenant | None:
        for tenant in self.list_tenants_for_user():
            if tenant.tenant_id == tenant_id:
                return tenant
        return None

    def resolve_tenant(self, tenant_id_or_name: str) -> UserTenant:
        """Find a tenant by ID (32 characters or more) or by name.

        Raises:
            TenantNotFound: If the tenant is missing or not visible to the user.
        """
        if len(tenant_id_or_name) < 32:
            tenant = self.get_tenant_by_name_for_user(tenant_id_or_name)
        else:
            tenant = self.get_tenant_for_user(tenant_id_or_name)
        if tenant is None:
            raise TenantNotFound(f"tenant '{tenant_id_or_name}' missing or not allowed")
        return tenant

    def admin_aws_get_jit_access(self, role: str) -> AwsJitCredentials:
        """Retrieve just-in-time admin AWS credentials for the requested role."""
        data = self._get("AdminAwsGetJitAccess()", f"v3/admin/aws/jitAccess/{role}")
        return AwsJitCredentials.from_api(data or {})

    def admin_get_jit_aws_credentials(self) -> AwsJitCredentials:
        """Retrieve admin AWS credentials, falling back to the legacy API on 404."""
        try:
            return self.admin_aws_get_jit_access("admin")
        except UpstreamUnavailable as e:
            if e.status_code != 404:
                raise
        data = self._get("AdminGetJITAwsCredentials()", "adminproxy/GetJITAwsConsoleAccessUrl")
        return AwsJitCredentials.from_api(data or {})

    def tenant_get_jit_aws_credentials(self, tenant_id: str) -> AwsJitCredentials:
        data = self._get(
            f"TenantGetAwsCredentials({tenant_id})",
            f"subscriptions/{tenant_id}/GetAwsConsoleTokenUrl",
        )
        return AwsJitCredentials.from_api(data or {})

    def admin_get_k8s_jit_access(self, plan_id: str) -> K8sClusterConfig:
        data = self._get(f"AdminGetK8sJitAccess({plan_id})", f"v3/admin/plans/{plan_id}/k8sClusterConfig")
        return K8sClusterConfig.from_api(data or {})

    def tenant_get_k8s_jit_access(self, tenant_id: str) -> K8sClusterConfig:
        data = self._get(f"TenantGetK8sJitAccess({tenant_id})", f"v3/subscriptions/{tenant_id}/k8s/jitAccess")
        return K8sClusterConfig.from_api(data or {})

    def close(self) -> None:
        """Release the underlying HTTP client resources."""
        self._client.close()

    def __enter__(self) -> DuploClient:
        return self

    def __exit__(self, exc_type: type | None, exc: BaseException | None, traceback: Any) -> None:
        self.close()
