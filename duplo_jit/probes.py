"""Liveness probes for cached credentials.

Each probe makes one cheap authenticated call with the credential and raises
if the remote system does not accept it. The cache treats any exception as a
revoked credential.
"""

from __future__ import annotations

import logging

import boto3
import httpx
from botocore.config import Config

from .client import DuploClient
from .config import DEFAULT_TIMEOUT_SECONDS
from .credentials import AwsCredentials, DuploCredentials, K8sExecCredential
from .exceptions import CredentialRevoked

logger = logging.getLogger(__name__)

DEFAULT_AWS_REGION = "us-east-1"


def ping_aws(creds: AwsCredentials, *, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> None:
    """Call STS GetCallerIdentity with the cached AWS credentials."""
    sts = boto3.client(
        "sts",
        region_name=creds.region or DEFAULT_AWS_REGION,
        aws_access_key_id=creds.access_key_id,
        aws_secret_access_key=creds.secret_access_key,
        aws_session_token=creds.session_token or None,
        config=Config(connect_timeout=timeout, read_timeout=timeout, retries={"total_max_attempts": 1}),
    )
    identity = sts.get_caller_identity()
    logger.debug("aws credentials valid for %s", identity.get("Arn"))


def k8s_namespace(tenant_name: str | None) -> str:
    """Namespace a tenant's workloads live in; ``kube-system`` for plan-wide access."""
    return f"duploservices-{tenant_name}" if tenant_name else "kube-system"


def ping_k8s(
    creds: K8sExecCredential,
    tenant_name: str | None = None,
    *,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> None:
    """List service accounts in the tenant's namespace with the cached token."""
    namespace = k8s_namespace(tenant_name)
    url = f"{creds.server.rstrip('/')}/api/v1/namespaces/{namespace}/serviceaccounts"
    # Only the token is being checked; the CA is verified by kubectl itself.
    with httpx.Client(timeout=timeout, verify=False) as client:
        response = client.get(
            url,
            params={"limit": 1},
            headers={"Authorization": f"Bearer {creds.token}", "Accept": "application/json"},
        )
        response.raise_for_status()


def ping_duplo(creds: DuploCredentials, host: str, *, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> None:
    """Check the session token against system features and the user's first tenant."""
    with DuploClient(host, creds.duplo_token, timeout=timeout) as client:
        client.features_system()
        tenants = client.list_tenants_for_user()
        if not tenants:
            raise CredentialRevoked("user has no tenants")
        client.get_tenant_features(tenants[0].tenant_id)
