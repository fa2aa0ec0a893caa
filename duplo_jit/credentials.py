"""Credential documents produced by duplo-jit, and conversion from broker responses.

Each credential kind has a JSON form that is both printed to stdout (for the
AWS CLI ``credential_process`` integration, or kubectl's exec-credential
plugin) and stored in the local cache.
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Union

from ._timestamps import format_timestamp, parse_timestamp
from .client import AwsJitCredentials, K8sClusterConfig
from .exceptions import CredentialConversionError

KIND_AWS = "aws"
KIND_DUPLO = "duplo"
KIND_K8S = "k8s"

DEFAULT_VALIDITY_SECONDS = 3600
# Broker-issued cluster tokens are refreshed hourly; reuse them for 55 minutes.
K8S_REFRESH_WINDOW = timedelta(minutes=55)

EXEC_CREDENTIAL_API_VERSION = "client.authentication.k8s.io/v1beta1"


def _validity(seconds: int) -> timedelta:
    return timedelta(seconds=seconds if seconds > 0 else DEFAULT_VALIDITY_SECONDS)


@dataclass(frozen=True)
class AwsCredentials:
    """AWS ``credential_process`` output document."""

    access_key_id: str
    secret_access_key: str
    expiration: str
    console_url: str = ""
    region: str = ""
    session_token: str = ""
    version: int = 1

    kind = KIND_AWS

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "Version": self.version,
            "ConsoleUrl": self.console_url,
            "AccessKeyId": self.access_key_id,
            "SecretAccessKey": self.secret_access_key,
            "Region": self.region,
        }
        if self.session_token:
            data["SessionToken"] = self.session_token
        if self.expiration:
            data["Expiration"] = self.expiration
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AwsCredentials:
        return cls(
            version=int(data.get("Version", 1)),
            console_url=data.get("ConsoleUrl") or "",
            access_key_id=data["AccessKeyId"],
            secret_access_key=data["SecretAccessKey"],
            region=data.get("Region") or "",
            session_token=data.get("SessionToken") or "",
            expiration=data.get("Expiration") or "",
        )

    def expires_at(self) -> datetime:
        return parse_timestamp(self.expiration)


@dataclass(frozen=True)
class DuploCredentials:
    """Broker session document: a bearer token and whether it needed an OTP."""

    duplo_token: str
    need_otp: bool = False
    version: int = 1

    kind = KIND_DUPLO

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"Version": self.version}
        if self.duplo_token:
            data["DuploToken"] = self.duplo_token
        data["NeedOTP"] = self.need_otp
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DuploCredentials:
        token = data.get("DuploToken")
        if not isinstance(token, str) or not token:
            raise KeyError("DuploToken")
        return cls(version=int(data.get("Version", 1)), duplo_token=token, need_otp=bool(data.get("NeedOTP")))

    def expires_at(self) -> datetime | None:
        # Session tokens carry no expiration; they are validated by probe alone.
        return None


@dataclass(frozen=True)
class K8sExecCredential:
    """Kubernetes ``ExecCredential`` document (client.authentication.k8s.io/v1beta1)."""

    server: str
    token: str
    expiration: str
    certificate_authority_data: bytes | None = None

    kind = KIND_K8S

    @property
    def insecure_skip_tls_verify(self) -> bool:
        return self.certificate_authority_data is None

    def to_dict(self) -> dict[str, Any]:
        cluster: dict[str, Any] = {"server": self.server}
        if self.certificate_authority_data is not None:
            cluster["certificate-authority-data"] = base64.b64encode(self.certificate_authority_data).decode()
        else:
            cluster["insecure-skip-tls-verify"] = True
        return {
            "kind": "ExecCredential",
            "apiVersion": EXEC_CREDENTIAL_API_VERSION,
            "spec": {"cluster": cluster, "interactive": False},
            "status": {"expirationTimestamp": self.expiration, "token": self.token},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> K8sExecCredential:
        if data.get("kind") != "ExecCredential":
            raise KeyError("kind")
        cluster = data["spec"]["cluster"]
        status = data["status"]
        if not isinstance(cluster, dict) or not isinstance(status, dict):
            raise TypeError("spec.cluster and status must be objects")
        ca_data = cluster.get("certificate-authority-data")
        return cls(
            server=cluster["server"],
            token=status["token"],
            expiration=status.get("expirationTimestamp") or "",
            certificate_authority_data=base64.b64decode(ca_data, validate=True) if ca_data else None,
        )

    def expires_at(self) -> datetime:
        return parse_timestamp(self.expiration)


Credential = Union[AwsCredentials, DuploCredentials, K8sExecCredential]

CREDENTIAL_TYPES: dict[str, type] = {
    KIND_AWS: AwsCredentials,
    KIND_DUPLO: DuploCredentials,
    KIND_K8S: K8sExecCredential,
}


def to_json(credential: Credential) -> str:
    """Serialize a credential as compact JSON, the form written to stdout."""
    return json.dumps(credential.to_dict(), separators=(",", ":"))


def convert_aws_credentials(creds: AwsJitCredentials, *, now: datetime | None = None) -> AwsCredentials:
    """Convert broker AWS credentials, fixing an absolute expiration."""
    now = now or datetime.now(timezone.utc)
    return AwsCredentials(
        console_url=creds.console_url,
        access_key_id=creds.access_key_id,
        secret_access_key=creds.secret_access_key,
        region=creds.region,
        session_token=creds.session_token,
        expiration=format_timestamp(now + _validity(creds.validity)),
    )


def convert_k8s_credentials(config: K8sClusterConfig, *, now: datetime | None = None) -> K8sExecCredential:
    """Convert broker cluster access into an ExecCredential.

    Raises:
        CredentialConversionError: If the CA certificate data is not valid base64.
    """
    ca_data: bytes | None = None
    if config.certificate_authority_data_base64:
        try:
            ca_data = base64.b64decode(config.certificate_authority_data_base64, validate=True)
        except (binascii.Error, ValueError) as e:
            raise CredentialConversionError(f"failed to base64 decode CA certificate data: {e}") from e

    if config.last_token_refresh_time is not None:
        refreshed = config.last_token_refresh_time
        if refreshed.tzinfo is None:
            refreshed = refreshed.replace(tzinfo=timezone.utc)
        expiration = refreshed + K8S_REFRESH_WINDOW
    else:
        expiration = (now or datetime.now(timezone.utc)) + _validity(config.validity)

    return K8sExecCredential(
        server=config.api_server,
        token=config.token,
        expiration=format_timestamp(expiration),
        certificate_authority_data=ca_data,
    )
