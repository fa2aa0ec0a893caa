"""``duplo-aws-credential-process``: the single-purpose AWS entry point.

Takes a token only (no interactive login) and keeps its own cache namespace.
Cached credentials are keyed on the ``--tenant`` argument as given, so a
cache hit needs no broker call at all.
"""

from __future__ import annotations

from typing import Optional

import typer

from duplo_jit.cache import CredentialCache, build_cache_key
from duplo_jit.client import DuploClient
from duplo_jit.credentials import KIND_AWS, AwsCredentials, convert_aws_credentials
from duplo_jit.exceptions import DuploJitError
from duplo_jit.probes import ping_aws

from .commands import DebugOption, HostOption, NoCacheOption, TenantOption, TokenOption, prepare, run_command
from .constants import ENV_TOKEN, LEGACY_AWS_TOOL_NAME

ERROR_TOKEN_REQUIRED = f"invalid arguments: --token (or {ENV_TOKEN}) is required when no cached credentials are usable"

app = typer.Typer(name=LEGACY_AWS_TOOL_NAME, add_completion=False)


def get_legacy_aws_credentials(
    host: str,
    token: str | None,
    cache: CredentialCache,
    *,
    admin: bool = False,
    tenant: str | None = None,
) -> AwsCredentials:
    """Return reusable cached AWS credentials, or fetch them with ``token``."""
    if admin:
        cache_key = build_cache_key(host, "admin")
    elif not tenant:
        raise DuploJitError("invalid arguments: must specify --admin or --tenant=NAME or --tenant=ID")
    else:
        cache_key = build_cache_key(host, "tenant", tenant)

    creds = cache.get(cache_key, KIND_AWS, probe=ping_aws)
    if creds is not None:
        return creds

    if not token:
        raise DuploJitError(ERROR_TOKEN_REQUIRED)

    with DuploClient(host, token) as client:
        if admin:
            result = client.admin_get_jit_aws_credentials()
        else:
            result = client.tenant_get_jit_aws_credentials(client.resolve_tenant(tenant).tenant_id)

    creds = convert_aws_credentials(result)
    cache.put(cache_key, KIND_AWS, creds)
    return creds


@app.command()
def credential_process(
    host: Optional[str] = HostOption,
    token: Optional[str] = TokenOption,
    admin: bool = typer.Option(False, "--admin", help="Get admin credentials"),
    tenant: Optional[str] = TenantOption,
    no_cache: bool = NoCacheOption,
    debug: bool = DebugOption,
) -> None:
    """Output AWS credentials for the AWS CLI credential_process integration."""

    def produce() -> AwsCredentials:
        base_url, cache = prepare(host, no_cache, debug, tool=LEGACY_AWS_TOOL_NAME)
        return get_legacy_aws_credentials(base_url, token, cache, admin=admin, tenant=tenant)

    run_command(produce)


if __name__ == "__main__":
    app()
