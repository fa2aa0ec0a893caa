"""AWS credentials, in the AWS CLI ``credential_process`` format."""

from __future__ import annotations

from typing import Optional

import typer

from duplo_jit.auth.session import resolve_duplo_session
from duplo_jit.cache import CredentialCache, build_cache_key
from duplo_jit.config import TOOL_NAME
from duplo_jit.credentials import KIND_AWS, AwsCredentials, convert_aws_credentials
from duplo_jit.exceptions import DuploJitError
from duplo_jit.probes import ping_aws

from . import (
    DebugOption,
    HostOption,
    InteractiveOption,
    NoCacheOption,
    PortOption,
    TenantOption,
    TokenOption,
    prepare,
    run_command,
)

DUPLO_OPS_ROLE = "duplo-ops"


def get_aws_credentials(
    host: str,
    token: str | None,
    cache: CredentialCache,
    *,
    admin: bool = False,
    duplo_ops: bool = False,
    tenant: str | None = None,
    interactive: bool = False,
    port: int = 0,
    app_name: str = TOOL_NAME,
) -> AwsCredentials:
    """Return reusable cached AWS credentials, or fetch and cache new ones."""
    session = dict(interactive=interactive, port=port, app_name=app_name)

    if admin or duplo_ops:
        role = "admin" if admin else DUPLO_OPS_ROLE
        cache_key = build_cache_key(host, role)
        creds = cache.get(cache_key, KIND_AWS, probe=ping_aws)
        if creds is not None:
            return creds

        client, _ = resolve_duplo_session(host, token, cache, admin=True, **session)
        with client:
            if admin:
                result = client.admin_get_jit_aws_credentials()
            else:
                result = client.admin_aws_get_jit_access(DUPLO_OPS_ROLE)

    elif not tenant:
        raise DuploJitError("invalid arguments: must specify --admin or --tenant=NAME or --tenant=ID")

    else:
        # The tenant name, not the ID, goes into the cache key.
        client, _ = resolve_duplo_session(host, token, cache, admin=False, **session)
        with client:
            user_tenant = client.resolve_tenant(tenant)
            cache_key = build_cache_key(host, "tenant", user_tenant.account_name)
            creds = cache.get(cache_key, KIND_AWS, probe=ping_aws)
            if creds is not None:
                return creds
            result = client.tenant_get_jit_aws_credentials(user_tenant.tenant_id)

    creds = convert_aws_credentials(result)
    cache.put(cache_key, KIND_AWS, creds)
    return creds


def aws(
    host: Optional[str] = HostOption,
    token: Optional[str] = TokenOption,
    interactive: bool = InteractiveOption,
    port: int = PortOption,
    no_cache: bool = NoCacheOption,
    debug: bool = DebugOption,
    admin: bool = typer.Option(False, "--admin", help="Get admin credentials"),
    duplo_ops: bool = typer.Option(False, "--duplo-ops", help="Get Duplo operations credentials"),
    tenant: Optional[str] = TenantOption,
) -> None:
    """Output AWS credentials for the AWS CLI credential_process integration."""

    def produce() -> AwsCredentials:
        base_url, cache = prepare(host, no_cache, debug)
        return get_aws_credentials(
            base_url, token, cache,
            admin=admin, duplo_ops=duplo_ops, tenant=tenant, interactive=interactive, port=port,
        )

    run_command(produce)
