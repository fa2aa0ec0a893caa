"""Kubernetes credentials, as a kubectl exec-credential plugin."""

from __future__ import annotations

from functools import partial
from typing import Optional

import typer

from duplo_jit.auth.session import resolve_duplo_session
from duplo_jit.cache import CredentialCache, build_cache_key
from duplo_jit.config import TOOL_NAME
from duplo_jit.credentials import KIND_K8S, K8sExecCredential, convert_k8s_credentials
from duplo_jit.exceptions import DuploJitError
from duplo_jit.probes import ping_k8s

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


def get_k8s_credentials(
    host: str,
    token: str | None,
    cache: CredentialCache,
    *,
    plan: str | None = None,
    tenant: str | None = None,
    interactive: bool = False,
    port: int = 0,
    app_name: str = TOOL_NAME,
) -> K8sExecCredential:
    """Return a reusable cached ExecCredential, or fetch and cache a new one."""
    session = dict(interactive=interactive, port=port, app_name=app_name)

    if plan:
        cache_key = build_cache_key(host, "plan", plan)
        creds = cache.get(cache_key, KIND_K8S, probe=ping_k8s)
        if creds is not None:
            return creds

        client, _ = resolve_duplo_session(host, token, cache, admin=True, **session)
        with client:
            result = client.admin_get_k8s_jit_access(plan)

    elif not tenant:
        raise DuploJitError("invalid arguments: must specify --plan=ID or --tenant=NAME or --tenant=ID")

    else:
        client, _ = resolve_duplo_session(host, token, cache, admin=False, **session)
        with client:
            user_tenant = client.resolve_tenant(tenant)
            cache_key = build_cache_key(host, "tenant", user_tenant.account_name)
            creds = cache.get(cache_key, KIND_K8S, probe=partial(ping_k8s, tenant_name=user_tenant.account_name))
            if creds is not None:
                return creds
            result = client.tenant_get_k8s_jit_access(user_tenant.tenant_id)

    creds = convert_k8s_credentials(result)
    cache.put(cache_key, KIND_K8S, creds)
    return creds


def k8s(
    host: Optional[str] = HostOption,
    token: Optional[str] = TokenOption,
    interactive: bool = InteractiveOption,
    port: int = PortOption,
    no_cache: bool = NoCacheOption,
    debug: bool = DebugOption,
    plan: Optional[str] = typer.Option(None, "--plan", help="Get credentials for the given plan"),
    tenant: Optional[str] = TenantOption,
) -> None:
    """Output an ExecCredential for kubectl."""

    def produce() -> K8sExecCredential:
        base_url, cache = prepare(host, no_cache, debug)
        return get_k8s_credentials(base_url, token, cache, plan=plan, tenant=tenant, interactive=interactive, port=port)

    run_command(produce)
