"""Resolve an authenticated broker session.

Order of preference: an explicitly supplied token (never cached), a cached
session token that still passes its liveness probe, and finally an
interactive browser login.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from functools import partial

from ..cache import CredentialCache, build_cache_key
from ..client import DuploClient
from ..config import TOOL_NAME
from ..credentials import KIND_DUPLO, DuploCredentials
from ..exceptions import AuthError, BrokerAuthenticationError, DuploJitError, UpstreamUnavailable
from ..probes import ping_duplo
from .constants import (
    DEFAULT_CALLBACK_PORT,
    ERROR_FEATURES,
    ERROR_MFA_DISABLED,
    ERROR_NOT_INTERACTIVE,
)
from .flow import acquire_interactive_token, require_token

logger = logging.getLogger(__name__)


def duplo_client_and_otp_flag(
    host: str, token: str, otp: str | None = None, admin: bool = False
) -> tuple[DuploClient | None, bool]:
    """Return a usable client, or None plus whether an OTP is what's missing.

    The system-features call doubles as a ping of the token.
    """
    client = DuploClient(host, token, otp=otp)
    try:
        features = client.features_system()
    except UpstreamUnavailable as e:
        logger.debug("session token rejected: %s", e)
        client.close()
        return None, False

    if admin and features.get("IsOtpNeeded") and not otp:
        client.close()
        return None, True

    return client, False


def _refresh_need_otp(client: DuploClient, creds: DuploCredentials) -> DuploCredentials:
    """Report the broker's current OTP requirement for a cached session."""
    try:
        features = client.features_system()
    except UpstreamUnavailable as e:
        logger.debug("cannot refresh OTP requirement: %s", e)
        return creds
    return replace(creds, need_otp=bool(features.get("IsOtpNeeded")))


def resolve_duplo_session(
    host: str,
    token: str | None,
    cache: CredentialCache,
    *,
    interactive: bool = False,
    admin: bool = False,
    port: int = DEFAULT_CALLBACK_PORT,
    app_name: str = TOOL_NAME,
    timeout: float | None = None,
) -> tuple[DuploClient, DuploCredentials]:
    """Get a broker client and the session credentials it uses.

    Raises:
        AuthError: If the interactive login fails, or MFA is needed but
            interactive login is not allowed.
        BrokerAuthenticationError: If the broker rejects the token.
        DuploJitError: If there is no token and interactive login is disabled.
    """
    cache_key = build_cache_key(host)

    if token:
        cache.invalidate(cache_key, KIND_DUPLO)  # never cache explicitly passed creds
        client, needs_otp = duplo_client_and_otp_flag(host, token, None, admin)
        if needs_otp:
            if not interactive:
                raise AuthError(ERROR_MFA_DISABLED)
        elif client is not None:
            return client, DuploCredentials(duplo_token=token, need_otp=False)
        else:
            raise BrokerAuthenticationError(ERROR_FEATURES)

    if not interactive:
        raise DuploJitError(ERROR_NOT_INTERACTIVE)

    client = None
    creds: DuploCredentials | None = None
    if not token:
        creds = cache.get(cache_key, KIND_DUPLO, probe=partial(ping_duplo, host=host))
        if creds is not None:
            client, _ = duplo_client_and_otp_flag(host, creds.duplo_token, None, admin)
            if client is None:
                cache.invalidate(cache_key, KIND_DUPLO)
            else:
                creds = _refresh_need_otp(client, creds)

    if client is None:
        result = acquire_interactive_token(host, admin, app_name, port, timeout)
        new_token, otp = require_token(result)

        client, _ = duplo_client_and_otp_flag(host, new_token, otp, admin)
        if client is None:
            raise BrokerAuthenticationError(ERROR_FEATURES)

        creds = DuploCredentials(duplo_token=new_token, need_otp=bool(otp))
        if not token:
            cache.put(cache_key, KIND_DUPLO, creds)

    return client, creds
