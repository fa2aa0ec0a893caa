"""Custom exceptions raised by duplo-jit."""

from __future__ import annotations

from typing import Any, Optional


class DuploJitError(Exception):
    """Base exception for all duplo-jit specific failures."""


# Interactive authentication


class AuthError(DuploJitError):
    """Raised when an interactive login does not produce a usable token."""

    def __init__(self, message: str, *, status: Optional[int] = None, origin: Optional[str] = None,
                 body: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.origin = origin
        self.body = body


class AuthTimeout(AuthError):
    """No callback arrived before the interactive timeout elapsed."""


class AuthCanceled(AuthError):
    """The browser posted an empty body, meaning the user canceled."""


class AuthUnauthorizedOrigin(AuthError):
    """A posted callback came from an origin other than the broker."""


class AuthMalformedCallback(AuthError):
    """A posted callback body could not be parsed."""


class ListenerBindFailure(AuthError):
    """The local callback listener could not bind its port."""


class BrowserLaunchFailure(AuthError):
    """The login URL could not be opened in a browser."""


# Credential cache


class CacheError(DuploJitError):
    """Raised for problems with a cached entry. Always treated as a miss."""


class CacheCorrupt(CacheError):
    """A cache entry exists but cannot be deserialized."""


class CredentialInvalid(DuploJitError):
    """A cached credential must not be reused."""


class CredentialExpired(CredentialInvalid):
    """The credential expires within the reuse margin, or has no usable expiration."""


class CredentialRevoked(CredentialInvalid):
    """The remote system rejected the cached credential."""


# Broker API


class UpstreamUnavailable(DuploJitError):
    """Raised when the broker or a probed system returns a failure."""

    def __init__(self, message: str, status_code: int = -1, url: Optional[str] = None,
                 response: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.url = url
        self.response = response

    @property
    def possible_missing_api(self) -> bool:
        return self.status_code in (404, 500)


class BrokerAuthenticationError(UpstreamUnavailable):
    """Raised when the broker rejects the session token."""


class CredentialConversionError(DuploJitError):
    """Raised when a fetched credential cannot be converted for output."""


class TenantNotFound(DuploJitError):
    """Raised when a tenant is missing or not visible to the user."""
