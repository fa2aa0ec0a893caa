"""duplo-jit - just-in-time AWS and Kubernetes credentials from a Duplo broker."""

from importlib.metadata import PackageNotFoundError, version

from .cache import CacheConfig, CredentialCache, build_cache_key
from .client import DuploClient
from .exceptions import AuthError, DuploJitError, UpstreamUnavailable

__all__ = [
    "CacheConfig",
    "CredentialCache",
    "DuploClient",
    "build_cache_key",
    "DuploJitError",
    "AuthError",
    "UpstreamUnavailable",
]

try:
    __version__ = version("duplo-jit")
except PackageNotFoundError:
    __version__ = "0.1.0"
