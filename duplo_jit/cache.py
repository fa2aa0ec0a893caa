"""Local credential cache.

Stores one JSON file per (key, kind) under the per-user cache directory,
``{cache_dir}/{tool}/{key},{kind}-creds.json``, with restrictive permissions.
Entries are written atomically, so a concurrent reader sees either the old
document or the new one and never a partial write.

A cached credential is only handed back when it expires more than five
minutes from now *and* a cheap authenticated probe against the remote system
still accepts it. Failing either check deletes the entry.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Optional

from .config import TOOL_NAME, host_origin, user_cache_dir
from .credentials import CREDENTIAL_TYPES, Credential
from .exceptions import CacheCorrupt, CredentialExpired, CredentialInvalid, CredentialRevoked

logger = logging.getLogger(__name__)

REUSE_MARGIN = timedelta(minutes=5)

Probe = Callable[[Credential], None]

_FORBIDDEN_KEY_CHARS = frozenset(",/\\")


def build_cache_key(host: str, *discriminators: str) -> str:
    """Join a broker origin and role discriminators into a cache key.

    ``build_cache_key("https://acme.duplocloud.net", "tenant", "dev")`` gives
    ``"acme.duplocloud.net,tenant,dev"``.

    Raises:
        ValueError: If a component is empty or contains a separator.
    """
    parts = [host_origin(host), *discriminators]
    for part in parts:
        if not part or part in (".", "..") or _FORBIDDEN_KEY_CHARS.intersection(part):
            raise ValueError(f"invalid cache key component: {part!r}")
    return ",".join(parts)


@dataclass(frozen=True)
class CacheConfig:
    """Where the cache lives, and whether it is used at all.

    Built once at startup and never changed for the rest of the run.
    """

    directory: Optional[Path]
    disabled: bool = False

    @property
    def enabled(self) -> bool:
        return not self.disabled and self.directory is not None

    @classmethod
    def for_tool(cls, tool: str = TOOL_NAME, *, disabled: bool = False) -> CacheConfig:
        """Build the config for ``tool``, creating its cache directory (0700).

        If the directory cannot be found or created, caching is disabled with
        a warning rather than failing the run.
        """
        if disabled:
            return cls(directory=None, disabled=True)
        try:
            directory = user_cache_dir() / tool
            directory.mkdir(parents=True, exist_ok=True)
            os.chmod(directory, 0o700)
        except OSError as e:
            logger.warning("cannot create cache directory, caching disabled: %s", e)
            return cls(directory=None, disabled=True)
        return cls(directory=directory)


class CredentialCache:
    """Validated, per-kind credential cache."""

    def __init__(self, config: CacheConfig, *, clock: Callable[[], datetime] | None = None) -> None:
        self.config = config
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def path_for(self, key: str, kind: str) -> Path:
        if self.config.directory is None:
            raise ValueError("cache directory is not configured")
        return self.config.directory / f"{key},{kind}-creds.json"

    def get(self, key: str, kind: str, probe: Probe | None = None) -> Credential | None:
        """Return the cached credential if it may be reused, else None.

        The TTL check always runs first; ``probe`` is only called for a
        credential that passes it, and any exception it raises marks the
        credential as revoked. Unparseable, expired and revoked entries are
        deleted before returning None.
        """
        if not self.config.enabled:
            return None

        path = self.path_for(key, kind)
        try:
            raw = path.read_text()
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning("%s: unable to read from cache: %s", path, e)
            return None

        try:
            credential = self._deserialize(kind, raw)
            self._check(credential, probe)
        except CacheCorrupt as e:
            logger.warning("%s: invalid JSON in cache: %s", path, e)
            self._remove(path, key)
            return None
        except CredentialInvalid as e:
            logger.info("%s: cached %s credentials not reusable: %s", key, kind, e)
            self._remove(path, key)
            return None

        return credential

    def put(self, key: str, kind: str, credential: Credential) -> None:
        """Atomically replace the entry for (key, kind). Failures are only logged."""
        if not self.config.enabled:
            return

        path = self.path_for(key, kind)
        content = json.dumps(credential.to_dict(), separators=(",", ":"))

        # Atomic write: temp file in same directory, then rename
        tmp_path = None
        try:
            fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=".creds_", suffix=".tmp")
            with os.fdopen(fd, "w") as f:
                f.write(content)
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, path)
        except OSError as e:
            logger.warning("%s: unable to write to cache: %s", path, e)
            if tmp_path and os.path.exists(tmp_path):
                try:
                    os.unlink(tmp_path)
                except OSError:
                    logger.debug("could not remove temporary file %s", tmp_path)

    def invalidate(self, key: str, kind: str) -> None:
        """Remove the entry for (key, kind) if there is one."""
        if not self.config.enabled:
            return
        self._remove(self.path_for(key, kind), key)

    def _deserialize(self, kind: str, raw: str) -> Credential:
        credential_type = CREDENTIAL_TYPES.get(kind)
        if credential_type is None:
            raise ValueError(f"unknown credential kind: {kind}")
        try:
            data = json.loads(raw)
            if not isinstance(data, dict):
                raise TypeError(f"expected an object, got {type(data).__name__}")
            return credential_type.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            raise CacheCorrupt(str(e) or type(e).__name__) from e

    def _check(self, credential: Credential, probe: Probe | None) -> None:
        try:
            expiration = credential.expires_at()
        except (TypeError, ValueError) as e:
            raise CredentialExpired(f"invalid expiration time: {e}") from e

        if expiration is not None and self._clock() + REUSE_MARGIN > expiration:
            raise CredentialExpired(f"expires at {expiration.isoformat()}")

        if probe is not None:
            try:
                probe(credential)
            except Exception as e:
                raise CredentialRevoked(f"liveness check failed: {e}") from e

    def _remove(self, path: Path, key: str) -> None:
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("%s: unable to remove from credentials cache: %s", key, e)
