"""Tests for duplo_jit.cache."""

from __future__ import annotations

import json
import logging
import os
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import MagicMock, patch

import httpx
import pytest

from duplo_jit.cache import CacheConfig, CredentialCache, build_cache_key
from duplo_jit.credentials import (
    KIND_AWS,
    KIND_DUPLO,
    KIND_K8S,
    AwsCredentials,
    DuploCredentials,
    K8sExecCredential,
    format_timestamp,
)

from .conftest import BASE_URL, make_aws_creds

KEY = "acme.duplocloud.net,admin"


# ---------------------------------------------------------------------------
# Cache keys
# ---------------------------------------------------------------------------

class TestBuildCacheKey:
    def test_joins_origin_and_discriminators(self):
        assert build_cache_key(BASE_URL, "tenant", "dev") == "acme.duplocloud.net,tenant,dev"

    def test_origin_only(self):
        assert build_cache_key(BASE_URL) == "acme.duplocloud.net"

    def test_distinct_targets_do_not_collide(self):
        keys = {
            build_cache_key(BASE_URL, "admin"),
            build_cache_key(BASE_URL, "duplo-ops"),
            build_cache_key(BASE_URL, "tenant", "admin"),
            build_cache_key(BASE_URL, "plan", "admin"),
            build_cache_key("https://other.duplocloud.net", "admin"),
        }
        assert len(keys) == 5

    @pytest.mark.parametrize("bad", ["a,b", "a/b", "a\\b", "", ".."])
    def test_rejects_unsafe_components(self, bad):
        with pytest.raises(ValueError):
            build_cache_key(BASE_URL, "tenant", bad)


# ---------------------------------------------------------------------------
# get / put / invalidate
# ---------------------------------------------------------------------------

class TestCredentialCache:
    def test_file_layout(self, cache, cache_dir):
        assert cache.path_for(KEY, KIND_AWS) == cache_dir / f"{KEY},aws-creds.json"

    def test_put_then_get_returns_equal_credential(self, cache):
        creds = make_aws_creds()
        probe = MagicMock()
        cache.put(KEY, KIND_AWS, creds)

        assert cache.get(KEY, KIND_AWS, probe=probe) == creds
        probe.assert_called_once_with(creds)

    def test_get_missing_entry(self, cache):
        probe = MagicMock()
        assert cache.get(KEY, KIND_AWS, probe=probe) is None
        probe.assert_not_called()

    def test_expiring_within_five_minutes_is_absent_and_deleted(self, cache):
        cache.put(KEY, KIND_AWS, make_aws_creds(timedelta(minutes=4)))
        probe = MagicMock()

        assert cache.get(KEY, KIND_AWS, probe=probe) is None
        assert not cache.path_for(KEY, KIND_AWS).exists()
        probe.assert_not_called()

    def test_already_expired_is_absent(self, cache):
        cache.put(KEY, KIND_AWS, make_aws_creds(timedelta(hours=-1)))
        assert cache.get(KEY, KIND_AWS, probe=MagicMock()) is None
        assert not cache.path_for(KEY, KIND_AWS).exists()

    def test_unparseable_expiration_is_absent_and_deleted(self, cache, cache_dir):
        data = make_aws_creds().to_dict()
        data["Expiration"] = "next tuesday"
        cache.path_for(KEY, KIND_AWS).write_text(json.dumps(data))

        assert cache.get(KEY, KIND_AWS, probe=MagicMock()) is None
        assert not cache.path_for(KEY, KIND_AWS).exists()

    def test_failed_probe_invalidates_despite_ttl(self, cache):
        cache.put(KEY, KIND_AWS, make_aws_creds(timedelta(hours=10)))
        probe = MagicMock(side_effect=RuntimeError("InvalidClientTokenId"))

        assert cache.get(KEY, KIND_AWS, probe=probe) is None
        assert not cache.path_for(KEY, KIND_AWS).exists()

    def test_probe_transport_error_invalidates(self, cache):
        cache.put(KEY, KIND_AWS, make_aws_creds())
        probe = MagicMock(side_effect=httpx.ConnectError("connection refused"))

        assert cache.get(KEY, KIND_AWS, probe=probe) is None
        assert not cache.path_for(KEY, KIND_AWS).exists()

    def test_get_after_invalidating_get_is_absent_again(self, cache):
        cache.put(KEY, KIND_AWS, make_aws_creds(timedelta(minutes=1)))
        assert cache.get(KEY, KIND_AWS) is None
        assert cache.get(KEY, KIND_AWS) is None

    def test_corrupt_json_is_a_miss_and_removed(self, cache, caplog):
        path = cache.path_for(KEY, KIND_AWS)
        path.write_text("not valid json{{{")

        with caplog.at_level(logging.WARNING, logger="duplo_jit.cache"):
            assert cache.get(KEY, KIND_AWS) is None
        assert "invalid JSON" in caplog.text
        assert not path.exists()

    def test_wrong_shape_is_a_miss(self, cache):
        cache.path_for(KEY, KIND_AWS).write_text(json.dumps(["not", "a", "dict"]))
        assert cache.get(KEY, KIND_AWS) is None

    @pytest.mark.parametrize(
        "document",
        [
            {"kind": "ExecCredential", "spec": {"cluster": "oops"}, "status": {"token": "t"}},
            {"kind": "ExecCredential", "spec": {"cluster": {"server": "https://k8s"}}, "status": ["t"]},
            {"kind": "ExecCredential", "spec": "oops", "status": {"token": "t"}},
        ],
    )
    def test_nested_wrong_shape_is_a_miss(self, cache, document):
        path = cache.path_for(KEY, KIND_K8S)
        path.write_text(json.dumps(document))
        assert cache.get(KEY, KIND_K8S) is None
        assert not path.exists()

    def test_missing_fields_is_a_miss(self, cache):
        cache.path_for(KEY, KIND_AWS).write_text(json.dumps({"Version": 1}))
        assert cache.get(KEY, KIND_AWS) is None

    def test_put_overwrites_existing(self, cache):
        cache.put(KEY, KIND_AWS, make_aws_creds(access_key_id="OLD"))
        cache.put(KEY, KIND_AWS, make_aws_creds(access_key_id="NEW"))
        assert cache.get(KEY, KIND_AWS).access_key_id == "NEW"

    def test_put_sets_file_permissions_0600(self, cache):
        cache.put(KEY, KIND_AWS, make_aws_creds())
        assert cache.path_for(KEY, KIND_AWS).stat().st_mode & 0o777 == 0o600

    def test_put_leaves_no_temp_files(self, cache, cache_dir):
        cache.put(KEY, KIND_AWS, make_aws_creds())
        assert [p.name for p in cache_dir.iterdir()] == [f"{KEY},aws-creds.json"]

    def test_put_failure_is_only_logged(self, tmp_path, caplog):
        cache = CredentialCache(CacheConfig(directory=tmp_path / "does-not-exist"))
        with caplog.at_level(logging.WARNING, logger="duplo_jit.cache"):
            cache.put(KEY, KIND_AWS, make_aws_creds())
        assert "unable to write to cache" in caplog.text

    def test_delete_failure_is_only_logged(self, cache, caplog):
        cache.put(KEY, KIND_AWS, make_aws_creds(timedelta(minutes=1)))
        with patch.object(Path, "unlink", side_effect=PermissionError("read-only")), \
             caplog.at_level(logging.WARNING, logger="duplo_jit.cache"):
            assert cache.get(KEY, KIND_AWS) is None
        assert "unable to remove" in caplog.text

    def test_invalidate_removes_entry(self, cache):
        cache.put(KEY, KIND_DUPLO, DuploCredentials(duplo_token="tok"))
        cache.invalidate(KEY, KIND_DUPLO)
        assert not cache.path_for(KEY, KIND_DUPLO).exists()

    def test_invalidate_missing_entry_is_silent(self, cache):
        cache.invalidate(KEY, KIND_DUPLO)

    def test_kinds_are_stored_separately(self, cache):
        cache.put(KEY, KIND_AWS, make_aws_creds())
        cache.put(KEY, KIND_DUPLO, DuploCredentials(duplo_token="tok"))
        cache.invalidate(KEY, KIND_DUPLO)
        assert cache.get(KEY, KIND_AWS) is not None

    def test_session_credentials_go_straight_to_probe(self, cache):
        creds = DuploCredentials(duplo_token="tok", need_otp=True)
        cache.put(KEY, KIND_DUPLO, creds)
        probe = MagicMock()

        assert cache.get(KEY, KIND_DUPLO, probe=probe) == creds
        probe.assert_called_once_with(creds)

    def test_exec_credential_round_trip_keeps_ca_bytes(self, cache):
        creds = K8sExecCredential(
            server="https://k8s.example.com",
            token="k8s-token",
            expiration=format_timestamp(datetime.now(timezone.utc) + timedelta(hours=1)),
            certificate_authority_data=b"-----BEGIN CERTIFICATE-----\n\x00\xff",
        )
        cache.put(KEY, KIND_K8S, creds)
        assert cache.get(KEY, KIND_K8S) == creds

    def test_clock_is_injectable(self, cache_dir):
        creds = make_aws_creds(timedelta(hours=1))
        later = datetime.now(timezone.utc) + timedelta(minutes=56)
        cache = CredentialCache(CacheConfig(directory=cache_dir), clock=lambda: later)
        cache.put(KEY, KIND_AWS, creds)
        assert cache.get(KEY, KIND_AWS) is None


class TestDisabledCache:
    @pytest.fixture
    def disabled(self, cache_dir):
        return CredentialCache(CacheConfig(directory=cache_dir, disabled=True))

    def test_get_is_always_absent(self, disabled, cache):
        cache.put(KEY, KIND_AWS, make_aws_creds())
        probe = MagicMock()
        assert disabled.get(KEY, KIND_AWS, probe=probe) is None
        probe.assert_not_called()

    def test_put_is_noop(self, disabled, cache_dir):
        disabled.put(KEY, KIND_AWS, make_aws_creds())
        assert list(cache_dir.iterdir()) == []

    def test_invalidate_is_noop(self, disabled, cache):
        cache.put(KEY, KIND_AWS, make_aws_creds())
        disabled.invalidate(KEY, KIND_AWS)
        assert cache.path_for(KEY, KIND_AWS).exists()


class TestCacheConfig:
    def test_for_tool_creates_private_directory(self, tmp_path, monkeypatch):
        monkeypatch.setattr("duplo_jit.cache.user_cache_dir", lambda: tmp_path)
        config = CacheConfig.for_tool("duplo-jit")

        assert config.enabled
        assert config.directory == tmp_path / "duplo-jit"
        assert config.directory.stat().st_mode & 0o777 == 0o700

    def test_for_tool_disabled(self):
        config = CacheConfig.for_tool("duplo-jit", disabled=True)
        assert not config.enabled
        assert config.directory is None

    def test_for_tool_falls_back_to_disabled(self, monkeypatch, caplog):
        def no_cache_dir():
            raise OSError("no home")

        monkeypatch.setattr("duplo_jit.cache.user_cache_dir", no_cache_dir)
        with caplog.at_level(logging.WARNING, logger="duplo_jit.cache"):
            config = CacheConfig.for_tool("duplo-jit")
        assert not config.enabled
        assert "caching disabled" in caplog.text


class TestConcurrentWriters:
    def test_concurrent_puts_never_tear(self, cache):
        first = make_aws_creds(access_key_id="A" * 2000)
        second = make_aws_creds(access_key_id="B" * 3000)
        path = cache.path_for(KEY, KIND_AWS)
        cache.put(KEY, KIND_AWS, first)
        torn: list[str] = []
        stop = threading.Event()

        def writer(creds: AwsCredentials) -> None:
            for _ in range(50):
                cache.put(KEY, KIND_AWS, creds)

        def reader() -> None:
            while not stop.is_set():
                raw = path.read_text()
                try:
                    json.loads(raw)
                except ValueError:
                    torn.append(raw)

        threads = [threading.Thread(target=writer, args=(c,)) for c in (first, second)]
        watcher = threading.Thread(target=reader)
        watcher.start()
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        stop.set()
        watcher.join()

        assert torn == []
        assert cache.get(KEY, KIND_AWS) in (first, second)
        assert not [p for p in os.listdir(path.parent) if p.endswith(".tmp")]
