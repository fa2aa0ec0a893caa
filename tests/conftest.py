"""Test configuration for duplo-jit tests."""

from datetime import datetime, timedelta, timezone

import pytest

from duplo_jit.cache import CacheConfig, CredentialCache
from duplo_jit.credentials import AwsCredentials, format_timestamp

BASE_URL = "https://acme.duplocloud.net"


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Keep the developer's broker settings out of the tests."""
    monkeypatch.delenv("DUPLO_HOST", raising=False)
    monkeypatch.delenv("DUPLO_TOKEN", raising=False)


@pytest.fixture
def cache_dir(tmp_path):
    directory = tmp_path / "duplo-jit"
    directory.mkdir()
    return directory


@pytest.fixture
def cache(cache_dir):
    """A CredentialCache rooted in a temporary directory."""
    return CredentialCache(CacheConfig(directory=cache_dir))


def make_aws_creds(expires_in: timedelta = timedelta(hours=1), access_key_id: str = "AKIAEXAMPLE") -> AwsCredentials:
    return AwsCredentials(
        access_key_id=access_key_id,
        secret_access_key="secret",
        session_token="session",
        region="us-west-2",
        console_url="https://console.aws.amazon.com/",
        expiration=format_timestamp(datetime.now(timezone.utc) + expires_in),
    )
