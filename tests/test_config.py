from __future__ import annotations

import pytest

from filescan.core.config import DEFAULT_BASE_URL, Settings


@pytest.fixture()
def clean_env(monkeypatch):
    for name in (
        "METADEFENDER_API_KEY",
        "METADEFENDER_BASE_URL",
        "METADEFENDER_REQUEST_TIMEOUT",
        "SCAN_POLL_INTERVAL_SECONDS",
        "SCAN_TIMEOUT_SECONDS",
        "SCAN_CONCURRENCY",
        "LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    # prod skips .env loading
    monkeypatch.setenv("ENV", "prod")
    return monkeypatch


def test_defaults(clean_env):
    s = Settings()

    assert s.METADEFENDER_API_KEY == ""
    assert s.METADEFENDER_BASE_URL == DEFAULT_BASE_URL
    assert s.SCAN_POLL_INTERVAL_SECONDS == 10.0
    assert s.scan_timeout == 900.0
    assert s.SCAN_CONCURRENCY == 4
    assert s.LOG_LEVEL == "WARNING"


def test_env_overrides(clean_env):
    clean_env.setenv("METADEFENDER_API_KEY", "  secret  ")
    clean_env.setenv("METADEFENDER_BASE_URL", "https://md.internal/v4/")
    clean_env.setenv("SCAN_POLL_INTERVAL_SECONDS", "2.5")
    clean_env.setenv("SCAN_TIMEOUT_SECONDS", "0")
    clean_env.setenv("LOG_LEVEL", "debug")

    s = Settings()

    assert s.METADEFENDER_API_KEY == "secret"
    assert s.METADEFENDER_BASE_URL == "https://md.internal/v4"
    assert s.SCAN_POLL_INTERVAL_SECONDS == 2.5
    assert s.scan_timeout is None
    assert s.LOG_LEVEL == "DEBUG"


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("METADEFENDER_BASE_URL", "ftp://nope"),
        ("SCAN_POLL_INTERVAL_SECONDS", "-1"),
        ("SCAN_TIMEOUT_SECONDS", "-1"),
        ("SCAN_CONCURRENCY", "0"),
        ("METADEFENDER_REQUEST_TIMEOUT", "0"),
    ],
)
def test_invalid_values_fail_fast(clean_env, name, value):
    clean_env.setenv(name, value)
    with pytest.raises(RuntimeError):
        Settings()
