from __future__ import annotations

import pytest

from order_facts.config import Config

_FACTS_VARS = (
    "FACTS_HTTP_HOST",
    "FACTS_HTTP_PORT",
    "FACTS_LOG_FORMAT",
    "FACTS_REQUEST_TIMEOUT",
    "FACTS_ADMIN_TOKEN",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _FACTS_VARS:
        monkeypatch.delenv(name, raising=False)


def test_config_from_env_requires_database_url(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("DATABASE_URL", raising=False)

    with pytest.raises(RuntimeError, match="DATABASE_URL must be set"):
        Config.from_env()


def test_config_from_env_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DATABASE_URL", "postgresql://app@db/platform")

    cfg = Config.from_env()

    assert cfg.database_url == "postgresql://app@db/platform"
    assert cfg.http_host == "0.0.0.0"
    assert cfg.http_port == 8080
    assert cfg.log_format == "json"
    assert cfg.request_timeout_seconds == 10.0
    assert cfg.admin_token is None


def test_config_from_env_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DATABASE_URL", "postgresql://app@db/platform")
    monkeypatch.setenv("FACTS_HTTP_HOST", "127.0.0.1")
    monkeypatch.setenv("FACTS_HTTP_PORT", "9090")
    monkeypatch.setenv("FACTS_LOG_FORMAT", "text")
    monkeypatch.setenv("FACTS_REQUEST_TIMEOUT", "2.5")
    monkeypatch.setenv("FACTS_ADMIN_TOKEN", "s3cret")

    cfg = Config.from_env()

    assert cfg.http_host == "127.0.0.1"
    assert cfg.http_port == 9090
    assert cfg.log_format == "text"
    assert cfg.request_timeout_seconds == 2.5
    assert cfg.admin_token == "s3cret"


def test_empty_admin_token_means_no_admin_access(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DATABASE_URL", "postgresql://app@db/platform")
    monkeypatch.setenv("FACTS_ADMIN_TOKEN", "")

    assert Config.from_env().admin_token is None
