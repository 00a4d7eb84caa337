from __future__ import annotations

import pytest

from party_engine.infra.redis_client import (
    DEFAULT_REDIS_URL,
    DEFAULT_SOCKET_TIMEOUT_S,
    create_redis,
    get_redis_url,
    get_socket_timeout,
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("PARTY_ENGINE_REDIS_URL", "REDIS_URL", "PARTY_ENGINE_REDIS_TIMEOUT_S"):
        monkeypatch.delenv(name, raising=False)


def test_redis_url_precedence(monkeypatch: pytest.MonkeyPatch) -> None:
    assert get_redis_url() == DEFAULT_REDIS_URL

    monkeypatch.setenv("REDIS_URL", "redis://shared:6379/1")
    assert get_redis_url() == "redis://shared:6379/1"

    monkeypatch.setenv("PARTY_ENGINE_REDIS_URL", "redis://party:6379/2")
    assert get_redis_url() == "redis://party:6379/2"


def test_socket_timeout_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    assert get_socket_timeout() == DEFAULT_SOCKET_TIMEOUT_S

    monkeypatch.setenv("PARTY_ENGINE_REDIS_TIMEOUT_S", "0.5")
    assert get_socket_timeout() == 0.5

    for bad in ("soon", "0"):
        monkeypatch.setenv("PARTY_ENGINE_REDIS_TIMEOUT_S", bad)
        with pytest.raises(ValueError):
            get_socket_timeout()


def test_client_is_configured_without_connecting(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PARTY_ENGINE_REDIS_URL", "redis://party:6390/3")
    monkeypatch.setenv("PARTY_ENGINE_REDIS_TIMEOUT_S", "1.5")

    client = create_redis()

    kwargs = client.connection_pool.connection_kwargs
    assert kwargs["host"] == "party"
    assert kwargs["port"] == 6390
    assert kwargs["db"] == 3
    assert kwargs["decode_responses"] is True
    assert kwargs["socket_timeout"] == 1.5
    client.close()
