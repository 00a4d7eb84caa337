from __future__ import annotations

import os

import redis

DEFAULT_REDIS_URL = "redis://localhost:6379/0"
DEFAULT_SOCKET_TIMEOUT_S = 2.0


def get_redis_url() -> str:
    """Service-specific URL first, then the shared `REDIS_URL`."""

    return os.environ.get("PARTY_ENGINE_REDIS_URL") or os.environ.get("REDIS_URL") or DEFAULT_REDIS_URL


def get_socket_timeout() -> float:
    raw = os.environ.get("PARTY_ENGINE_REDIS_TIMEOUT_S")
    if not raw:
        return DEFAULT_SOCKET_TIMEOUT_S
    try:
        timeout = float(raw)
    except ValueError as e:
        raise ValueError(f"PARTY_ENGINE_REDIS_TIMEOUT_S must be a number, got {raw!r}") from e
    if timeout <= 0:
        raise ValueError("PARTY_ENGINE_REDIS_TIMEOUT_S must be positive")
    return timeout


def create_redis() -> redis.Redis:
    # Snapshots are JSON strings, so read them back as str. A request must give up
    # well before a session lock expires.
    timeout = get_socket_timeout()
    return redis.Redis.from_url(
        get_redis_url(),
        decode_responses=True,
        socket_timeout=timeout,
        socket_connect_timeout=timeout,
    )
