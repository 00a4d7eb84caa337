from __future__ import annotations

from collections.abc import Generator

import redis

from party_engine.content.registry import ContentPool
from party_engine.content.singleton import get_content
from party_engine.infra.redis_client import create_redis


def get_redis() -> Generator[redis.Redis, None, None]:
    client = create_redis()
    try:
        yield client
    finally:
        client.close()


def get_pool() -> ContentPool:
    return get_content()
