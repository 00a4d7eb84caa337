from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from uuid import UUID, uuid4

import redis

from party_engine.errors import SessionBusyError


LOCK_KEY_PREFIX = "party:lock:"  # + {uuid}


@contextmanager
def session_lock(*, r: redis.Redis, session_id: UUID | str, ttl_ms: int = 5_000) -> Iterator[None]:
    """Serialize mutations of one session across requests.

    Fails fast with `SessionBusyError` instead of waiting. The lock expires after
    `ttl_ms` so a crashed holder cannot wedge the session.
    """

    key = f"{LOCK_KEY_PREFIX}{session_id}"
    token = uuid4().hex
    if not r.set(key, token, nx=True, px=ttl_ms):
        raise SessionBusyError(f"Session {session_id} is busy")
    try:
        yield
    finally:
        # Leave the key alone if it expired and someone else took it.
        if r.get(key) == token:
            r.delete(key)
