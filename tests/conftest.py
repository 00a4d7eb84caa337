from __future__ import annotations

import os
import random
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import pytest

from party_engine.content.registry import ContentPool, parse_dynamic
from party_engine.players import Player


@pytest.fixture(scope="session", autouse=True)
def _init_content_from_test_fixtures() -> None:
    """Initialize content from `tests/content` and forbid falling back to the built-in pool.

    This keeps tests hermetic and independent of the repo's shipped dynamics.
    """

    os.environ["PARTY_ENGINE_STRICT_CONTENT"] = "1"

    from party_engine.content.singleton import init_content, reset_content_for_tests

    reset_content_for_tests()

    # Point the loader at a fake project root: tests/ contains a content/dynamics dir.
    test_root = Path(__file__).resolve().parent
    init_content(project_root=test_root)


@pytest.fixture()
def rng() -> random.Random:
    return random.Random(1234)


class FirstChoiceRandom(random.Random):
    """Always takes the first candidate, so draw order follows content order."""

    def choice(self, seq):  # type: ignore[override]
        return seq[0]

    def sample(self, population, k, *, counts=None):  # type: ignore[override]
        return list(population)[:k]


@pytest.fixture()
def first_choice_rng() -> random.Random:
    return FirstChoiceRandom()


@pytest.fixture()
def make_pool() -> Callable[..., ContentPool]:
    def _make(*raw: dict[str, Any]) -> ContentPool:
        return ContentPool.from_dynamics([parse_dynamic(r) for r in raw])

    return _make


@pytest.fixture()
def make_players() -> Callable[..., list[Player]]:
    """`make_players("male", "female", ...)` -> players p1..pN with those genders."""

    def _make(*genders: str) -> list[Player]:
        return [Player(id=f"p{i}", name=f"Player {i}", gender=g) for i, g in enumerate(genders, start=1)]

    return _make


@pytest.fixture()
def client_and_redis():
    """FastAPI TestClient wired to a fakeredis instance."""

    import fakeredis
    from fastapi.testclient import TestClient

    from party_engine.api.deps import get_redis
    from party_engine.main import app

    r = fakeredis.FakeRedis(decode_responses=True)

    def _override() -> Generator[fakeredis.FakeRedis, None, None]:
        yield r

    app.dependency_overrides[get_redis] = _override
    with TestClient(app) as c:
        yield c, r
    app.dependency_overrides.clear()
