from __future__ import annotations

from pathlib import Path

from party_engine.content.registry import ContentPool, load_content


_CONTENT: ContentPool | None = None


def init_content(*, project_root: Path) -> ContentPool:
    """Load the content pool once and cache it.

    Only immutable content is cached process-wide; game engines are always
    constructed per session by their caller.
    """

    global _CONTENT
    if _CONTENT is None:
        _CONTENT = load_content(root=project_root)
    return _CONTENT


def reset_content_for_tests() -> None:
    global _CONTENT
    _CONTENT = None


def get_content() -> ContentPool:
    if _CONTENT is None:
        raise RuntimeError("Content not initialized. Call init_content() at startup.")
    return _CONTENT
