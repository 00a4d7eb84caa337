from __future__ import annotations

import os
from pathlib import Path

from party_engine.content.singleton import init_content


def init_content_for_app() -> None:
    # project root is two levels up from this file: party_engine/content/startup.py
    override = os.environ.get("PARTY_ENGINE_CONTENT_ROOT")
    project_root = Path(override) if override else Path(__file__).resolve().parents[2]
    init_content(project_root=project_root)
