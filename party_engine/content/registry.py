from __future__ import annotations

import json
import os
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from party_engine.errors import ContentLoadError
from party_engine.players import GenderRestriction


class DynamicType(StrEnum):
    single_target = "single_target"
    paired_target = "paired_target"
    vote = "vote"
    free_for_all = "free_for_all"


# Type tags used by the shipped content files before the engine had its own names.
DYNAMIC_TYPE_ALIASES: dict[str, DynamicType] = {
    "mention_challenge": DynamicType.single_target,
    "paired_challenge": DynamicType.paired_target,
    "preference_vote": DynamicType.vote,
}

# Dynamics whose variation comes from targeting, not from the prompt text, so
# their small question sets are revisited instead of being consumed.
REUSABLE_BY_DEFAULT: frozenset[DynamicType] = frozenset({DynamicType.paired_target, DynamicType.vote})
TARGETED_TYPES: frozenset[DynamicType] = frozenset({DynamicType.single_target, DynamicType.paired_target})


class Question(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(..., min_length=1)
    text: str
    emoji: str | None = None
    instruction: str | None = None
    gender_restriction: GenderRestriction | None = Field(default=None, alias="genderRestriction")
    target_gender: GenderRestriction | None = Field(default=None, alias="targetGender")

    # Variant payloads (prize wheel, phrase challenges, two-option votes).
    prizes: tuple[str, ...] | None = None
    phrases: tuple[str, ...] | None = None
    option1: str | None = None
    option2: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, v: Any) -> Any:
        # Content files mix numeric and string ids.
        return str(v) if isinstance(v, int) else v


class Dynamic(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(..., min_length=1)
    name: str
    type: DynamicType
    instruction: str = ""
    questions: tuple[Question, ...] = ()

    same_gender: bool = Field(default=False, alias="sameGender")
    max_appearances: int | None = Field(default=None, ge=1, alias="maxAppearances")
    reusable_questions: bool | None = Field(default=None, alias="reusableQuestions")

    @field_validator("type", mode="before")
    @classmethod
    def _resolve_type_alias(cls, v: Any) -> Any:
        if isinstance(v, str):
            return DYNAMIC_TYPE_ALIASES.get(v, v)
        return v

    @model_validator(mode="after")
    def _check_questions(self) -> "Dynamic":
        seen: set[str] = set()
        for q in self.questions:
            if q.id in seen:
                raise ValueError(f"Duplicate question id {q.id!r} in dynamic {self.id!r}")
            seen.add(q.id)
        return self

    @property
    def reuses_questions(self) -> bool:
        if self.reusable_questions is not None:
            return self.reusable_questions
        return self.type in REUSABLE_BY_DEFAULT


@dataclass(frozen=True, slots=True)
class ContentPool:
    """The full, immutable set of dynamics available to a game.

    Order is preserved from the source files so status listings are stable.
    """

    dynamics: tuple[Dynamic, ...]
    _by_id: dict[str, Dynamic]

    @staticmethod
    def from_dynamics(dynamics: list[Dynamic]) -> "ContentPool":
        by_id: dict[str, Dynamic] = {}
        for d in dynamics:
            if d.id in by_id:
                raise ContentLoadError(f"Duplicate dynamic id: {d.id}")
            by_id[d.id] = d
        return ContentPool(dynamics=tuple(dynamics), _by_id=by_id)

    def get(self, dynamic_id: str) -> Dynamic | None:
        return self._by_id.get(dynamic_id)

    def __contains__(self, item: object) -> bool:
        return isinstance(item, str) and item in self._by_id

    def __len__(self) -> int:
        return len(self.dynamics)


def parse_dynamic(raw: dict[str, Any], *, source: str = "<memory>") -> Dynamic:
    try:
        return Dynamic.model_validate(raw)
    except ValidationError as e:
        raise ContentLoadError(f"Invalid dynamic in {source}: {e}") from e


def _read_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ContentLoadError(f"Invalid JSON in {path}: {e}") from e


def load_dynamics_dir(path: Path) -> ContentPool:
    """Load every `*.json` file in `path`; each holds one dynamic or a list of them."""

    if not path.is_dir():
        raise ContentLoadError(f"Content directory not found: {path}")

    dynamics: list[Dynamic] = []
    for file in sorted(path.glob("*.json")):
        raw = _read_json(file)
        items = raw if isinstance(raw, list) else [raw]
        for item in items:
            if not isinstance(item, dict):
                raise ContentLoadError(f"Expected a dynamic object in {file}, got {type(item).__name__}")
            dynamics.append(parse_dynamic(item, source=str(file)))

    return ContentPool.from_dynamics(dynamics)


def _fallback_content_pool() -> ContentPool:
    """Tiny built-in pool for tests/CI when no content directory is present.

    One dynamic of each type so every targeting path can be exercised.
    """

    raw: list[dict[str, Any]] = [
        {
            "id": "who_is_most",
            "name": "Who is most...",
            "type": "free_for_all",
            "instruction": "Everyone points at the answer on three.",
            "questions": [
                {"id": "wim_1", "text": "Who is most likely to fall asleep at the party?"},
                {"id": "wim_2", "text": "Who is most likely to text their ex tonight?"},
                {"id": "wim_3", "text": "Who is most likely to start dancing first?"},
            ],
        },
        {
            "id": "mention_challenge",
            "name": "Mention challenge",
            "type": "mention_challenge",
            "instruction": "Name as many as you can before you hesitate.",
            "questions": [
                {"id": "mc_1", "text": "Name five beer brands."},
                {"id": "mc_2", "text": "Name four capital cities in Europe."},
                {"id": "mc_3", "text": "Name three cocktails with rum."},
            ],
        },
        {
            "id": "arm_wrestling",
            "name": "Arm wrestling",
            "type": "paired_challenge",
            "sameGender": True,
            "instruction": "Loser drinks.",
            "questions": [{"id": "aw_1", "text": "{player1} vs {player2}: best of one."}],
        },
        {
            "id": "what_do_you_prefer",
            "name": "What do you prefer?",
            "type": "preference_vote",
            "instruction": "The minority drinks.",
            "questions": [
                {"id": "wdyp_1", "text": "Beach or mountains?", "option1": "Beach", "option2": "Mountains"},
            ],
        },
    ]
    return ContentPool.from_dynamics([parse_dynamic(r, source="fallback") for r in raw])


def load_content(*, root: Path) -> ContentPool:
    content_dir = root / "content" / "dynamics"

    # Default behavior: fall back to the built-in pool when the directory is missing.
    # Malformed files always raise. Force strict behavior with PARTY_ENGINE_STRICT_CONTENT=1.
    strict = os.getenv("PARTY_ENGINE_STRICT_CONTENT", "").strip().lower() in {"1", "true", "yes"}

    if not content_dir.is_dir():
        if strict:
            raise ContentLoadError(f"Content directory not found: {content_dir}")
        return _fallback_content_pool()

    return load_dynamics_dir(content_dir)
