from __future__ import annotations

from collections.abc import Iterable, Sequence
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class Gender(StrEnum):
    male = "male"
    female = "female"
    other = "other"


class GenderRestriction(StrEnum):
    all = "all"
    male = "male"
    female = "female"


# Registration screens stored localized labels; map them onto the canonical values.
_GENDER_ALIASES: dict[str, Gender] = {
    "male": Gender.male,
    "m": Gender.male,
    "man": Gender.male,
    "hombre": Gender.male,
    "female": Gender.female,
    "f": Gender.female,
    "woman": Gender.female,
    "mujer": Gender.female,
}


def normalize_gender(value: str | None) -> Gender:
    if not value:
        return Gender.other
    return _GENDER_ALIASES.get(value.strip().casefold(), Gender.other)


class Player(BaseModel):
    """A roster entry. Owned by the caller; the engine only reads it."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    gender: str = ""
    orientation: str | None = None
    is_host: bool = Field(default=False, alias="isHost")

    @property
    def canonical_gender(self) -> Gender:
        return normalize_gender(self.gender)

    @property
    def gender_key(self) -> str | None:
        """Key used to decide whether two players share a gender.

        Unrecognised labels only match the same label; a blank gender matches nobody.
        """

        canonical = self.canonical_gender
        if canonical != Gender.other:
            return canonical.value
        label = self.gender.strip().casefold()
        return label or None


def filter_by_gender(players: Iterable[Player], restriction: GenderRestriction | str | None) -> list[Player]:
    """Return the players allowed by a question's gender restriction.

    `None` and `all` keep everyone.
    """

    if restriction is None or restriction == GenderRestriction.all:
        return list(players)
    wanted = normalize_gender(str(restriction))
    return [p for p in players if p.canonical_gender == wanted]


def group_by_gender(players: Sequence[Player]) -> dict[str, list[Player]]:
    """Bucket players by `Player.gender_key`. Players with no gender are left out."""

    buckets: dict[str, list[Player]] = {}
    for p in players:
        key = p.gender_key
        if key is not None:
            buckets.setdefault(key, []).append(p)
    return buckets


def player_ids(players: Iterable[Player]) -> list[str]:
    return [p.id for p in players]
