"""Collector personas: named tone profiles tied to aging buckets.

Personas are defined in YAML files under ``config/personas``; the file stem is
the persona key. Each persona owns an inclusive days-past-due range, and the
last persona's range is open-ended (``bucket_max: null``).
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]

from arcollect.models import AgingBucket

PERSONAS_DIR = Path(__file__).resolve().parent / "config" / "personas"


@dataclass(frozen=True)
class Persona:
    """A named collector tone profile."""

    key: str
    name: str
    bucket_min: int
    bucket_max: int | None
    tone: str
    approach: str
    guidelines: str

    def covers(self, days_past_due: int) -> bool:
        if days_past_due < self.bucket_min:
            return False
        return self.bucket_max is None or days_past_due <= self.bucket_max


@dataclass(frozen=True)
class ToneModifier:
    label: str
    modifier: str


TONE_MODIFIERS: dict[int, ToneModifier] = {
    1: ToneModifier(
        "Much Softer",
        "TONE INTENSITY ADJUSTMENT - Make this message MUCH SOFTER:\n"
        "- Significantly reduce any urgency or pressure\n"
        "- Use very gentle, understanding language\n"
        "- Focus on offering help rather than requesting action\n"
        "- Remove any deadline pressure\n"
        "- Be extra empathetic about potential difficulties",
    ),
    2: ToneModifier(
        "Softer",
        "TONE INTENSITY ADJUSTMENT - Make this message SOFTER:\n"
        "- Reduce urgency slightly\n"
        "- Use warmer, more conversational language\n"
        "- Add more empathy and understanding\n"
        "- Soften direct requests\n"
        "- Focus on relationship preservation",
    ),
    3: ToneModifier("Standard", ""),
    4: ToneModifier(
        "Firmer",
        "TONE INTENSITY ADJUSTMENT - Make this message FIRMER:\n"
        "- Increase the sense of urgency\n"
        "- Be more direct about expectations\n"
        "- Shorten deadlines mentioned\n"
        "- Use more action-oriented language\n"
        "- Emphasize consequences more clearly",
    ),
    5: ToneModifier(
        "Much Firmer",
        "TONE INTENSITY ADJUSTMENT - Make this message MUCH FIRMER:\n"
        "- Significantly increase urgency and directness\n"
        "- Be very clear about immediate action required\n"
        "- Use strong, action-demanding language\n"
        "- Emphasize serious consequences\n"
        "- Remove soft language while remaining compliant",
    ),
}

_BUCKET_PERSONAS: dict[AgingBucket, str] = {
    AgingBucket.DPD_1_30: "sam",
    AgingBucket.DPD_31_60: "james",
    AgingBucket.DPD_61_90: "katy",
    AgingBucket.DPD_91_120: "troy",
    AgingBucket.DPD_121_150: "jimmy",
    AgingBucket.DPD_150_PLUS: "rocco",
}


def _parse_persona(path: Path, data: Any) -> Persona:
    if not isinstance(data, dict):
        raise ValueError(f"{path.name}: persona file must be a mapping")

    for required in ("name", "bucket_min", "tone"):
        if data.get(required) in (None, ""):
            raise ValueError(f"{path.name}: missing {required}")

    bucket_min = data["bucket_min"]
    bucket_max = data.get("bucket_max")
    if not isinstance(bucket_min, int) or bucket_min < 1:
        raise ValueError(f"{path.name}: bucket_min must be a positive integer")
    if bucket_max is not None and (not isinstance(bucket_max, int) or bucket_max < bucket_min):
        raise ValueError(f"{path.name}: bucket_max must be an integer >= bucket_min")

    return Persona(
        key=path.stem,
        name=str(data["name"]),
        bucket_min=bucket_min,
        bucket_max=bucket_max,
        tone=str(data["tone"]),
        approach=str(data.get("approach", "")),
        guidelines=str(data.get("guidelines", "")).strip(),
    )


def load_personas(directory: Path | None = None) -> tuple[Persona, ...]:
    """Load persona definitions ordered by the start of their bucket range.

    Raises:
        ValueError: If a persona file is malformed or ranges overlap.
    """
    personas_dir = directory or PERSONAS_DIR
    if not personas_dir.exists():
        return ()

    personas = []
    for path in sorted(personas_dir.glob("*.yaml")):
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        personas.append(_parse_persona(path, data))

    personas.sort(key=lambda p: p.bucket_min)
    for previous, current in zip(personas, personas[1:]):
        if previous.bucket_max is None or previous.bucket_max >= current.bucket_min:
            raise ValueError(
                f"persona ranges overlap: {previous.key} and {current.key}"
            )
    return tuple(personas)


@lru_cache
def get_personas() -> tuple[Persona, ...]:
    """Packaged personas, loaded once."""
    return load_personas()


def get_persona(key: str) -> Persona:
    for persona in get_personas():
        if persona.key == key:
            return persona
    raise KeyError(key)


def find_persona(name: str | None) -> Persona | None:
    """Case-insensitive lookup by display name."""
    if not name:
        return None
    wanted = name.strip().lower()
    for persona in get_personas():
        if persona.name.lower() == wanted:
            return persona
    return None


def persona_for_days_past_due(days_past_due: int) -> Persona | None:
    """The persona owning a days-past-due count; None while not yet past due."""
    if days_past_due <= 0:
        return None
    for persona in get_personas():
        if persona.covers(days_past_due):
            return persona
    return None


def persona_for_bucket(bucket: str | AgingBucket | None) -> Persona | None:
    """Persona for an aging bucket; unknown buckets go to the final persona."""
    if bucket == AgingBucket.CURRENT or bucket == AgingBucket.CURRENT.value:
        return None
    try:
        key = _BUCKET_PERSONAS[AgingBucket(bucket)]
    except (KeyError, ValueError):
        key = "rocco"
    return get_persona(key)


def resolve_persona(days_past_due: int, explicit_name: str | None = None) -> Persona:
    """Pick the persona for a message.

    An explicitly requested persona wins; otherwise the persona whose range
    covers the days past due; otherwise the first (gentlest) persona.
    """
    explicit = find_persona(explicit_name)
    if explicit is not None:
        return explicit
    return persona_for_days_past_due(days_past_due) or get_personas()[0]


def tone_modifier(level: int) -> ToneModifier:
    if level not in TONE_MODIFIERS:
        raise ValueError(f"tone intensity must be between 1 and 5, got {level}")
    return TONE_MODIFIERS[level]
