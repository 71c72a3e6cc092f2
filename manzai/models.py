"""Core domain models.

All pipeline stages operate on these types. Pydantic validates every data
boundary; response-facing models serialise with camelCase keys.
"""

from __future__ import annotations

import math
import re
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from manzai.config import Settings
from manzai.errors import InvalidRequestError

ConsumedFrom = Literal["free", "paid", "none"]
LedgerState = Literal["unmetered", "free_quota", "paid_credit", "exhausted"]

MAX_CHARACTERS = 4
_CHARACTER_SPLIT = re.compile(r"[、,，・/／\s]+")
# Must stay recognisable as a speaker label by the normalizer.
_SPEAKER_NAME = re.compile(r"^(?!\d+$)[^:：。、！？!?「」『』（）()]{1,20}$")


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GenerationRequest(BaseModel):
    """A validated request. Build it with `parse_request()`."""

    model_config = ConfigDict(frozen=True)

    theme: str
    genre: str
    characters: tuple[str, ...]
    target_length: int
    boke: tuple[str, ...] = ()
    tsukkomi: tuple[str, ...] = ()
    general: tuple[str, ...] = ()
    user_key: str | None = None

    @property
    def tsukkomi_name(self) -> str:
        return self.characters[1]

    @property
    def has_technique_selection(self) -> bool:
        return bool(self.boke or self.tsukkomi or self.general)


class InstructionPayload(BaseModel):
    """Opaque instruction handed to the generation backend."""

    model_config = ConfigDict(frozen=True)

    system: str
    user: str
    model: str = ""
    max_tokens: int | None = None


class PromptPlan(BaseModel):
    """Everything derived from one request before generation starts."""

    model_config = ConfigDict(frozen=True)

    payload: InstructionPayload
    min_length: int
    max_length: int
    target_length: int
    closing_speaker: str
    technique_labels: tuple[str, ...] = ()
    structure_labels: tuple[str, ...] = ()


class ScriptDraft(BaseModel):
    """Working value threaded through normalisation and continuation."""

    title: str
    body: str


class UsageRecord(BaseModel):
    free_used_count: int = Field(default=0, ge=0)
    paid_credits: int = Field(default=0, ge=0)


class UsageSnapshot(_CamelModel):
    free_used_count: int
    paid_credits: int
    free_quota: int
    free_remaining: int


class UsageCheck(BaseModel):
    allowed: bool
    state: LedgerState
    snapshot: UsageSnapshot | None = None


class CommitResult(BaseModel):
    consumed_from: ConsumedFrom
    snapshot: UsageSnapshot | None = None


class ScriptMeta(_CamelModel):
    structure_labels: list[str] = Field(default_factory=list)
    technique_labels: list[str] = Field(default_factory=list)
    char_count: int = 0
    usage_snapshot: UsageSnapshot | None = None


class ScriptResult(_CamelModel):
    title: str
    text: str
    meta: ScriptMeta


# ---------------------------------------------------------------------------
# Request parsing
# ---------------------------------------------------------------------------

def _parse_characters(raw: str, settings: Settings) -> tuple[str, ...]:
    names = [n for n in _CHARACTER_SPLIT.split(raw.strip()) if n]
    if not names:
        return tuple(settings.default_characters)
    if len(names) < 2:
        raise InvalidRequestError("characters must name at least 2 speakers")
    if len(names) > MAX_CHARACTERS:
        raise InvalidRequestError(f"characters must name at most {MAX_CHARACTERS} speakers")
    if len(set(names)) != len(names):
        raise InvalidRequestError("characters must not repeat a name")
    for name in names:
        if not _SPEAKER_NAME.match(name):
            raise InvalidRequestError(f"invalid speaker name: {name!r}")
    return tuple(names)


def _parse_length(raw: Any, settings: Settings) -> int:
    if isinstance(raw, bool) or not isinstance(raw, (int, float, str)):
        raise InvalidRequestError("length must be a number")
    try:
        value = float(raw)
    except ValueError:
        return settings.default_length
    if not math.isfinite(value) or value <= 0:
        return settings.default_length
    return min(int(value), settings.hard_cap) or settings.default_length


def _parse_ids(payload: dict[str, Any], key: str) -> tuple[str, ...]:
    raw = payload.get(key)
    if raw is None:
        return ()
    if not isinstance(raw, list):
        raise InvalidRequestError(f"{key} must be a list of identifiers")
    return tuple(dict.fromkeys(v.strip() for v in raw if isinstance(v, str) and v.strip()))


def parse_request(payload: Any, settings: Settings) -> GenerationRequest:
    """Validate the inbound JSON body. Raises InvalidRequestError."""
    if not isinstance(payload, dict):
        raise InvalidRequestError("request body must be a JSON object")

    theme, genre, characters = (payload.get(k) for k in ("theme", "genre", "characters"))
    if not isinstance(theme, str) or not isinstance(genre, str) or not isinstance(characters, str):
        raise InvalidRequestError("Missing or invalid fields")
    if "length" not in payload:
        raise InvalidRequestError("Missing or invalid fields")

    theme = theme.strip()
    if not theme:
        raise InvalidRequestError("theme must not be empty")
    if len(theme) > settings.max_theme_length:
        raise InvalidRequestError(f"theme must be at most {settings.max_theme_length} characters")

    user_key = payload.get("userKey")
    if user_key is not None and not isinstance(user_key, str):
        raise InvalidRequestError("userKey must be a string")

    return GenerationRequest(
        theme=theme,
        genre=genre.strip() or settings.default_genre,
        characters=_parse_characters(characters, settings),
        target_length=_parse_length(payload["length"], settings),
        boke=_parse_ids(payload, "boke"),
        tsukkomi=_parse_ids(payload, "tsukkomi"),
        general=_parse_ids(payload, "general"),
        user_key=(user_key or "").strip() or None,
    )
