"""Deployment settings.

One `Settings` object is built at start-up and handed to every component
that needs it. Nothing in the core reads the process environment; the HTTP
shell calls `Settings.from_env()` after loading `.env`.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from manzai.counter import CountPolicy, CountUnit

LengthPolicy = Literal["band", "ceiling"]
MeteringPolicy = Literal["metered", "unmetered"]
ProviderFormat = Literal["koboldcpp", "openai"]

# env var → field name
_ENV_FIELDS: dict[str, str] = {
    "MANZAI_PROVIDER_URL": "provider_url",
    "MANZAI_API_KEY": "api_key",
    "MANZAI_PROVIDER_FORMAT": "provider_format",
    "MANZAI_MODEL": "model",
    "MANZAI_MAX_TOKENS": "max_tokens",
    "MANZAI_TEMPERATURE": "temperature",
    "MANZAI_TIMEOUT": "timeout",
    "MANZAI_LENGTH_POLICY": "length_policy",
    "MANZAI_METERING": "metering",
    "MANZAI_FREE_QUOTA": "free_quota",
    "MANZAI_DATA_DIR": "data_dir",
    "MANZAI_PRODUCTION": "production",
    "MANZAI_COUNT_FOOTER": "count_footer",
}


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    # Generation backend
    provider_url: str = "https://api.openai.com"
    api_key: str = ""
    provider_format: ProviderFormat = "openai"
    model: str = "gpt-4o-mini"
    max_tokens: int = Field(default=3000, gt=0)
    temperature: float = 0.8
    timeout: float = Field(default=60.0, gt=0)

    # Length contract
    length_policy: LengthPolicy = "band"
    band_tolerance: float = Field(default=0.10, ge=0, lt=1)
    hard_cap: int = Field(default=2000, gt=0)
    default_length: int = Field(default=300, gt=0)
    deficit_threshold: int = Field(default=30, gt=0)
    # Shortest body kept next to the closing line when the target is tiny
    min_body_length: int = Field(default=10, gt=0)
    truncation_threshold: float = Field(default=0.8, ge=0.7, le=0.9)
    count_unit: CountUnit = "code-point"
    count_exclude_newlines: bool = True
    count_footer: bool = False

    # Script shape
    closing_phrase: str = "もういいよ！"
    untitled_title: str = "無題"
    default_genre: str = "漫才"
    default_characters: tuple[str, str] = ("ボケ", "ツッコミ")
    max_theme_length: int = Field(default=200, gt=0)

    # Metering
    metering: MeteringPolicy = "metered"
    free_quota: int = Field(default=20, ge=0)
    data_dir: Path = Path("data")

    production: bool = False

    @property
    def count_policy(self) -> CountPolicy:
        return CountPolicy(unit=self.count_unit, exclude_newlines=self.count_exclude_newlines)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **overrides) -> Settings:
        """Build settings from MANZAI_* variables; unset ones keep defaults."""
        env = os.environ if environ is None else environ
        values: dict = {}
        for var, field in _ENV_FIELDS.items():
            raw = env.get(var)
            if raw is None or raw == "":
                continue
            values[field] = raw
        values.update(overrides)
        return cls.model_validate(values)
