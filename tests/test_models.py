"""Tests for manzai.models — request parsing and response serialisation."""

import pytest
from pydantic import ValidationError

from manzai.config import Settings
from manzai.errors import InvalidRequestError
from manzai.models import (
    ScriptMeta,
    ScriptResult,
    UsageRecord,
    UsageSnapshot,
    parse_request,
)

SETTINGS = Settings()


def _payload(**overrides) -> dict:
    body = {"theme": "コンビニ", "genre": "漫才", "characters": "たけし、ひろし", "length": 300}
    body.update(overrides)
    return body


class TestParseRequest:
    def test_minimal(self) -> None:
        req = parse_request(_payload(), SETTINGS)
        assert req.theme == "コンビニ"
        assert req.characters == ("たけし", "ひろし")
        assert req.target_length == 300
        assert req.user_key is None
        assert not req.has_technique_selection

    @pytest.mark.parametrize("field", ["theme", "genre", "characters", "length"])
    def test_missing_field(self, field: str) -> None:
        body = _payload()
        del body[field]
        with pytest.raises(InvalidRequestError):
            parse_request(body, SETTINGS)

    def test_not_an_object(self) -> None:
        with pytest.raises(InvalidRequestError):
            parse_request(["theme"], SETTINGS)

    def test_blank_theme_rejected(self) -> None:
        with pytest.raises(InvalidRequestError):
            parse_request(_payload(theme="   "), SETTINGS)

    def test_overlong_theme_rejected(self) -> None:
        with pytest.raises(InvalidRequestError):
            parse_request(_payload(theme="あ" * 201), SETTINGS)

    def test_blank_genre_defaults(self) -> None:
        assert parse_request(_payload(genre=""), SETTINGS).genre == "漫才"

    @pytest.mark.parametrize("raw, expected", [
        (400, 400),
        ("450", 450),
        (12.7, 12),
        (5000, 2000),
        (0, 300),
        (-3, 300),
        ("abc", 300),
        ("nan", 300),
    ])
    def test_length_clamped_or_defaulted(self, raw, expected) -> None:
        assert parse_request(_payload(length=raw), SETTINGS).target_length == expected

    @pytest.mark.parametrize("raw", [None, True, [300]])
    def test_length_wrong_type(self, raw) -> None:
        with pytest.raises(InvalidRequestError):
            parse_request(_payload(length=raw), SETTINGS)

    @pytest.mark.parametrize("raw, expected", [
        ("たけし,ひろし", ("たけし", "ひろし")),
        ("たけし・ひろし・店長", ("たけし", "ひろし", "店長")),
        ("A / B , C　D", ("A", "B", "C", "D")),
        ("", ("ボケ", "ツッコミ")),
    ])
    def test_characters_split(self, raw, expected) -> None:
        assert parse_request(_payload(characters=raw), SETTINGS).characters == expected

    @pytest.mark.parametrize("raw", ["たけし", "A,B,C,D,E", "A,A", "A,12"])
    def test_characters_rejected(self, raw) -> None:
        with pytest.raises(InvalidRequestError):
            parse_request(_payload(characters=raw), SETTINGS)

    def test_technique_ids_cleaned(self) -> None:
        req = parse_request(_payload(boke=[1, "MISHEARING", " MISHEARING ", ""]), SETTINGS)
        assert req.boke == ("MISHEARING",)
        assert req.has_technique_selection

    def test_technique_ids_must_be_list(self) -> None:
        with pytest.raises(InvalidRequestError):
            parse_request(_payload(general="SATIRE"), SETTINGS)

    def test_user_key(self) -> None:
        assert parse_request(_payload(userKey="  u-1 "), SETTINGS).user_key == "u-1"
        assert parse_request(_payload(userKey=""), SETTINGS).user_key is None

    def test_user_key_wrong_type(self) -> None:
        with pytest.raises(InvalidRequestError):
            parse_request(_payload(userKey=5), SETTINGS)

    def test_default_pair_from_settings(self) -> None:
        settings = Settings(default_characters=("兄", "弟"))
        assert parse_request(_payload(characters=" "), settings).characters == ("兄", "弟")


class TestSerialisation:
    def test_result_dumps_camel_case(self) -> None:
        result = ScriptResult(
            title="t",
            text="x",
            meta=ScriptMeta(
                structure_labels=["伏線回収"],
                technique_labels=[],
                char_count=1,
                usage_snapshot=UsageSnapshot(
                    free_used_count=1, paid_credits=0, free_quota=20, free_remaining=19,
                ),
            ),
        )
        dumped = result.model_dump(by_alias=True)
        assert dumped["meta"]["structureLabels"] == ["伏線回収"]
        assert dumped["meta"]["charCount"] == 1
        assert dumped["meta"]["usageSnapshot"]["freeUsedCount"] == 1

    def test_usage_record_defaults_to_zero(self) -> None:
        assert UsageRecord() == UsageRecord(free_used_count=0, paid_credits=0)

    def test_usage_record_rejects_negative(self) -> None:
        with pytest.raises(ValidationError):
            UsageRecord(paid_credits=-1)
