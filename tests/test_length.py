"""Tests for manzai.length — decoration stripping and budget enforcement."""

import pytest

from manzai.counter import CountPolicy, count
from manzai.length import enforce, enforce_with_closing, ends_sentence, strip_decoration

PHRASE = "もういいよ！"
RAW_UNIT = CountPolicy(unit="raw-unit")


def _script(turns: int) -> str:
    lines = []
    for i in range(turns):
        speaker = "A" if i % 2 == 0 else "B"
        lines.append(f"{speaker}: これは{i}番目の台詞です。")
    return "\n\n".join(lines)


# ── strip_decoration ─────────────────────────────────────


class TestStripDecoration:
    def test_code_fence_removed(self) -> None:
        assert strip_decoration("```\nA: a\n```") == "A: a"

    def test_heading_markup_removed(self) -> None:
        assert strip_decoration("## 第一幕\nA: a") == "第一幕\nA: a"

    def test_emphasis_removed(self) -> None:
        assert strip_decoration("**A**: a") == "A: a"

    def test_model_count_footer_removed(self) -> None:
        assert strip_decoration("A: a。\n\n（文字数：123文字）") == "A: a。"

    def test_rule_removed(self) -> None:
        assert strip_decoration("A: a\n---\nB: b") == "A: a\n\nB: b"


def test_ends_sentence() -> None:
    assert ends_sentence("そうです。")
    assert ends_sentence("「ほんまに？」")
    assert ends_sentence("なんでやねん！ ")
    assert not ends_sentence("なんでやねん")


# ── enforce ──────────────────────────────────────────────


class TestEnforce:
    def test_within_bounds_unchanged(self) -> None:
        assert enforce("あいう。", 0, 10) == "あいう。"

    def test_prefers_sentence_end(self) -> None:
        text = "あ" * 70 + "。" + "い" * 30
        assert enforce(text, 0, 80) == "あ" * 70 + "。"

    def test_falls_back_to_newline(self) -> None:
        text = "あ" * 70 + "\n" + "い" * 30
        assert enforce(text, 0, 80) == "あ" * 70 + "。"

    def test_hard_cut_when_boundary_too_early(self) -> None:
        text = "あ" * 50 + "。" + "い" * 50 + "。"
        result = enforce(text, 0, 80)
        assert result == "あ" * 50 + "。" + "い" * 28 + "。"
        assert count(result) == 80

    def test_threshold_is_configurable(self) -> None:
        text = "あ" * 50 + "。" + "い" * 50 + "。"
        assert enforce(text, 0, 80, threshold=0.6) == "あ" * 50 + "。"

    def test_under_min_gets_final_mark_only(self) -> None:
        assert enforce("あいう", 10, 20) == "あいう。"

    def test_under_min_with_mark_untouched(self) -> None:
        assert enforce("あいう！", 10, 20) == "あいう！"

    def test_allow_overflow_never_truncates(self) -> None:
        assert enforce("あ" * 100, 0, 10, allow_overflow=True) == "あ" * 100 + "。"

    def test_allow_overflow_strips_decoration(self) -> None:
        assert enforce("```\nA: a。\n```", 0, 10, allow_overflow=True) == "A: a。"

    def test_raw_unit_budget_respected(self) -> None:
        result = enforce("😀" * 10, 0, 5, policy=RAW_UNIT)
        assert count(result, RAW_UNIT) <= 5
        assert result.endswith("。")

    def test_dangling_speaker_label_dropped(self) -> None:
        text = "A: " + "あ" * 80 + "。\nB:"
        result = enforce(text + "い" * 40, 0, 86)
        assert not result.rstrip().endswith(":")

    def test_empty_text(self) -> None:
        assert enforce("", 10, 20) == ""

    @pytest.mark.parametrize("max_len", [1, 5, 30, 79, 80, 150])
    def test_length_bound(self, max_len: int) -> None:
        text = _script(20)
        assert count(enforce(text, 0, max_len)) <= max_len

    @pytest.mark.parametrize("max_len", [5, 30, 80, 2000])
    def test_idempotent(self, max_len: int) -> None:
        once = enforce(_script(20), 0, max_len)
        assert enforce(once, 0, max_len) == once


# ── enforce_with_closing ─────────────────────────────────


class TestEnforceWithClosing:
    @pytest.mark.parametrize("max_len", [40, 100, 333])
    def test_bound_and_closing_line(self, max_len: int) -> None:
        result = enforce_with_closing(_script(40), 0, max_len, "B", PHRASE)
        assert count(result) <= max_len
        assert result.endswith("B: もういいよ！")
        assert result.count(PHRASE) == 1

    def test_existing_closing_line_not_duplicated(self) -> None:
        text = _script(4) + "\n\nB: もういいよ！"
        result = enforce_with_closing(text, 0, 2000, "B", PHRASE)
        assert result == text

    def test_budget_smaller_than_closing_line(self) -> None:
        assert enforce_with_closing(_script(4), 0, 3, "B", PHRASE) == "B: もういいよ！"

    def test_turn_spacing_kept_after_cut(self) -> None:
        result = enforce_with_closing(_script(40), 0, 100, "B", PHRASE)
        assert "\n\n\n" not in result
        assert "\n\nB: もういいよ！" in result

    def test_newline_inclusive_bound_on_unspaced_turns(self) -> None:
        policy = CountPolicy(exclude_newlines=False)
        text = "\n".join(f"{'AB'[i % 2]}: これは{i}番目の台詞です。" for i in range(30))
        result = enforce_with_closing(text, 0, 100, "B", PHRASE, policy=policy)
        assert count(result, policy) <= 100
        assert "A: これは0番目の台詞です。\n\nB: これは1番目" in result
        assert result.endswith("\n\nB: もういいよ！")

    def test_closing_line_without_final_mark_is_replaced(self) -> None:
        result = enforce_with_closing("A: 客やで。\n\nB: もういいよ", 0, 2000, "B", PHRASE)
        assert result == "A: 客やで。\n\nB: もういいよ！"
