"""Length enforcement for generated scripts.

The backend cannot be trusted to hit a character budget, so the final
length is imposed here: decoration is stripped, over-long text is cut at the
latest sentence end (or line end) inside the budget, and a hard cut is used
only when those boundaries would throw away too much.
"""

from __future__ import annotations

import re
import unicodedata

from manzai.counter import CountPolicy, count, prefix_within
from manzai.normalizer import (
    closing_line,
    ensure_blank_line_between_turns,
    ensure_closing_line,
    speaker_of,
    strip_closing_line,
)

SENTENCE_MARKS = "。！？!?…"
DEFAULT_MARK = "。"
DEFAULT_THRESHOLD = 0.8

_SENTENCE_END = re.compile(rf"[{SENTENCE_MARKS}][」』）)]*$")
_SENTENCE_CUT = re.compile(rf"[{SENTENCE_MARKS}]+[」』）)]*")

_FENCE = re.compile(r"^[ \t]*(?:```|~~~).*$", re.MULTILINE)
_HEADING = re.compile(r"^[ \t]*#{1,6}[ \t]*", re.MULTILINE)
_RULE = re.compile(r"^[ \t]*(?:-{3,}|\*{3,}|_{3,})[ \t]*$", re.MULTILINE)
_EMPHASIS = re.compile(r"\*\*|__")
_COUNT_FOOTER = re.compile(
    r"^[ \t]*[（(][ \t]*文字数[ \t]*[:：][ \t]*\d+[ \t]*文字[ \t]*[)）][ \t]*$", re.MULTILINE
)


def strip_decoration(text: str) -> str:
    """Remove markdown fences, headings, rules, emphasis and count footers."""
    text = unicodedata.normalize("NFC", text.replace("\r", ""))
    for pattern in (_FENCE, _RULE, _COUNT_FOOTER):
        text = pattern.sub("", text)
    text = _HEADING.sub("", text)
    text = _EMPHASIS.sub("", text)
    return text.strip()


def ends_sentence(text: str) -> bool:
    return _SENTENCE_END.search(text.rstrip()) is not None


def _tidy(text: str, mark: str) -> str:
    return text if ends_sentence(text) else text + mark


def _drop_dangling_label(text: str) -> str:
    head, _, last = text.rpartition("\n")
    if speaker_of(last) is not None and last.rstrip().endswith(":"):
        return head.rstrip()
    return text


def _truncate(
    text: str, max_len: int, policy: CountPolicy, threshold: float, mark: str
) -> str:
    window = text[:prefix_within(text, max_len, policy)]
    floor = max_len * threshold

    candidates: list[int] = []
    sentence_ends = [m.end() for m in _SENTENCE_CUT.finditer(window)]
    if sentence_ends:
        candidates.append(sentence_ends[-1])
    newline = window.rfind("\n")
    if newline > 0:
        candidates.append(newline)

    cut = len(window)
    for pos in candidates:
        if count(window[:pos], policy) >= floor:
            cut = pos
            break

    result = _drop_dangling_label(window[:cut].rstrip())
    if not ends_sentence(result):
        room = max_len - count(mark, policy)
        if room >= 0:
            result = result[:prefix_within(result, room, policy)].rstrip() + mark
    return result


def enforce(
    text: str,
    min_len: int,
    max_len: int,
    allow_overflow: bool = False,
    *,
    policy: CountPolicy | None = None,
    threshold: float = DEFAULT_THRESHOLD,
    mark: str = DEFAULT_MARK,
) -> str:
    """Bring `text` inside `max_len` and tidy its final punctuation.

    With `allow_overflow` the text is never cut; only decoration is removed
    and a missing sentence-final mark appended. Text under `min_len` is not
    padded here; continuation handles real shortfalls.
    """
    policy = policy or CountPolicy()
    text = strip_decoration(text)
    if not text:
        return ""
    if allow_overflow:
        return _tidy(text, mark)

    length = count(text, policy)
    if length > max_len:
        return _truncate(text, max_len, policy, threshold, mark)
    if length < min_len:
        return _tidy(text, mark)
    return text


def closing_reserve(speaker: str, phrase: str, policy: CountPolicy | None = None) -> int:
    """Budget taken by the closing line and the blank line before it."""
    return count("\n\n" + closing_line(speaker, phrase), policy)


def enforce_with_closing(
    text: str,
    min_len: int,
    max_len: int,
    speaker: str,
    phrase: str,
    *,
    policy: CountPolicy | None = None,
    threshold: float = DEFAULT_THRESHOLD,
) -> str:
    """Final pass: fit the body into [min_len, max_len] closing line included.

    Room for the closing line is reserved before cutting, so the line is
    never truncated away. A budget too small to hold the closing line yields
    the closing line alone.
    """
    policy = policy or CountPolicy()
    core = strip_closing_line(text, speaker, phrase)
    # Spacing first: blank lines inserted after the cut would count under a
    # newline-inclusive policy.
    core = ensure_blank_line_between_turns(strip_decoration(core))
    reserve = closing_reserve(speaker, phrase, policy)
    core = enforce(
        core,
        max(min_len - reserve, 0),
        max(max_len - reserve, 0),
        policy=policy,
        threshold=threshold,
    )
    core = ensure_blank_line_between_turns(core)
    return ensure_closing_line(core, speaker, phrase)
