"""Character counting under a configurable policy.

"code-point" counts NFC code points, so an astral character or a kana with
a combining voiced mark counts once, the way a reader counts 文字.
"raw-unit" counts UTF-16 code units, the length a JavaScript client sees.

"code-point" is not a grapheme-cluster count. Sequences with no precomposed
form still count per code point: an emoji ZWJ family such as 👨‍👩‍👧 counts
5, and か plus the semi-voiced mark U+309A counts 2. Japanese dialogue text
rarely contains either.
"""

from __future__ import annotations

import unicodedata
from typing import Literal

from pydantic import BaseModel, ConfigDict

CountUnit = Literal["code-point", "raw-unit"]

_NEWLINES = ("\r", "\n")


class CountPolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    unit: CountUnit = "code-point"
    exclude_newlines: bool = True


def _char_units(ch: str, policy: CountPolicy) -> int:
    if policy.exclude_newlines and ch in _NEWLINES:
        return 0
    if policy.unit == "raw-unit" and ord(ch) > 0xFFFF:
        return 2
    return 1


def count(text: str, policy: CountPolicy | None = None) -> int:
    """Return the length of `text` under `policy`."""
    policy = policy or CountPolicy()
    if not text:
        return 0
    if policy.exclude_newlines:
        text = text.replace("\r", "").replace("\n", "")
    text = unicodedata.normalize("NFC", text)
    if policy.unit == "raw-unit":
        return len(text.encode("utf-16-le")) // 2
    return len(text)


def prefix_within(text: str, limit: int, policy: CountPolicy | None = None) -> int:
    """Index of the longest prefix of `text` that counts at most `limit`.

    `text` is expected to be NFC already; a surrogate pair is never split.
    """
    policy = policy or CountPolicy()
    used = 0
    for i, ch in enumerate(text):
        units = _char_units(ch, policy)
        if used + units > limit:
            return i
        used += units
    return len(text)
