"""Formatting rules for generated dialogue.

Every function here is pure and idempotent: the continuation path re-runs
the whole chain over text that has already been normalised once.

Script format after normalisation:

    タイトル

    ボケ: ボケの台詞

    ツッコミ: ツッコミの台詞

    ツッコミ: もういいよ！
"""

from __future__ import annotations

import re

# Name: 1-20 chars, no whitespace, colons or sentence punctuation; a bare
# clock time like "12:30" is not a speaker.
_SPEAKER = re.compile(
    r"^\s*(?!\d+[:：])([^\s:：。、！？!?「」『』（）()]{1,20})\s*[:：]\s*(.*)$"
)
_TITLE_PREFIX = re.compile(
    r"^(?:【\s*(?:タイトル|題名)\s*】|(?:タイトル|題名|title)\s*[:：])\s*", re.IGNORECASE
)
_TITLE_DECORATION = re.compile(r"[【】「」『』\[\]《》〈〉*#]")
_BLANK_LINE_SPLIT = re.compile(r"\n[ \t　]*\n")
_WHITESPACE = re.compile(r"\s+")
_COUNT_FOOTER = "（文字数：{count}文字）"
# The closing phrase still matches when the model changed or dropped its final mark.
_CLOSING_MARKS = "。．.！!？?…"


def _lines(text: str) -> list[str]:
    return [line.rstrip() for line in text.replace("\r", "").split("\n")]


def _squash(text: str) -> str:
    return _WHITESPACE.sub("", text)


def is_speaker_line(line: str) -> bool:
    return _SPEAKER.match(line) is not None


def speaker_of(line: str) -> str | None:
    m = _SPEAKER.match(line)
    return m.group(1) if m else None


# ---------------------------------------------------------------------------
# Title / body
# ---------------------------------------------------------------------------

def clean_title(title: str) -> str:
    """Strip heading markup, a "タイトル：" label and bracket decoration."""
    title = _TITLE_PREFIX.sub("", title.strip())
    title = _TITLE_DECORATION.sub("", title)
    title = _TITLE_PREFIX.sub("", title.strip())
    return _WHITESPACE.sub(" ", title).strip()


def split_title_and_body(raw: str) -> tuple[str, str]:
    """Split at the first blank line into (title, body).

    Without a blank line the title is empty and everything is body. A head
    paragraph that is already dialogue (a speaker line, or several lines)
    is not a title either.
    """
    text = raw.replace("\r", "").strip()
    parts = _BLANK_LINE_SPLIT.split(text, maxsplit=1)
    if len(parts) == 1:
        return "", text
    head, rest = parts[0].strip(), parts[1].strip()
    if not _TITLE_PREFIX.match(head) and ("\n" in head or is_speaker_line(head)):
        return "", text
    return clean_title(head), rest


def drop_title_line(raw: str) -> str:
    """Drop a leading paragraph only when it is explicitly labelled a title.

    Continuation output has no title of its own, so a short head paragraph
    such as a stage direction is kept.
    """
    text = raw.replace("\r", "").strip()
    parts = _BLANK_LINE_SPLIT.split(text, maxsplit=1)
    if len(parts) == 2 and _TITLE_PREFIX.match(parts[0].strip()):
        return parts[1].strip()
    return text


# ---------------------------------------------------------------------------
# Speaker labels and turn spacing
# ---------------------------------------------------------------------------

def normalize_speaker_labels(text: str) -> str:
    """Rewrite every `name：  line` / `name :line` to `name: line`."""
    out: list[str] = []
    for line in _lines(text):
        m = _SPEAKER.match(line)
        if m:
            line = f"{m.group(1)}: {m.group(2)}".rstrip()
        out.append(line)
    return "\n".join(out)


def ensure_blank_line_between_turns(text: str) -> str:
    """Collapse blank-line runs to one and separate adjacent turns by one."""
    out: list[str] = []
    for line in _lines(text):
        if not line.strip():
            if out and out[-1]:
                out.append("")
            continue
        if out and out[-1] and is_speaker_line(out[-1]) and is_speaker_line(line):
            out.append("")
        out.append(line)
    while out and not out[-1]:
        out.pop()
    return "\n".join(out)


# ---------------------------------------------------------------------------
# Closing line
# ---------------------------------------------------------------------------

def closing_line(speaker: str, phrase: str) -> str:
    return f"{speaker}: {phrase}"


def _phrase_suffix(phrase: str) -> re.Pattern:
    """Whitespace-tolerant phrase at end of line, any final marks allowed."""
    core = _squash(phrase).rstrip(_CLOSING_MARKS) or _squash(phrase)
    body = r"\s*".join(re.escape(ch) for ch in core)
    return re.compile(body + rf"\s*[{re.escape(_CLOSING_MARKS)}]*\s*$")


def _closing_match(line: str, speaker: str, phrase: str) -> re.Match | None:
    m = _SPEAKER.match(line)
    if m and m.group(1) == speaker and _phrase_suffix(phrase).search(m.group(2)):
        return m
    return None


def ensure_closing_line(text: str, speaker: str, phrase: str) -> str:
    """Make the script end with `speaker: phrase`, exactly once."""
    body = text.replace("\r", "").rstrip()
    if not body.strip():
        return closing_line(speaker, phrase)
    head, _, last = body.rpartition("\n")
    m = _closing_match(last, speaker, phrase)
    if m:
        lead = _phrase_suffix(phrase).sub("", m.group(2))
        last = f"{speaker}: {lead}{phrase}"
        return f"{head}\n{last}" if head else last
    return f"{body}\n\n{closing_line(speaker, phrase)}"


def strip_closing_line(text: str, speaker: str, phrase: str) -> str:
    """Remove the closing phrase (and its line, if nothing else is left)."""
    body = text.replace("\r", "").rstrip()
    head, _, last = body.rpartition("\n")
    m = _closing_match(last, speaker, phrase)
    if not m:
        return body
    remaining = _phrase_suffix(phrase).sub("", m.group(2)).strip()
    if remaining:
        return f"{head}\n{speaker}: {remaining}".strip("\n")
    return head.rstrip()


def normalize_body(text: str, speaker: str, phrase: str) -> str:
    """Full formatting chain: labels, spacing, then the closing line."""
    text = normalize_speaker_labels(text)
    text = ensure_blank_line_between_turns(text)
    return ensure_closing_line(text, speaker, phrase)


# ---------------------------------------------------------------------------
# Character-count footer
# ---------------------------------------------------------------------------

def with_count_footer(text: str, count: int) -> str:
    """Append the server-computed `（文字数：N文字）` footer."""
    return f"{text.rstrip()}\n\n{_COUNT_FOOTER.format(count=count)}"
