"""Handlebars prompt rendering and per-request prompt planning."""

from __future__ import annotations

import math
import random
from collections.abc import Callable
from typing import Any

import pybars

from manzai.catalog import DEFAULT_CATALOG, NAMESPACES, Technique, TechniqueCatalog
from manzai.config import Settings
from manzai.length import closing_reserve
from manzai.models import GenerationRequest, InstructionPayload, PromptPlan
from manzai.normalizer import closing_line

_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}


class PromptError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


def render_prompt(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return str(compiled(context)).strip()
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e


# ── Templates ────────────────────────────────────────────

SYSTEM_TEMPLATE = (
    "あなたは日本語のお笑い脚本のプロです。"
    "事実に反する断定や固有名詞の創作は避け、常識の範囲で現実に即した内容にしてください。"
)

_FORMAT_RULES = """\
- 台詞は必ず「名前: 台詞」の形で1行ずつ書き、台詞と台詞の間に空行を1つ入れてください。
- 最後は必ず「{{{closing_line}}}」の1行で締めてください。
- 見出し、記号による装飾、箇条書き、文字数の注記は書かないでください。"""

SCRIPT_TEMPLATE = """\
以下の条件で漫才の台本を書いてください。

【テーマ】{{{theme}}}
【ジャンル】{{{genre}}}
【登場人物】{{{cast}}}
【長さ】本文を{{request_min}}文字以上{{request_max}}文字以下にしてください(絶対に{{hard_cap}}文字を超えないでください)。
【形式】
- 1行目にタイトルだけを書き、空行を1つ空けてから本文を書いてください。
""" + _FORMAT_RULES + """
{{#if boke}}

【ボケの技法】次の技法を使ってください。
{{#each boke}}
- {{{label}}}: {{{definition}}}
{{/each}}
{{/if}}
{{#if tsukkomi}}

【ツッコミの技法】次の技法を使ってください。
{{#each tsukkomi}}
- {{{label}}}: {{{definition}}}
{{/each}}
{{/if}}
{{#if general}}

【構成】次の理論を取り入れてください。
{{#each general}}
- {{{label}}}: {{{definition}}}
{{/each}}
{{/if}}

人間が作るような滑らかな展開にしてください。"""

CONTINUATION_TEMPLATE = """\
以下は書きかけの漫才の台本です。

{{{body}}}

この続きを書いてください。
- すでに書かれた台詞やボケを繰り返さないでください。
- 新しい本文を少なくとも{{deficit}}文字書いてください。
- タイトルや前置きは書かず、続きの台詞だけを出力してください。
""" + _FORMAT_RULES


# ── Assembler ────────────────────────────────────────────

_ROLE_NAMES = ("ボケ", "ツッコミ")


def _technique_context(techniques: list[Technique]) -> list[dict[str, str]]:
    return [t._asdict() for t in techniques]


class PromptAssembler:
    """Turns a GenerationRequest into a PromptPlan.

    The randomness source is injected so the fallback technique draw (used
    when the caller selects nothing at all) is reproducible in tests.
    """

    def __init__(
        self,
        settings: Settings,
        catalog: TechniqueCatalog = DEFAULT_CATALOG,
        rng: random.Random | None = None,
    ) -> None:
        self._settings = settings
        self._catalog = catalog
        self._rng = rng or random.Random()

    def length_bounds(self, target: int, minimum: int = 0) -> tuple[int, int]:
        """Enforced [min, max] for `target` under the configured policy.

        Both ends are raised to `minimum` (the closing line plus the
        shortest usable body) so a small target still leaves room for
        dialogue.
        """
        cap = self._settings.hard_cap
        minimum = min(minimum, cap)
        if self._settings.length_policy == "ceiling":
            return max(min(target, cap), minimum), cap
        tol = self._settings.band_tolerance
        low = math.floor(round(target * (1 - tol), 6))
        high = math.ceil(round(target * (1 + tol), 6))
        return max(low, minimum), max(min(high, cap), minimum)

    def _minimum_length(self, closing_speaker: str) -> int:
        reserve = closing_reserve(
            closing_speaker, self._settings.closing_phrase, self._settings.count_policy
        )
        return reserve + self._settings.min_body_length

    def _requested_bounds(self, min_len: int, max_len: int) -> tuple[int, int]:
        if self._settings.length_policy == "ceiling":
            return min_len, min(min_len + 50, self._settings.hard_cap)
        return min_len, max_len

    def _selections(self, request: GenerationRequest) -> dict[str, list[Technique]]:
        if request.has_technique_selection:
            chosen = {"boke": request.boke, "tsukkomi": request.tsukkomi, "general": request.general}
        else:
            chosen = {ns: self._catalog.pick_random(ns, self._rng) for ns in NAMESPACES}
        return {ns: self._catalog.resolve(ns, ids) for ns, ids in chosen.items()}

    def _cast(self, speakers: tuple[str, ...]) -> str:
        parts = []
        for i, name in enumerate(speakers):
            role = _ROLE_NAMES[i] if i < len(_ROLE_NAMES) else "脇役"
            parts.append(f"{name}({role})")
        return "、".join(parts)

    def _payload(self, user: str) -> InstructionPayload:
        return InstructionPayload(
            system=SYSTEM_TEMPLATE,
            user=user,
            model=self._settings.model,
            max_tokens=self._settings.max_tokens,
        )

    def assemble(self, request: GenerationRequest) -> PromptPlan:
        closing_speaker = request.tsukkomi_name
        min_len, max_len = self.length_bounds(
            request.target_length, self._minimum_length(closing_speaker)
        )
        request_min, request_max = self._requested_bounds(min_len, max_len)
        selections = self._selections(request)
        closing = closing_line(closing_speaker, self._settings.closing_phrase)

        user = render_prompt(SCRIPT_TEMPLATE, {
            "theme": request.theme,
            "genre": request.genre,
            "cast": self._cast(request.characters),
            "request_min": request_min,
            "request_max": request_max,
            "hard_cap": self._settings.hard_cap,
            "closing_line": closing,
            "boke": _technique_context(selections["boke"]),
            "tsukkomi": _technique_context(selections["tsukkomi"]),
            "general": _technique_context(selections["general"]),
        })

        return PromptPlan(
            payload=self._payload(user),
            min_length=min_len,
            max_length=max_len,
            target_length=request.target_length,
            closing_speaker=closing_speaker,
            technique_labels=tuple(t.label for t in selections["boke"] + selections["tsukkomi"]),
            structure_labels=tuple(t.label for t in selections["general"]),
        )

    def continuation(self, plan: PromptPlan, body: str, deficit: int) -> InstructionPayload:
        user = render_prompt(CONTINUATION_TEMPLATE, {
            "body": body,
            "deficit": deficit,
            "closing_line": closing_line(plan.closing_speaker, self._settings.closing_phrase),
        })
        return self._payload(user)
