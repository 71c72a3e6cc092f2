"""Comedic technique catalog.

Three namespaces of enum identifier → (label, definition). The catalog is
immutable and shared by every request; unknown identifiers resolve to
nothing so newer clients can send values this server does not know yet.
"""

from __future__ import annotations

import random
from collections.abc import Iterable, Mapping
from types import MappingProxyType
from typing import Literal, NamedTuple

Namespace = Literal["boke", "tsukkomi", "general"]
NAMESPACES: tuple[Namespace, ...] = ("boke", "tsukkomi", "general")


class Technique(NamedTuple):
    id: str
    label: str
    definition: str


_BOKE = {
    "MISHEARING": ("聞き間違い", "相手の言葉を似た音の別の言葉と取り違え、話を脱線させる。"),
    "FALSE_LOGIC": ("屁理屈", "一見筋が通っているようで前提がおかしい理屈を、自信満々に押し通す。"),
    "EXAGGERATION": ("誇張", "ささいな出来事や感情を、ありえない規模まで大げさに膨らませる。"),
    "LITERAL": ("言葉通り", "比喩や慣用句を文字通りに受け取って行動する。"),
    "ROLE_REVERSAL": ("立場逆転", "設定上の立場(客と店員など)を途中で勝手に入れ替える。"),
    "SELF_CONTRADICTION": ("自己矛盾", "直前の自分の発言と矛盾することを平然と言う。"),
}

_TSUKKOMI = {
    "SHARP_CORRECTION": ("一言訂正", "ボケの誤りを短く鋭い一言で正す。"),
    "NORI": ("ノリツッコミ", "一度ボケに乗って話を広げてから、我に返って否定する。"),
    "METAPHOR": ("例えツッコミ", "ボケのおかしさを意外な物事に例えて指摘する。"),
    "ESCALATING": ("畳みかけ", "複数のおかしな点を勢いよく連続で指摘する。"),
    "QUIET": ("静かなツッコミ", "声を荒らげず、冷静な一言で温度差を作る。"),
}

_GENERAL = {
    "TENSION_RELEASE": ("緊張と緩和", "張りつめた状況を作り、思いがけない一言でほどいて笑いにする。"),
    "SATIRE": ("風刺", "社会の風潮や身近な慣習を、誇張を交えて皮肉る。"),
    "IRONY": ("皮肉", "言葉の表面と本心をずらし、逆の意味をにじませる。"),
    "SURPRISE": ("意外性と納得感", "予想を裏切る展開に、後から腑に落ちる理由を添える。"),
    "CALLBACK": ("伏線回収", "前半の何気ない台詞や小道具を、終盤の笑いどころで回収する。"),
    "TENDON": ("天丼", "同じボケを形を変えて繰り返し、回数そのものを笑いにする。"),
}


def _freeze(entries: dict[str, tuple[str, str]]) -> Mapping[str, Technique]:
    return MappingProxyType({k: Technique(k, label, d) for k, (label, d) in entries.items()})


class TechniqueCatalog:
    """Read-only lookup of techniques by namespace and identifier."""

    def __init__(self, namespaces: Mapping[Namespace, Mapping[str, Technique]]) -> None:
        self._namespaces = MappingProxyType(dict(namespaces))

    def ids(self, namespace: Namespace) -> list[str]:
        return list(self._namespaces.get(namespace, {}))

    def resolve(self, namespace: Namespace, ids: Iterable[str]) -> list[Technique]:
        """Techniques for `ids` in order; unknown identifiers are skipped."""
        table = self._namespaces.get(namespace, {})
        return [table[i] for i in ids if i in table]

    def pick_random(self, namespace: Namespace, rng: random.Random, k: int = 1) -> list[str]:
        ids = self.ids(namespace)
        return rng.sample(ids, min(k, len(ids)))


DEFAULT_CATALOG = TechniqueCatalog({
    "boke": _freeze(_BOKE),
    "tsukkomi": _freeze(_TSUKKOMI),
    "general": _freeze(_GENERAL),
})
