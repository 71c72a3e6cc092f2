"""Best-effort top-up of scripts that came back short.

One extra generation call at most. A failed continuation is logged and the
draft is returned as it was; it never fails the request.
"""

from __future__ import annotations

import logging

from manzai.config import Settings
from manzai.counter import count
from manzai.errors import GenerationBackendError
from manzai.length import enforce
from manzai.llm import LLM
from manzai.models import PromptPlan, ScriptDraft
from manzai.normalizer import drop_title_line, normalize_body, strip_closing_line
from manzai.prompts import PromptAssembler

logger = logging.getLogger(__name__)


class ContinuationController:
    def __init__(self, settings: Settings, assembler: PromptAssembler, llm: LLM) -> None:
        self._settings = settings
        self._assembler = assembler
        self._llm = llm

    def deficit(self, draft: ScriptDraft, plan: PromptPlan) -> int:
        return plan.target_length - count(draft.body, self._settings.count_policy)

    def should_extend(self, draft: ScriptDraft, plan: PromptPlan) -> bool:
        return self.deficit(draft, plan) >= self._settings.deficit_threshold

    async def maybe_extend(self, draft: ScriptDraft, plan: PromptPlan) -> ScriptDraft:
        if not self.should_extend(draft, plan):
            return draft

        deficit = self.deficit(draft, plan)
        speaker, phrase = plan.closing_speaker, self._settings.closing_phrase
        logger.debug("continuation deficit=%d target=%d", deficit, plan.target_length)

        payload = self._assembler.continuation(plan, draft.body, deficit)
        try:
            raw = await self._llm("continuation", payload)
        except GenerationBackendError as e:
            logger.warning("continuation failed, keeping original draft: %s", e)
            return draft

        extra = enforce(drop_title_line(raw), 0, 0, allow_overflow=True, policy=self._settings.count_policy)
        if not extra:
            logger.warning("continuation returned no usable text, keeping original draft")
            return draft

        base = strip_closing_line(draft.body, speaker, phrase)
        body = normalize_body(f"{base}\n{extra}", speaker, phrase)
        logger.debug(
            "continuation spliced len_before=%d len_after=%d",
            count(draft.body, self._settings.count_policy),
            count(body, self._settings.count_policy),
        )
        return ScriptDraft(title=draft.title, body=body)
