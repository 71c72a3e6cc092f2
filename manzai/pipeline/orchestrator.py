"""Pipeline orchestrator — runs one generation request end-to-end.

Request flow:
  1. Gate on the usage ledger (read only). Exhausted → QuotaExhaustedError.
  2. Assemble the prompt plan (length bounds, closing speaker, techniques).
  3. Call the generation backend. Any failure aborts; the ledger is untouched.
  4. Split title/body, strip decoration, normalise labels, spacing and the
     closing line.
  5. If the body is short of target by at least the deficit threshold, ask
     for one continuation (best-effort).
  6. Final length enforcement with room reserved for the closing line.
  7. Commit one unit of usage, only now that a non-empty script exists.
  8. Refetch the usage snapshot for the response (failure → null usage).
"""

from __future__ import annotations

import logging
import random

from manzai.catalog import DEFAULT_CATALOG, TechniqueCatalog
from manzai.config import Settings
from manzai.continuation import ContinuationController
from manzai.counter import count
from manzai.errors import EmptyScriptError, GenerationBackendError, LedgerError, QuotaExhaustedError
from manzai.ledger import UsageLedger, UsageStore
from manzai.length import enforce, enforce_with_closing
from manzai.llm import LLM
from manzai.models import (
    GenerationRequest,
    PromptPlan,
    ScriptDraft,
    ScriptMeta,
    ScriptResult,
    UsageSnapshot,
)
from manzai.normalizer import (
    normalize_body,
    split_title_and_body,
    strip_closing_line,
    with_count_footer,
)
from manzai.prompts import PromptAssembler

logger = logging.getLogger(__name__)


class RequestOrchestrator:
    """One configured pipeline; stateless across requests."""

    def __init__(
        self,
        *,
        settings: Settings,
        llm: LLM,
        store: UsageStore,
        catalog: TechniqueCatalog = DEFAULT_CATALOG,
        rng: random.Random | None = None,
    ) -> None:
        self.settings = settings
        self.ledger = UsageLedger(store, free_quota=settings.free_quota)
        self.assembler = PromptAssembler(settings, catalog, rng)
        self.continuation = ContinuationController(settings, self.assembler, llm)
        self._llm = llm

    @property
    def metered(self) -> bool:
        return self.settings.metering == "metered"

    async def run(self, request: GenerationRequest) -> ScriptResult:
        """Execute one request and return the packaged script."""
        user_key = request.user_key if self.metered else None

        # 1. Gate
        check = self.ledger.check_only(user_key)
        if not check.allowed:
            usage = check.snapshot.model_dump(by_alias=True) if check.snapshot else None
            raise QuotaExhaustedError("Usage limit reached", usage=usage)

        # 2. Prompt
        plan = self.assembler.assemble(request)
        logger.debug(
            "plan target=%d bounds=[%d, %d] closing=%s",
            plan.target_length, plan.min_length, plan.max_length, plan.closing_speaker,
        )

        # 3. Generate
        raw = await self._llm("script", plan.payload)
        if not raw or not raw.strip():
            raise GenerationBackendError("Generation returned empty output")

        # 4–6. Shape
        draft = self._normalize(raw, plan)
        draft = await self.continuation.maybe_extend(draft, plan)
        body = self._final_enforce(draft.body, plan)

        if not strip_closing_line(body, plan.closing_speaker, self.settings.closing_phrase).strip():
            raise EmptyScriptError("Generated script is empty after post-processing")

        # 7–8. Commit, then refetch
        usage = self._commit(user_key)

        char_count = count(body, self.settings.count_policy)
        text = with_count_footer(body, char_count) if self.settings.count_footer else body
        return ScriptResult(
            title=draft.title,
            text=text,
            meta=ScriptMeta(
                structure_labels=list(plan.structure_labels),
                technique_labels=list(plan.technique_labels),
                char_count=char_count,
                usage_snapshot=usage,
            ),
        )

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _normalize(self, raw: str, plan: PromptPlan) -> ScriptDraft:
        title, body = split_title_and_body(raw)
        body = enforce(body, plan.min_length, plan.max_length, allow_overflow=True,
                       policy=self.settings.count_policy)
        body = normalize_body(body, plan.closing_speaker, self.settings.closing_phrase)
        return ScriptDraft(title=title or self.settings.untitled_title, body=body)

    def _final_enforce(self, body: str, plan: PromptPlan) -> str:
        return enforce_with_closing(
            body,
            plan.min_length,
            plan.max_length,
            plan.closing_speaker,
            self.settings.closing_phrase,
            policy=self.settings.count_policy,
            threshold=self.settings.truncation_threshold,
        )

    def _commit(self, user_key: str | None) -> UsageSnapshot | None:
        if not user_key:
            return None
        try:
            self.ledger.commit_after_success(user_key)
        except LedgerError as e:
            logger.warning("usage commit failed for %r: %s", user_key, e)
            return None
        try:
            return self.ledger.snapshot(user_key)
        except LedgerError as e:
            logger.warning("usage refetch failed for %r: %s", user_key, e)
            return None
