# qbgen/services/backfill.py
"""
Singleton backfill: one replacement request per missing slot.

The attempt budget equals the shortfall left by the batch call. A failed
attempt forfeits its slot only; nothing is retried.
"""
from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import List, Optional, Sequence

from qbgen.core.exceptions import MalformedOutput, UpstreamUnavailable
from qbgen.prompts.prompt_composer import compose_single_prompt
from qbgen.schemas.generation import GenerationSpec, ValidatedItem
from qbgen.services.normalizer import normalize_text
from qbgen.services.repair import parse_strict
from qbgen.services.validators import ItemTypeResolver, validate_candidate

logger = logging.getLogger("service.backfill")

SOURCE_BACKFILL = "backfill"


@dataclass
class SlotOutcome:
    slot: int
    item: Optional[ValidatedItem] = None
    error: Optional[str] = None


class BackfillGenerator:
    def __init__(
        self,
        client,
        spec: GenerationSpec,
        *,
        resolver: ItemTypeResolver,
        existing_stems: Sequence[str] = (),
        timeout_s: float = 20.0,
        concurrency: int = 1,
        rng: Optional[random.Random] = None,
        max_stems: int = 50,
        max_chars: int = 100,
        trace_id: Optional[str] = None,
    ):
        self.client = client
        self.spec = spec
        self.resolver = resolver
        self.existing_stems = tuple(existing_stems)
        self.timeout_s = timeout_s
        self.concurrency = max(1, concurrency)
        self.rng = rng or random.Random(spec.seed)
        self.max_stems = max_stems
        self.max_chars = max_chars
        self.trace_id = trace_id
        self.attempts = 0

    def _dedup_context(self, accepted: Sequence[ValidatedItem]) -> List[str]:
        # 이번 호출에서 이미 채택된 문항을 앞에 둔다
        return [item.stem for item in accepted] + list(self.existing_stems)

    async def attempt(self, slot: int, slot_type: str, context: Sequence[str]) -> SlotOutcome:
        """One singleton call. Never raises for upstream or parse trouble."""
        self.attempts += 1
        prompt = compose_single_prompt(
            self.spec,
            context,
            item_type=slot_type,
            rng=self.rng,
            max_stems=self.max_stems,
            max_chars=self.max_chars,
        )
        try:
            raw = await self.client.complete(
                prompt.system, prompt.user, timeout_s=self.timeout_s, trace_id=self.trace_id
            )
        except (UpstreamUnavailable, MalformedOutput) as e:
            return SlotOutcome(slot, error=f"backfill slot {slot}: {e.message}")

        candidates = parse_strict(normalize_text(raw))
        if not candidates:
            return SlotOutcome(slot, error=f"backfill slot {slot}: response was not a JSON object")

        try:
            item, reason = validate_candidate(
                candidates[0],
                self.spec,
                resolver=ItemTypeResolver(slot_type),
                slot=slot,
                source=SOURCE_BACKFILL,
                existing_stems=self.existing_stems,
            )
        except Exception as e:
            return SlotOutcome(slot, error=f"backfill slot {slot}: {type(e).__name__}: {e}")
        if item is None:
            return SlotOutcome(slot, error=f"backfill slot {slot}: rejected ({reason})")
        return SlotOutcome(slot, item=item)

    def _slot_type(self) -> str:
        # mixed는 배치와 같은 회전 순서를 이어간다
        return self.resolver.resolve(None)

    async def run(self, accepted: List[ValidatedItem], diagnostics: List[str]) -> int:
        """
        Fill accepted up to spec.requested_count. Items are appended to
        `accepted` in slot order as they succeed, so a cancelled run still
        leaves everything gathered so far in place.

        Returns the number of items added.
        """
        need = self.spec.requested_count - len(accepted)
        if need <= 0:
            return 0

        first_slot = len(accepted)
        plan = [(first_slot + k, self._slot_type()) for k in range(need)]
        logger.info(
            "backfill_start",
            extra={"trace_id": self.trace_id, "need": need, "concurrency": self.concurrency},
        )

        before = len(accepted)
        if self.concurrency == 1:
            for slot, slot_type in plan:
                outcome = await self.attempt(slot, slot_type, self._dedup_context(accepted))
                self._absorb(outcome, accepted, diagnostics)
        else:
            sem = asyncio.Semaphore(self.concurrency)
            context = self._dedup_context(accepted)

            async def bounded(slot: int, slot_type: str) -> SlotOutcome:
                async with sem:
                    return await self.attempt(slot, slot_type, context)

            results = await asyncio.gather(*(bounded(s, t) for s, t in plan), return_exceptions=True)
            outcomes = []
            for (slot, _), res in zip(plan, results):
                if isinstance(res, asyncio.CancelledError):
                    raise res
                if isinstance(res, BaseException):
                    # 다른 슬롯의 결과는 그대로 유지
                    res = SlotOutcome(slot, error=f"backfill slot {slot}: {type(res).__name__}: {res}")
                outcomes.append(res)
            for outcome in sorted(outcomes, key=lambda o: o.slot):
                self._absorb(outcome, accepted, diagnostics)

        added = len(accepted) - before
        logger.info(
            "backfill_done",
            extra={"trace_id": self.trace_id, "attempts": self.attempts, "added": added},
        )
        return added

    def _absorb(self, outcome: SlotOutcome, accepted: List[ValidatedItem], diagnostics: List[str]) -> None:
        if outcome.item is not None:
            accepted.append(outcome.item)
            return
        diagnostics.append(outcome.error)
        logger.warning("backfill_slot_failed", extra={"trace_id": self.trace_id, "slot": outcome.slot, "error": outcome.error})
