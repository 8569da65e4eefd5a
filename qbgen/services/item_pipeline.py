# qbgen/services/item_pipeline.py
"""
Generation pipeline: spec → sample → batch call → normalize → parse/repair
→ validate → backfill → aggregate.

Only SpecValidationError and HardFailure leave this module. Every other
failure is absorbed into the diagnostics list and the run carries on with
whatever items it has.
"""
from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, List, Optional, Sequence, Tuple

from qbgen.core.constants import GenerationNotes
from qbgen.core.exceptions import HardFailure, MalformedOutput, UpstreamUnavailable
from qbgen.core.logging import clip
from qbgen.core.settings import BaseConfig, settings as default_settings
from qbgen.prompts.prompt_composer import compose_batch_prompt
from qbgen.schemas.generation import GenerationResult, GenerationSpec, ValidatedItem
from qbgen.services.backfill import BackfillGenerator
from qbgen.services.llm_client import LLMClient
from qbgen.services.normalizer import normalize_text
from qbgen.services.repair import STAGE_PARSE, parse_items
from qbgen.services.spec_resolver import resolve_spec
from qbgen.services.validators import ItemTypeResolver, validate_all

logger = logging.getLogger("service.pipeline")


# -----------------------------
# Small helpers
# -----------------------------
def _source_for(stage: Optional[str]) -> str:
    # parse 단계에서 나온 문항은 "batch"
    return "batch" if stage in (None, STAGE_PARSE) else stage


def _cap(diagnostics: List[str], limit: int) -> List[str]:
    if limit <= 0 or len(diagnostics) <= limit:
        return list(diagnostics)
    dropped = len(diagnostics) - limit
    return diagnostics[:limit - 1] + [f"... {dropped + 1} more"]


def clip_sample(stems: Sequence[Any], max_stems: int, max_chars: int) -> Tuple[str, ...]:
    """Read-only, bounded sample of prior stems"""
    out = []
    for s in stems:
        if not isinstance(s, str) or not s.strip():
            continue
        out.append(s.strip()[:max_chars])
        if len(out) >= max_stems:
            break
    return tuple(out)


# -----------------------------
# Aggregation
# -----------------------------
def aggregate_results(
    items: Sequence[ValidatedItem],
    spec: GenerationSpec,
    diagnostics: Sequence[str] = (),
    *,
    max_diagnostics: int = 20,
) -> GenerationResult:
    """
    First `requested` items in arrival order.

    Raises:
        HardFailure: nothing survived
    """
    requested = spec.requested_count
    kept = list(items)[:requested]
    generated = len(kept)
    diags = list(diagnostics)

    if generated == 0:
        last = diags[-1] if diags else None
        raise HardFailure(last_error=last, requested=requested)

    if generated == requested:
        note = GenerationNotes.SUCCESS
        message = f"Successfully generated {generated} question(s)"
    else:
        note = GenerationNotes.PARTIAL
        message = f"Generated {generated} of {requested} requested question(s)"

    return GenerationResult(
        items=kept,
        generated=generated,
        requested=requested,
        context=spec.context(),
        note=note,
        message=message,
        diagnostics=_cap(diags, max_diagnostics),
    )


# -----------------------------
# Phases
# -----------------------------
async def read_sample(corpus, spec: GenerationSpec, cfg: BaseConfig, trace_id: Optional[str] = None) -> Tuple[str, ...]:
    """Best-effort: any corpus failure yields an empty sample"""
    if corpus is None or cfg.MAX_EXISTING_STEMS <= 0:
        return ()
    try:
        stems = await corpus.fetch_existing_stems(list(spec.fields), cfg.MAX_EXISTING_STEMS)
    except asyncio.CancelledError:
        raise
    except Exception as e:
        logger.warning("sample_read_failed", extra={"trace_id": trace_id, "error": str(e)})
        return ()
    return clip_sample(stems or [], cfg.MAX_EXISTING_STEMS, cfg.EXISTING_STEM_CONTEXT_CHARS)


async def run_batch(
    client,
    spec: GenerationSpec,
    sample: Tuple[str, ...],
    *,
    resolver: ItemTypeResolver,
    accepted: List[ValidatedItem],
    diagnostics: List[str],
    cfg: BaseConfig,
    rng: random.Random,
    trace_id: Optional[str] = None,
) -> None:
    prompt = compose_batch_prompt(
        spec,
        sample,
        rng=rng,
        max_stems=cfg.MAX_EXISTING_STEMS,
        max_chars=cfg.EXISTING_STEM_CONTEXT_CHARS,
    )
    try:
        raw = await client.complete(
            prompt.system, prompt.user, timeout_s=cfg.generation_timeout_s, trace_id=trace_id
        )
        batch = parse_items(normalize_text(raw), spec)
    except (UpstreamUnavailable, MalformedOutput) as e:
        diagnostics.append(f"batch: {e.message}")
        logger.warning("batch_failed", extra={"trace_id": trace_id, "code": e.code, "error": clip(e.message)})
        return

    diagnostics.extend(batch.diagnostics)
    validated = validate_all(
        batch.items,
        spec,
        resolver=resolver,
        source=_source_for(batch.stage),
        first_slot=len(accepted),
        existing_stems=sample,
        on_reject=diagnostics.append,
    )
    accepted.extend(validated)
    logger.info(
        "batch_done",
        extra={
            "trace_id": trace_id,
            "stage": batch.stage,
            "candidates": len(batch.items),
            "validated": len(validated),
            "requested": spec.requested_count,
        },
    )


# -----------------------------
# Public API
# -----------------------------
async def generate_items(
    request_or_spec: Any,
    *,
    client=None,
    corpus=None,
    settings: Optional[BaseConfig] = None,
    best_effort: bool = True,
    trace_id: Optional[str] = None,
    rng: Optional[random.Random] = None,
) -> GenerationResult:
    """
    Produce up to requested_count validated items.

    Raises:
        SpecValidationError: before any network call
        HardFailure: zero items after batch and backfill
    """
    cfg = settings or default_settings
    spec = resolve_spec(request_or_spec)

    if client is None:
        client = LLMClient()
    rng = rng or random.Random(spec.seed)

    accepted: List[ValidatedItem] = []
    diagnostics: List[str] = []
    logger.info(
        "generation_start",
        extra={"trace_id": trace_id, "requested": spec.requested_count, "item_type": spec.item_type, "level": spec.level},
    )

    try:
        sample = await read_sample(corpus, spec, cfg, trace_id)
        resolver = ItemTypeResolver(spec.item_type)
        await run_batch(
            client, spec, sample,
            resolver=resolver,
            accepted=accepted,
            diagnostics=diagnostics,
            cfg=cfg,
            rng=rng,
            trace_id=trace_id,
        )

        if len(accepted) < spec.requested_count:
            backfill = BackfillGenerator(
                client,
                spec,
                resolver=resolver,
                existing_stems=sample,
                timeout_s=cfg.backfill_timeout_s,
                concurrency=cfg.BACKFILL_CONCURRENCY,
                rng=rng,
                max_stems=cfg.MAX_EXISTING_STEMS,
                max_chars=cfg.EXISTING_STEM_CONTEXT_CHARS,
                trace_id=trace_id,
            )
            await backfill.run(accepted, diagnostics)
    except asyncio.CancelledError:
        if not best_effort:
            raise
        diagnostics.append("cancelled: returning items accumulated so far")
        logger.warning("generation_cancelled", extra={"trace_id": trace_id, "accumulated": len(accepted)})

    result = aggregate_results(accepted, spec, diagnostics, max_diagnostics=cfg.MAX_DIAGNOSTICS)
    logger.info(
        "generation_done",
        extra={"trace_id": trace_id, "generated": result.generated, "requested": result.requested, "note": result.note},
    )
    return result
