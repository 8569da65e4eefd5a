# qbgen/services/repair.py
"""
Structural repair for batch output.

Three stages, each returning a (possibly empty) list and falling through to
the next when empty:

    Parse            json.loads of the normalized text
    Repair           balanced "stem" spans, stop at the first truncated one
    FragmentBackfill loose item-shaped fragments, missing canonical keys filled
                     in from the GenerationSpec, each parsed in isolation

The first stage that yields items wins; stages are never merged.
"""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from qbgen.core.exceptions import MalformedOutput
from qbgen.core.logging import clip
from qbgen.prompts.prompt_composer import ITEM_OPENING_KEY
from qbgen.schemas.generation import GenerationSpec
from qbgen.services.normalizer import drop_trailing_separators

logger = logging.getLogger("service.repair")

STAGE_PARSE = "parse"
STAGE_REPAIR = "repair"
STAGE_FRAGMENT = "fragment"

CONTAINER_KEYS = ("questions", "items", "data")

# 필드 보강 대상 (spec 기본값으로 채움)
BACKFILL_KEYS = ("type", "level", "difficulty", "category", "fields", "topics", "skills")

BACKFILLED_MARK = "_backfilled"

_MARKER_RE = re.compile(r'"%s"\s*:' % ITEM_OPENING_KEY)

# 한 단계 중첩(options 배열의 객체)까지 허용, 중첩 객체 안에는 stem 금지
_FRAGMENT_RE = re.compile(
    r'\{[^{}]*?"%s"\s*:(?:[^{}]|\{(?:(?!"%s")[^{}])*\})*\}' % (ITEM_OPENING_KEY, ITEM_OPENING_KEY)
)


@dataclass
class Span:
    start: int
    end: int
    text: str
    balanced: bool
    item_text: Optional[str] = None


@dataclass
class RecoveredBatch:
    items: List[Dict[str, Any]] = field(default_factory=list)
    stage: Optional[str] = None
    diagnostics: List[str] = field(default_factory=list)


def _reject_constant(name: str):
    raise ValueError(f"non-finite number {name}")


def loads_finite(text: str) -> Any:
    """json.loads without NaN / Infinity literals"""
    return json.loads(text, parse_constant=_reject_constant)


# -----------------------------
# Stage 1: strict parse
# -----------------------------
def items_from_payload(data: Any) -> List[Dict[str, Any]]:
    """Accept {"questions": [...]}, {"items": [...]}, a bare list or one item object."""
    if isinstance(data, dict):
        for key in CONTAINER_KEYS:
            if isinstance(data.get(key), list):
                return [x for x in data[key] if isinstance(x, dict)]
        if ITEM_OPENING_KEY in data:
            return [data]
        return []
    if isinstance(data, list):
        return [x for x in data if isinstance(x, dict)]
    return []


def parse_strict(text: str) -> List[Dict[str, Any]]:
    try:
        data = loads_finite(text)
    except (json.JSONDecodeError, ValueError):
        return []
    return items_from_payload(data)


# -----------------------------
# Stage 2: balanced span repair
# -----------------------------
def find_item_starts(text: str) -> List[int]:
    """
    Offsets of the "{" that opens each object holding a "stem" key.
    String-aware: a "stem" inside a string value is not a marker.
    """
    starts: List[int] = []
    stack: List[int] = []
    in_str = False
    esc = False
    str_start = -1
    n = len(text)
    i = 0
    while i < n:
        ch = text[i]
        if in_str:
            if esc:
                esc = False
            elif ch == "\\":
                esc = True
            elif ch == '"':
                in_str = False
                if stack and text[str_start:i + 1] == f'"{ITEM_OPENING_KEY}"':
                    j = i + 1
                    while j < n and text[j] in " \t\r\n":
                        j += 1
                    if j < n and text[j] == ":":
                        start = stack[-1]
                        if not starts or starts[-1] != start:
                            starts.append(start)
            i += 1
            continue

        if ch == '"':
            in_str = True
            str_start = i
        elif ch == "{":
            stack.append(i)
        elif ch == "}":
            if stack:
                stack.pop()
        i += 1
    return starts


def _close_index(span_text: str) -> Optional[int]:
    """
    Index where the opening object of the span closes, or None.
    Braces and brackets are counted outside string literals; the object is
    balanced when its brace depth returns to zero with every bracket matched
    and neither count ever going negative.
    """
    brace = 0
    bracket = 0
    in_str = False
    esc = False
    for idx, ch in enumerate(span_text):
        if in_str:
            if esc:
                esc = False
            elif ch == "\\":
                esc = True
            elif ch == '"':
                in_str = False
            continue
        if ch == '"':
            in_str = True
        elif ch == "{":
            brace += 1
        elif ch == "}":
            brace -= 1
            if brace == 0:
                return idx if bracket == 0 else None
        elif ch == "[":
            bracket += 1
        elif ch == "]":
            bracket -= 1
        if brace < 0 or bracket < 0:
            return None
    return None


def split_spans(text: str) -> List[Span]:
    starts = find_item_starts(text)
    spans: List[Span] = []
    for k, start in enumerate(starts):
        end = starts[k + 1] if k + 1 < len(starts) else len(text)
        span_text = text[start:end]
        close = _close_index(span_text)
        spans.append(Span(
            start=start,
            end=end,
            text=span_text,
            balanced=close is not None,
            item_text=span_text[:close + 1] if close is not None else None,
        ))
    return spans


def repair_items(text: str) -> Tuple[List[Dict[str, Any]], List[str]]:
    """
    Keep balanced spans up to the first unbalanced one (truncation), then
    reassemble them into one array and parse it. When the reassembled array
    does not parse, each kept span is parsed on its own instead.
    """
    notes: List[str] = []
    kept: List[str] = []
    for idx, span in enumerate(split_spans(text)):
        if not span.balanced:
            notes.append(f"repair: span {idx + 1} unbalanced, discarding it and everything after")
            break
        kept.append(span.item_text)

    if not kept:
        return [], notes

    container = "[" + ",".join(kept) + "]"
    items = parse_strict(container)
    if items:
        return items, notes

    notes.append("repair: reassembled container failed to parse, parsing spans one by one")
    out: List[Dict[str, Any]] = []
    for piece in kept:
        try:
            obj = loads_finite(piece)
        except (json.JSONDecodeError, ValueError):
            notes.append(f"repair: dropped span {clip(piece, 60)!r}")
            continue
        if isinstance(obj, dict):
            out.append(obj)
    return out, notes


# -----------------------------
# Stage 3: fragment extraction + backfill
# -----------------------------
def _canonical_values(spec: GenerationSpec) -> Dict[str, Any]:
    return {
        "type": spec.item_type,
        "level": spec.level,
        "difficulty": spec.difficulty,
        "category": spec.category,
        "fields": list(spec.fields),
        "topics": list(spec.topics),
        "skills": list(spec.skills),
    }


def backfill_fragment(fragment: str, spec: GenerationSpec) -> Tuple[str, List[str]]:
    """Insert any absent canonical key right before the fragment's closing brace."""
    canon = _canonical_values(spec)
    missing = [k for k in BACKFILL_KEYS if not re.search(r'"%s"\s*:' % k, fragment)]
    if not missing:
        return fragment, []
    body = fragment.rstrip()[:-1].rstrip()
    additions = ", ".join(f'"{k}": {json.dumps(canon[k], ensure_ascii=False)}' for k in missing)
    sep = "" if body.endswith("{") or body.endswith(",") else ", "
    return f"{body}{sep}{additions}}}", missing


def extract_fragments(text: str, spec: GenerationSpec) -> Tuple[List[Dict[str, Any]], List[str]]:
    notes: List[str] = []
    out: List[Dict[str, Any]] = []
    for m in _FRAGMENT_RE.finditer(text):
        fragment, missing = backfill_fragment(m.group(0), spec)
        cleaned = drop_trailing_separators(re.sub(r"[\r\n]+", " ", fragment))
        try:
            obj = loads_finite(cleaned)
        except (json.JSONDecodeError, ValueError) as e:
            notes.append(f"fragment: dropped ({getattr(e, 'msg', e)})")
            continue
        if not isinstance(obj, dict):
            continue
        if missing:
            obj[BACKFILLED_MARK] = missing
        out.append(obj)
    return out, notes


# -----------------------------
# Public API
# -----------------------------
def parse_items(text: str, spec: GenerationSpec) -> RecoveredBatch:
    """
    Run Parse → Repair → FragmentBackfill over normalized text.

    Raises:
        MalformedOutput: strict parse failed and the text contains no
            item-opening marker at all.
    """
    items = parse_strict(text)
    if items:
        return RecoveredBatch(items=items, stage=STAGE_PARSE)

    if not _MARKER_RE.search(text or ""):
        raise MalformedOutput(snippet=text)

    diagnostics: List[str] = ["parse: strict parse failed"]

    items, notes = repair_items(text)
    diagnostics.extend(notes)
    if items:
        logger.info("batch_repaired", extra={"stage": STAGE_REPAIR, "recovered": len(items)})
        return RecoveredBatch(items=items, stage=STAGE_REPAIR, diagnostics=diagnostics)

    items, notes = extract_fragments(text, spec)
    diagnostics.extend(notes)
    if items:
        logger.info("batch_fragments_recovered", extra={"stage": STAGE_FRAGMENT, "recovered": len(items)})
        return RecoveredBatch(items=items, stage=STAGE_FRAGMENT, diagnostics=diagnostics)

    logger.warning("batch_unrecoverable", extra={"snippet": clip(text, 300)})
    return RecoveredBatch(items=[], stage=None, diagnostics=diagnostics)
