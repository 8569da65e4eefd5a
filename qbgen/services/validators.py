# qbgen/services/validators.py
"""
Schema validator / canonicalizer.

A candidate is rejected only when its stem is missing or its type cannot be
resolved. Every other field is kept when present and well-typed and is
otherwise replaced with the GenerationSpec's effective value.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from qbgen.core.constants import DifficultyLevels, EstimatedTimes, ItemTypes, Levels
from qbgen.schemas.generation import GenerationSpec, ItemMeta, OptionRecord, ValidatedItem
from qbgen.services.repair import BACKFILLED_MARK
from qbgen.services.similarity import find_similar

logger = logging.getLogger("service.validators")


# -----------------------------
# Present / Absent
# -----------------------------
@dataclass(frozen=True)
class Checked:
    present: bool
    value: Any = None


ABSENT = Checked(False)


def Present(value: Any) -> Checked:
    return Checked(True, value)


def check_str(raw: Any) -> Checked:
    if isinstance(raw, str) and raw.strip():
        return Present(raw.strip())
    return ABSENT


def check_str_list(raw: Any, *, allow_empty: bool = True) -> Checked:
    if not isinstance(raw, list) or not all(isinstance(x, str) for x in raw):
        return ABSENT
    values = list(dict.fromkeys(x.strip() for x in raw if x.strip()))
    if not values and not allow_empty:
        return ABSENT
    return Present(values)


def check_level(raw: Any) -> Checked:
    if not isinstance(raw, str):
        return ABSENT
    key = " ".join(raw.strip().lower().split())
    if key in Levels.ALIASES:
        return Present(Levels.ALIASES[key])
    return ABSENT


def check_difficulty(raw: Any) -> Checked:
    if isinstance(raw, bool) or raw is None:
        return ABSENT
    if isinstance(raw, (int, float)):
        return Present(DifficultyLevels.canonical(raw))
    if isinstance(raw, str) and raw.strip().lower() in DifficultyLevels.ALL:
        return Present(raw.strip().lower())
    return ABSENT


def check_minutes(raw: Any) -> Checked:
    if isinstance(raw, bool):
        return ABSENT
    if isinstance(raw, (int, float)) and math.isfinite(raw) and raw > 0:
        return Present(int(round(raw)))
    return ABSENT


def _coerce_bool(raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, (int, float)):
        return raw == 1
    if isinstance(raw, str):
        return raw.strip().lower() in ("true", "1", "yes", "correct")
    return False


def clean_options(raw: Any) -> Tuple[List[OptionRecord], bool]:
    """
    Options with non-empty text. Returns (options, well_formed).
    Plain strings are accepted as text with isCorrect=false.
    """
    if not isinstance(raw, list):
        return [], False
    out: List[OptionRecord] = []
    for opt in raw:
        if isinstance(opt, str):
            text, correct = opt, False
        elif isinstance(opt, dict):
            text = opt.get("text", opt.get("content"))
            correct = opt.get("isCorrect", opt.get("is_correct", opt.get("correct", False)))
        else:
            continue
        if not isinstance(text, str) or not text.strip():
            continue
        out.append(OptionRecord(text=text.strip(), is_correct=_coerce_bool(correct)))
    return out, bool(out)


def answer_rule_for(item_type: str, options: Sequence[OptionRecord]) -> Tuple[Optional[str], Optional[bool]]:
    """single ⇒ exactly one correct, multi ⇒ two or more (advisory)"""
    correct = sum(1 for o in options if o.is_correct)
    if item_type == ItemTypes.SINGLE_CHOICE:
        return "exactly_one_correct", correct == 1
    if item_type == ItemTypes.MULTIPLE_CHOICE:
        return "two_or_more_correct", correct >= 2
    return None, None


# -----------------------------
# mixed 유형 해석
# -----------------------------
class ItemTypeResolver:
    """
    Resolves the item type of each candidate for one pipeline invocation.
    For "mixed", a candidate that names a concrete choice type keeps it;
    otherwise types alternate single_choice / multiple_choice in the order
    candidates arrive.
    """

    def __init__(self, spec_type: str):
        self.spec_type = spec_type
        self._turn = 0

    def next_rotation(self) -> str:
        rotation = ItemTypes.MIXED_ROTATION
        picked = rotation[self._turn % len(rotation)]
        self._turn += 1
        return picked

    def resolve(self, candidate_type: Any) -> Optional[str]:
        if self.spec_type in ItemTypes.CONCRETE:
            return self.spec_type
        if self.spec_type != ItemTypes.MIXED:
            return None
        if isinstance(candidate_type, str) and candidate_type.strip().lower() in ItemTypes.CHOICE_BASED:
            return candidate_type.strip().lower()
        return self.next_rotation()


# -----------------------------
# Public API
# -----------------------------
def validate_candidate(
    candidate: Any,
    spec: GenerationSpec,
    *,
    resolver: ItemTypeResolver,
    slot: int = 0,
    source: str = "batch",
    existing_stems: Sequence[str] = (),
) -> Tuple[Optional[ValidatedItem], Optional[str]]:
    """
    Returns (item, None) on success or (None, reason) when rejected.
    """
    if not isinstance(candidate, dict):
        return None, "candidate is not an object"

    stem = check_str(candidate.get("stem"))
    if not stem.present:
        return None, "missing stem"

    item_type = resolver.resolve(candidate.get("type"))
    if item_type is None:
        return None, f"unresolvable type for spec type {spec.item_type!r}"

    backfilled: List[str] = list(candidate.get(BACKFILLED_MARK) or [])

    def take(name: str, checked: Checked, fallback: Any) -> Any:
        if checked.present:
            return checked.value
        if name not in backfilled:
            backfilled.append(name)
        return fallback

    difficulty = take("difficulty", check_difficulty(candidate.get("difficulty")), spec.difficulty)

    options: Optional[List[OptionRecord]] = None
    rule, rule_ok = None, None
    if ItemTypes.is_choice(item_type):
        options, well_formed = clean_options(candidate.get("options"))
        if not well_formed:
            backfilled.append("options")
        rule, rule_ok = answer_rule_for(item_type, options)

    meta = ItemMeta(source=source, slot=slot, answer_rule=rule, answer_rule_ok=rule_ok)

    similar = find_similar(stem.value, existing_stems) if existing_stems else None
    if similar:
        meta.similar_to, meta.similarity = similar

    data: Dict[str, Any] = {
        "stem": stem.value,
        "type": item_type,
        "level": take("level", check_level(candidate.get("level")), spec.level),
        "difficulty": difficulty,
        "category": take("category", check_str(candidate.get("category")), spec.category),
        "fields": take("fields", check_str_list(candidate.get("fields"), allow_empty=False), list(spec.fields)),
        "topics": take("topics", check_str_list(candidate.get("topics")), list(spec.topics)),
        "skills": take("skills", check_str_list(candidate.get("skills")), list(spec.skills)),
        "explanation": take("explanation", check_str(candidate.get("explanation")), ""),
        "options": options,
        "estimated_time": take(
            "estimatedTime",
            check_minutes(candidate.get("estimatedTime", candidate.get("estimated_time"))),
            EstimatedTimes.default_for(difficulty, item_type),
        ),
        "tags": take("tags", check_str_list(candidate.get("tags")), []),
    }
    meta.backfilled_fields = backfilled
    data["meta"] = meta

    try:
        return ValidatedItem(**data), None
    except ValidationError as e:
        logger.debug("validated_item_build_failed", extra={"errors": e.errors()})
        return None, f"schema: {e.errors()[0]['msg']}"


def validate_all(
    candidates: Sequence[Any],
    spec: GenerationSpec,
    *,
    resolver: ItemTypeResolver,
    source: str,
    first_slot: int = 0,
    existing_stems: Sequence[str] = (),
    on_reject: Optional[Callable[[str], None]] = None,
) -> List[ValidatedItem]:
    """Validate in arrival order, skipping rejects."""
    out: List[ValidatedItem] = []
    for offset, cand in enumerate(candidates):
        try:
            item, reason = validate_candidate(
                cand, spec,
                resolver=resolver,
                slot=first_slot + offset,
                source=source,
                existing_stems=existing_stems,
            )
        except Exception as e:
            # 한 문항의 예외는 그 문항만 버린다
            logger.warning("candidate_validation_error", extra={"slot": first_slot + offset, "error": str(e)})
            item, reason = None, f"{type(e).__name__}: {e}"
        if item is None:
            if on_reject:
                on_reject(f"{source}: item {offset + 1} rejected ({reason})")
            continue
        out.append(item)
    return out
