# qbgen/services/spec_resolver.py
"""
Request → GenerationSpec.

Applies the fallback chain (explicit list → legacy single value → empty),
canonicalises level/difficulty and rejects malformed requests before any
network call is made.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import ValidationError

from qbgen.core.constants import DifficultyLevels, ItemTypes, Levels, RequestLimits
from qbgen.core.exceptions import SpecValidationError
from qbgen.schemas.generation import GenerationRequest, GenerationSpec

logger = logging.getLogger("service.spec_resolver")


def _split_csv(value: str) -> List[str]:
    return [p.strip() for p in value.split(",") if p.strip()]


def _clean_list(values: Any) -> List[str]:
    """list / comma separated str → list of unique non-empty strings (order kept)"""
    if values is None:
        return []
    if isinstance(values, str):
        raw = _split_csv(values)
    elif isinstance(values, (list, tuple)):
        raw = [str(v).strip() for v in values if v is not None and str(v).strip()]
    else:
        return []
    return list(dict.fromkeys(raw))


def effective_list(explicit: Any, legacy: Optional[str]) -> Tuple[str, ...]:
    """explicit list → legacy single value → empty"""
    values = _clean_list(explicit)
    if values:
        return tuple(values)
    return tuple(_clean_list(legacy))


def check_spec_values(fields: Tuple[str, ...], item_type: str, count: Optional[int]) -> List[str]:
    """Problems with the three values every spec must get right"""
    problems: List[str] = []
    if not fields:
        problems.append("fields: at least one field is required")
    if item_type not in ItemTypes.ALL:
        problems.append(f"questionType: must be one of {ItemTypes.ALL}")
    if count is None or not (RequestLimits.MIN_COUNT <= count <= RequestLimits.MAX_COUNT):
        problems.append(
            f"questionCount: must be between {RequestLimits.MIN_COUNT} and {RequestLimits.MAX_COUNT}"
        )
    return problems


def _reject_if_any(problems: List[str]) -> None:
    if problems:
        logger.info("spec_rejected", extra={"problems": problems})
        raise SpecValidationError(problems=problems)


def resolve_spec(request: Union[GenerationRequest, GenerationSpec, Dict[str, Any]]) -> GenerationSpec:
    """
    Validate once and freeze.

    Raises:
        SpecValidationError: effective fields empty, item type outside the
            enumerated set, or requested count outside [1, 20].
    """
    if isinstance(request, GenerationSpec):
        # 직접 만든 스펙도 같은 검사를 거친다
        _reject_if_any(check_spec_values(
            tuple(f for f in request.fields if f.strip()), request.item_type, request.requested_count
        ))
        return request
    if isinstance(request, dict):
        try:
            request = GenerationRequest.model_validate(request)
        except ValidationError as e:
            problems = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
            raise SpecValidationError(problems=problems)

    fields = effective_list(request.fields, request.field)
    item_type = (request.item_type or "").strip().lower()
    count = request.requested_count
    _reject_if_any(check_spec_values(fields, item_type, count))

    category = (request.category or "").strip() or fields[0]

    return GenerationSpec(
        fields=fields,
        topics=effective_list(request.topics, request.topic),
        skills=effective_list(request.skills, None),
        level=Levels.canonical(request.level),
        difficulty=DifficultyLevels.canonical(request.difficulty),
        category=category,
        item_type=item_type,
        requested_count=count,
        custom_prompt=(request.custom_prompt or "").strip(),
        seed=request.seed,
    )
