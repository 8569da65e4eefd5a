# qbgen/prompts/prompt_composer.py
"""
Instruction text for the batch call and for singleton backfill calls.

Everything here is a pure function of the GenerationSpec, the existing-stem
sample and the supplied Random instance.
"""
from __future__ import annotations

import json
import random
from typing import Iterable, List, NamedTuple, Optional, Sequence

from qbgen.core.constants import ItemTypes, Levels
from qbgen.prompts.variations import pick_variation
from qbgen.schemas.generation import GenerationSpec

ITEM_OPENING_KEY = "stem"

LEVEL_GUIDELINES = {
    Levels.INTERN: "Focus on basic concepts, terminology and simple syntax questions.",
    Levels.FRESHER: "Focus on fundamentals learned in school or first projects, with simple practical cases.",
    Levels.JUNIOR: "Focus on fundamentals, basic concepts, and syntax.",
    Levels.MIDDLE: "Emphasize practical experience, problem-solving, and best practices.",
    Levels.SENIOR: "Cover architecture, leadership, complex scenarios, and strategic thinking.",
}

BATCH_SYSTEM_ROLE = (
    "You are an expert technical interviewer and question designer. "
    "Generate high-quality interview questions for software engineering roles."
)
SINGLE_SYSTEM_ROLE = "You are an expert question generator. Return only valid JSON, no extra text."

FORMAT_CONTRACT = """CRITICAL FORMATTING RULES:
1. Return ONLY valid JSON - no markdown code blocks, no ``` markers, no commentary
2. Ensure all strings are properly quoted and escaped
3. No trailing commas before } or ]
4. Ensure proper nesting and closing brackets
5. Each question must be a complete object that starts with the "stem" key"""


class PromptPair(NamedTuple):
    system: str
    user: str


def _options_shape(item_type: str) -> Optional[list]:
    if item_type == ItemTypes.MULTIPLE_CHOICE:
        return [
            {"text": "Option 1", "isCorrect": True},
            {"text": "Option 2", "isCorrect": True},
            {"text": "Option 3", "isCorrect": False},
            {"text": "Option 4", "isCorrect": False},
        ]
    if item_type in ItemTypes.CHOICE_BASED or item_type == ItemTypes.MIXED:
        return [
            {"text": "Option 1", "isCorrect": True},
            {"text": "Option 2", "isCorrect": False},
            {"text": "Option 3", "isCorrect": False},
            {"text": "Option 4", "isCorrect": False},
        ]
    return None


def item_shape(spec: GenerationSpec, item_type: Optional[str] = None) -> dict:
    """Target object for one item. "stem" is always the first key."""
    item_type = item_type or spec.item_type
    type_value = "single_choice | multiple_choice" if item_type == ItemTypes.MIXED else item_type
    shape = {
        ITEM_OPENING_KEY: "Question text here",
        "type": type_value,
        "level": spec.level,
        "difficulty": spec.difficulty,
        "category": spec.category,
        "fields": list(spec.fields),
        "topics": list(spec.topics) or ["topic1", "topic2"],
        "skills": list(spec.skills) or ["skill1", "skill2"],
        "explanation": "Detailed explanation",
        "estimatedTime": 3,
        "tags": ["tag1"],
    }
    shape["options"] = _options_shape(item_type)
    return shape


def _requirements(spec: GenerationSpec, count: int) -> List[str]:
    lines = [
        f"- Fields: {', '.join(spec.fields)}",
        f"- Level: {spec.level}",
        f"- Difficulty: {spec.difficulty}",
        f"- Question Type: {spec.item_type}",
        f"- Number of Questions: {count}",
    ]
    if spec.topics:
        lines.append(f"- Focus Topics: {', '.join(spec.topics)}")
    if spec.skills:
        lines.append(f"- Target Skills: {', '.join(spec.skills)}")
    if spec.custom_prompt:
        lines.append(f"- Additional Requirements: {spec.custom_prompt}")
    return lines


def _answer_rules(item_type: str) -> List[str]:
    rules = []
    if item_type in (ItemTypes.SINGLE_CHOICE, ItemTypes.MIXED):
        rules.append("- single_choice: exactly 4 options, exactly ONE with \"isCorrect\": true")
    if item_type in (ItemTypes.MULTIPLE_CHOICE, ItemTypes.MIXED):
        rules.append("- multiple_choice: exactly 4 options, TWO OR MORE with \"isCorrect\": true")
    if item_type == ItemTypes.MIXED:
        rules.append("- Alternate single_choice and multiple_choice across the questions")
    if item_type in (ItemTypes.FREE_TEXT, ItemTypes.CODING):
        rules.append("- \"options\" must be null")
    if item_type == ItemTypes.CODING:
        rules.append("- The stem must describe a concrete coding task with input/output expectations")
    return rules


def dedup_directive(
    existing_stems: Sequence[str],
    *,
    rng: Optional[random.Random] = None,
    max_stems: int = 50,
    max_chars: int = 100,
) -> str:
    """
    Block listing prior stems plus variation techniques.
    Returns "" for an empty sample.
    """
    stems = [s.strip()[:max_chars] for s in list(existing_stems)[:max_stems] if s and s.strip()]
    if not stems:
        return ""
    pick = pick_variation(rng)
    listed = "\n- ".join(stems)
    return (
        "EXISTING QUESTIONS TO AVOID DUPLICATING:\n"
        f"- {listed}\n\n"
        "Ensure your new questions are significantly different from the above existing questions "
        "in both content and phrasing.\n\n"
        f"DIVERSIFICATION STRATEGY: {pick.strategy}\n\n"
        "VARIATION GUIDELINES:\n"
        f"- Use alternate question framings like: \"{pick.question_format}...\"\n"
        f"- Vary the scenario context, e.g. {pick.context}\n"
        f"- Vary which aspect is emphasized, e.g. {pick.aspect}\n"
        "- Ensure each question tests different knowledge areas and scenarios"
    )


def compose_batch_prompt(
    spec: GenerationSpec,
    existing_stems: Iterable[str] = (),
    *,
    rng: Optional[random.Random] = None,
    max_stems: int = 50,
    max_chars: int = 100,
) -> PromptPair:
    """Instructions asking for all requested items at once."""
    count = spec.requested_count
    shape = {"questions": [item_shape(spec)]}
    parts = [
        BATCH_SYSTEM_ROLE,
        f"Generate EXACTLY {count} question(s). Not more, not less.",
        "REQUIREMENTS:\n" + "\n".join(_requirements(spec, count)),
        "QUALITY STANDARDS:\n"
        "1. Questions must be practical and relevant to real-world scenarios\n"
        f"2. Difficulty must match the specified level ({spec.level})\n"
        "3. Questions should test both theoretical knowledge and practical application\n"
        "4. For choice questions, provide 4 options with clear correct answers\n"
        "5. Include detailed explanations for learning value",
    ]
    rules = _answer_rules(spec.item_type)
    if rules:
        parts.append("ANSWER RULES:\n" + "\n".join(rules))
    parts.append(
        "RESPONSE FORMAT:\n"
        "Return ONLY a valid JSON object with this exact structure (no markdown, no extra text):\n"
        + json.dumps(shape, ensure_ascii=False, indent=2)
    )
    parts.append(FORMAT_CONTRACT)
    parts.append(f"LEVEL-SPECIFIC GUIDELINES:\n- {spec.level}: {LEVEL_GUIDELINES[spec.level]}")

    directive = dedup_directive(existing_stems, rng=rng, max_stems=max_stems, max_chars=max_chars)
    if directive:
        parts.append(directive)

    parts.append(
        f"The \"questions\" array must contain EXACTLY {count} item(s). "
        f"Generate {count} unique, high-quality questions now."
    )
    system = "\n\n".join(parts)

    user = (
        f"Generate {count} {spec.difficulty} level {spec.item_type} questions for "
        f"{', '.join(spec.fields)} at {spec.level} level."
    )
    if spec.topics:
        user += f" Focus on: {', '.join(spec.topics)}"
    return PromptPair(system=system, user=user)


def compose_single_prompt(
    spec: GenerationSpec,
    existing_stems: Iterable[str] = (),
    *,
    item_type: Optional[str] = None,
    rng: Optional[random.Random] = None,
    max_stems: int = 50,
    max_chars: int = 100,
) -> PromptPair:
    """Instructions asking for exactly one replacement item."""
    item_type = item_type or spec.item_type
    lines = [
        f"Generate EXACTLY 1 high-quality {item_type} question for {spec.level} level "
        f"{', '.join(spec.fields)} developer.",
        "Question requirements:\n" + "\n".join(_requirements(spec, 1)),
    ]
    rules = _answer_rules(item_type)
    if rules:
        lines.append("Answer rules:\n" + "\n".join(rules))
    lines.append(
        "Return only a JSON object with this structure:\n"
        + json.dumps(item_shape(spec, item_type), ensure_ascii=False, indent=2)
    )
    lines.append("No markdown fences, no trailing commas, no text outside the JSON object.")

    directive = dedup_directive(existing_stems, rng=rng, max_stems=max_stems, max_chars=max_chars)
    if directive:
        lines.append(directive)

    lines.append("Return EXACTLY 1 question object.")
    return PromptPair(system=SINGLE_SYSTEM_ROLE, user="\n\n".join(lines))
