# qbgen/prompts/variations.py
"""Variation pools used to steer the model away from existing questions."""
from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Optional

DIVERSIFICATION_STRATEGIES = (
    "Focus on practical real-world scenarios and problem-solving situations",
    "Include questions about best practices, common pitfalls, and troubleshooting",
    "Mix theoretical knowledge with hands-on implementation questions",
    "Cover different aspects: architecture, debugging, optimization, and security",
    "Ask about decision-making processes and trade-offs between different approaches",
    "Explore edge cases and exceptional situations developers encounter",
    "Focus on team collaboration and code review scenarios",
    "Include questions about performance optimization and scalability",
    "Cover testing strategies and quality assurance practices",
    "Ask about system design and architectural decisions",
)

QUESTION_FORMATS = (
    "What would you do if",
    "How would you implement",
    "What is the best approach for",
    "Why would you choose",
    "Explain the difference between",
    "When should you use",
    "What are the pros and cons of",
    "How do you troubleshoot",
    "What steps would you take to",
    "How would you optimize",
)

CONTEXT_VARIATIONS = (
    "startup environment",
    "enterprise settings",
    "legacy systems",
    "greenfield projects",
    "remote team",
    "agile development",
    "high-traffic applications",
    "microservices architecture",
    "cloud deployment",
    "mobile applications",
)

ASPECT_VARIATIONS = (
    "implementation",
    "troubleshooting",
    "optimization",
    "security",
    "testing",
    "deployment",
    "monitoring",
    "maintenance",
    "code review",
    "documentation",
)


@dataclass(frozen=True)
class VariationPick:
    strategy: str
    question_format: str
    context: str
    aspect: str


def pick_variation(rng: Optional[random.Random] = None) -> VariationPick:
    rng = rng or random.Random()
    return VariationPick(
        strategy=rng.choice(DIVERSIFICATION_STRATEGIES),
        question_format=rng.choice(QUESTION_FORMATS),
        context=rng.choice(CONTEXT_VARIATIONS),
        aspect=rng.choice(ASPECT_VARIATIONS),
    )
