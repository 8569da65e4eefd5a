# qbgen/schemas/generation.py
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class GenerationRequest(BaseModel):
    """
    Wire form of a generation request.
    Accepts both the current list fields and the legacy single-value ones
    (field / topic / comma separated topics). Range checks happen in
    spec_resolver so they surface as SpecValidationError.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    fields: Optional[List[str]] = None
    field: Optional[str] = None
    topics: Optional[Union[List[str], str]] = None
    topic: Optional[str] = None
    skills: Optional[Union[List[str], str]] = None
    level: Optional[str] = None
    difficulty: Optional[Union[str, int]] = None
    category: Optional[str] = None
    item_type: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("questionType", "itemType", "item_type", "type"),
    )
    requested_count: Optional[int] = Field(
        default=None,
        validation_alias=AliasChoices("questionCount", "requestedCount", "requested_count", "count"),
    )
    custom_prompt: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("customPrompt", "custom_prompt"),
    )
    seed: Optional[int] = None


class GenerationSpec(BaseModel):
    """Resolved, validated and immutable generation input."""
    model_config = ConfigDict(frozen=True)

    fields: Tuple[str, ...]
    topics: Tuple[str, ...] = ()
    skills: Tuple[str, ...] = ()
    level: str
    difficulty: str
    category: str
    item_type: str
    requested_count: int
    custom_prompt: str = ""
    seed: Optional[int] = None

    @property
    def primary_field(self) -> str:
        return self.fields[0]

    def context(self) -> Dict[str, Any]:
        """Effective values echoed back to the caller"""
        return {
            "fields": list(self.fields),
            "topics": list(self.topics),
            "skills": list(self.skills),
            "level": self.level,
            "difficulty": self.difficulty,
            "category": self.category,
            "questionType": self.item_type,
            "questionCount": self.requested_count,
            "customPrompt": self.custom_prompt or None,
        }


class OptionRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text: str = Field(min_length=1)
    is_correct: bool = Field(default=False, alias="isCorrect")


class ItemMeta(BaseModel):
    """Advisory metadata. Nothing in here causes an item to be rejected."""
    source: str = "batch"
    slot: int = 0
    backfilled_fields: List[str] = Field(default_factory=list)
    answer_rule: Optional[str] = None
    answer_rule_ok: Optional[bool] = None
    similar_to: Optional[str] = None
    similarity: Optional[float] = None


class ValidatedItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    stem: str = Field(min_length=1)
    type: str
    level: str
    difficulty: str
    category: str
    fields: List[str]
    topics: List[str] = Field(default_factory=list)
    skills: List[str] = Field(default_factory=list)
    explanation: str = ""
    options: Optional[List[OptionRecord]] = None
    estimated_time: int = Field(alias="estimatedTime")
    tags: List[str] = Field(default_factory=list)
    meta: ItemMeta = Field(default_factory=ItemMeta)

    def to_public(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class GenerationResult(BaseModel):
    items: List[ValidatedItem]
    generated: int
    requested: int
    context: Dict[str, Any]
    note: str
    message: str
    diagnostics: List[str] = Field(default_factory=list)

    def to_response(self) -> Dict[str, Any]:
        items = [item.to_public() for item in self.items]
        return {
            "items": items,
            "questions": items,
            "generated": self.generated,
            "requested": self.requested,
            "context": self.context,
            "note": self.note,
            "message": self.message,
        }


class ErrorResponse(BaseModel):
    error: str
    details: Optional[Any] = None
    code: Optional[str] = None
    trace_id: Optional[str] = None
