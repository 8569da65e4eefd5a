"""
상수 정의 모듈
Canonical tables for item types, levels and difficulty, plus error codes.
"""
from typing import Dict, Optional


class RedisKeys:
    """Redis key patterns"""
    CACHE_PREFIX = "cache:"
    EXISTING_STEMS = "stems:{fields}:{limit}"

    @classmethod
    def existing_stems(cls, fields_key: str, limit: int) -> str:
        return cls.CACHE_PREFIX + cls.EXISTING_STEMS.format(fields=fields_key, limit=limit)


class ErrorCodes:
    """에러 코드"""
    SPEC_INVALID = "SPEC_INVALID"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"
    UPSTREAM_UNAVAILABLE = "UPSTREAM_UNAVAILABLE"
    MALFORMED_OUTPUT = "MALFORMED_OUTPUT"
    GENERATION_FAILED = "GENERATION_FAILED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ErrorMessages:
    """User facing error messages"""
    INVALID_CONFIGURATION = "Invalid configuration parameters"
    NO_ITEMS_GENERATED = "No valid questions were generated"
    UPSTREAM_UNAVAILABLE = "Generation backend is currently unavailable"
    MALFORMED_OUTPUT = "AI returned invalid JSON format and could not extract questions"
    INTERNAL_ERROR = "Failed to generate questions"


class UpstreamReasons:
    """Generation client failure reasons"""
    UNAVAILABLE = "unavailable"
    MALFORMED_CREDENTIALS = "malformed_credentials"
    RATE_LIMITED = "rate_limited"
    TIMEOUT = "timeout"

    ALL = [UNAVAILABLE, MALFORMED_CREDENTIALS, RATE_LIMITED, TIMEOUT]


class ItemTypes:
    """문항 유형"""
    SINGLE_CHOICE = "single_choice"
    MULTIPLE_CHOICE = "multiple_choice"
    FREE_TEXT = "free_text"
    CODING = "coding"
    MIXED = "mixed"

    CONCRETE = [SINGLE_CHOICE, MULTIPLE_CHOICE, FREE_TEXT, CODING]
    ALL = CONCRETE + [MIXED]
    CHOICE_BASED = (SINGLE_CHOICE, MULTIPLE_CHOICE)

    # mixed 해석 순서
    MIXED_ROTATION = (SINGLE_CHOICE, MULTIPLE_CHOICE)

    @classmethod
    def is_choice(cls, item_type: Optional[str]) -> bool:
        return item_type in cls.CHOICE_BASED


class Levels:
    """Seniority levels and the alias table used to canonicalise them"""
    INTERN = "intern"
    FRESHER = "fresher"
    JUNIOR = "junior"
    MIDDLE = "middle"
    SENIOR = "senior"

    ALL = [INTERN, FRESHER, JUNIOR, MIDDLE, SENIOR]
    BASELINE = JUNIOR

    ALIASES: Dict[str, str] = {
        "intern": INTERN,
        "internship": INTERN,
        "trainee": INTERN,
        "fresher": FRESHER,
        "entry": FRESHER,
        "entry-level": FRESHER,
        "entry level": FRESHER,
        "graduate": FRESHER,
        "junior": JUNIOR,
        "jr": JUNIOR,
        "jr.": JUNIOR,
        "junior developer": JUNIOR,
        "middle": MIDDLE,
        "mid": MIDDLE,
        "mid-level": MIDDLE,
        "mid level": MIDDLE,
        "midlevel": MIDDLE,
        "intermediate": MIDDLE,
        "senior": SENIOR,
        "sr": SENIOR,
        "sr.": SENIOR,
        "lead": SENIOR,
        "senior developer": SENIOR,
    }

    @classmethod
    def canonical(cls, value: Optional[str]) -> str:
        key = " ".join(str(value or "").strip().lower().split())
        return cls.ALIASES.get(key, cls.BASELINE)


class DifficultyLevels:
    """난이도 레벨"""
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"

    ALL = [EASY, MEDIUM, HARD]
    DEFAULT = MEDIUM

    @classmethod
    def canonical(cls, value) -> str:
        if value is None or isinstance(value, bool):
            return cls.DEFAULT
        s = str(value).strip().lower()
        if s in cls.ALL:
            return s
        try:
            num = float(s)
        except ValueError:
            return cls.DEFAULT
        if num <= 2:
            return cls.EASY
        if num <= 3:
            return cls.MEDIUM
        return cls.HARD


class EstimatedTimes:
    """Default answer time in minutes"""
    BY_DIFFICULTY = {
        DifficultyLevels.EASY: 2,
        DifficultyLevels.MEDIUM: 3,
        DifficultyLevels.HARD: 5,
    }
    CODING_FACTOR = 2

    @classmethod
    def default_for(cls, difficulty: str, item_type: str) -> int:
        minutes = cls.BY_DIFFICULTY.get(difficulty, cls.BY_DIFFICULTY[DifficultyLevels.MEDIUM])
        if item_type == ItemTypes.CODING:
            minutes *= cls.CODING_FACTOR
        return minutes


class RequestLimits:
    MIN_COUNT = 1
    MAX_COUNT = 20


class GenerationNotes:
    SUCCESS = "success"
    PARTIAL = "partial"


class HTTPHeaders:
    """HTTP 헤더 상수"""
    REQUEST_ID = "X-Request-Id"
    AUTHORIZATION = "Authorization"
    CONTENT_TYPE = "Content-Type"
    BEARER_PREFIX = "Bearer "
    JSON_CONTENT = "application/json"


class Timeouts:
    """타임아웃 설정 (초)"""
    LLM_BATCH = 60
    LLM_SINGLE = 20
    CORPUS_API = 5
    REDIS = 3
