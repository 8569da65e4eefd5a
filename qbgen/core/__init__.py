"""
Core 모듈
설정, 상수, 예외 등 핵심 컴포넌트
"""
from qbgen.core.settings import settings, get_settings
from qbgen.core.constants import (
    RedisKeys,
    ErrorCodes,
    ErrorMessages,
    UpstreamReasons,
    ItemTypes,
    Levels,
    DifficultyLevels,
    EstimatedTimes,
    RequestLimits,
    GenerationNotes,
    HTTPHeaders,
    Timeouts
)
from qbgen.core.exceptions import (
    AppException,
    SpecValidationError,
    ExternalServiceError,
    UpstreamUnavailable,
    CorpusUnavailable,
    MalformedOutput,
    HardFailure
)

__all__ = [
    # Settings
    "settings",
    "get_settings",

    # Constants
    "RedisKeys",
    "ErrorCodes",
    "ErrorMessages",
    "UpstreamReasons",
    "ItemTypes",
    "Levels",
    "DifficultyLevels",
    "EstimatedTimes",
    "RequestLimits",
    "GenerationNotes",
    "HTTPHeaders",
    "Timeouts",

    # Exceptions
    "AppException",
    "SpecValidationError",
    "ExternalServiceError",
    "UpstreamUnavailable",
    "CorpusUnavailable",
    "MalformedOutput",
    "HardFailure",
]
