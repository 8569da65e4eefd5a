"""
커스텀 예외 클래스 정의
Exception hierarchy shared by the generation pipeline and the HTTP layer.
"""
from typing import Any, Dict, List, Optional
from fastapi import status

from qbgen.core.constants import ErrorCodes, ErrorMessages, UpstreamReasons


class AppException(Exception):
    """
    기본 애플리케이션 예외
    모든 커스텀 예외의 베이스 클래스
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)

    def public_details(self) -> Any:
        """Value rendered as "details" in HTTP error bodies"""
        return self.details or None


# ===========================================
# 검증 관련 예외
# ===========================================

class SpecValidationError(AppException):
    """The caller's generation request is malformed. Raised before any model call."""

    def __init__(
        self,
        message: str = ErrorMessages.INVALID_CONFIGURATION,
        problems: Optional[List[str]] = None
    ):
        self.problems = list(problems or [])
        super().__init__(
            code=ErrorCodes.SPEC_INVALID,
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"problems": self.problems} if self.problems else None
        )

    def public_details(self) -> Any:
        return self.problems


# ===========================================
# 외부 서비스 관련 예외
# ===========================================

class ExternalServiceError(AppException):
    """외부 서비스 호출 실패"""

    def __init__(
        self,
        service: str,
        message: str,
        original_error: Optional[Exception] = None,
        code: str = ErrorCodes.EXTERNAL_SERVICE_ERROR
    ):
        msg = f"{service} service error: {message}"
        details = {"service": service}
        if original_error:
            details["original_error"] = str(original_error)

        super().__init__(
            code=code,
            message=msg,
            status_code=status.HTTP_502_BAD_GATEWAY,
            details=details
        )


class UpstreamUnavailable(ExternalServiceError):
    """Generation backend failed at transport, auth or rate-limit level"""

    def __init__(
        self,
        provider: str,
        reason: str = UpstreamReasons.UNAVAILABLE,
        original_error: Optional[Exception] = None
    ):
        self.reason = reason
        super().__init__(
            service=f"LLM ({provider})",
            message=reason,
            original_error=original_error,
            code=ErrorCodes.UPSTREAM_UNAVAILABLE
        )
        self.details["reason"] = reason


class CorpusUnavailable(ExternalServiceError):
    """Existing-question sample could not be read"""

    def __init__(self, message: str = "sample read failed", original_error: Optional[Exception] = None):
        super().__init__(service="Question corpus", message=message, original_error=original_error)


# ===========================================
# 비즈니스 로직 예외
# ===========================================

class MalformedOutput(AppException):
    """Model returned text that could not be turned into items"""

    def __init__(self, message: str = ErrorMessages.MALFORMED_OUTPUT, snippet: Optional[str] = None):
        details = {}
        if snippet:
            details["snippet"] = snippet[:300]
        super().__init__(
            code=ErrorCodes.MALFORMED_OUTPUT,
            message=message,
            status_code=status.HTTP_502_BAD_GATEWAY,
            details=details
        )


class HardFailure(AppException):
    """Zero items after the batch call and the full backfill"""

    def __init__(
        self,
        message: str = ErrorMessages.NO_ITEMS_GENERATED,
        last_error: Optional[str] = None,
        requested: Optional[int] = None
    ):
        details: Dict[str, Any] = {}
        if last_error:
            details["last_error"] = last_error
        if requested is not None:
            details["requested"] = requested

        super().__init__(
            code=ErrorCodes.GENERATION_FAILED,
            message=message,
            status_code=status.HTTP_502_BAD_GATEWAY,
            details=details
        )
        self.last_error = last_error

    def public_details(self) -> Any:
        return self.last_error
