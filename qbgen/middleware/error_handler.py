"""
전역 에러 핸들러
Every error body has the shape {error, details?, code, trace_id}.
"""
import logging
import traceback

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError

from qbgen.core.constants import ErrorCodes, ErrorMessages, HTTPHeaders
from qbgen.core.exceptions import AppException
from qbgen.core.settings import settings

logger = logging.getLogger("middleware.errors")


def create_error_response(
    code: str,
    error: str,
    status_code: int = 500,
    trace_id: str = None,
    details=None
) -> JSONResponse:
    content = {"error": error, "code": code}
    if details:
        content["details"] = details
    if trace_id:
        content["trace_id"] = trace_id

    headers = {HTTPHeaders.REQUEST_ID: trace_id} if trace_id else None
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def setup_exception_handlers(app: FastAPI) -> None:
    """
    애플리케이션에 전역 예외 핸들러 등록
    """

    @app.exception_handler(AppException)
    async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
        trace_id = getattr(request.state, "trace_id", None)

        # 4xx는 warning, 5xx는 error
        log_level = logging.WARNING if exc.status_code < 500 else logging.ERROR
        logger.log(
            log_level,
            exc.code,
            extra={
                "trace_id": trace_id,
                "error": exc.message,
                "status_code": exc.status_code,
                "details": exc.details,
                "path": str(request.url.path),
                "method": request.method,
            }
        )
        return create_error_response(
            exc.code, exc.message, exc.status_code, trace_id, exc.public_details()
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """Malformed request bodies are configuration errors too (400)."""
        trace_id = getattr(request.state, "trace_id", None)
        problems = [
            f"{'.'.join(str(loc) for loc in error['loc'] if loc != 'body')}: {error['msg']}"
            for error in exc.errors()
        ]
        logger.warning("request_validation_error", extra={"trace_id": trace_id, "problems": problems})
        return create_error_response(
            ErrorCodes.SPEC_INVALID,
            ErrorMessages.INVALID_CONFIGURATION,
            status.HTTP_400_BAD_REQUEST,
            trace_id,
            problems,
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        예상치 못한 일반 예외 처리
        """
        trace_id = getattr(request.state, "trace_id", None)
        logger.error(
            "unhandled_exception",
            extra={
                "trace_id": trace_id,
                "error_type": type(exc).__name__,
                "error_message": str(exc),
                "path": str(request.url.path),
                "method": request.method,
            },
            exc_info=True
        )

        # 개발 환경에서만 스택트레이스 노출
        details = None
        if settings.DEBUG:
            details = {"exception": f"{type(exc).__name__}: {exc}", "stack_trace": traceback.format_exc()}

        return create_error_response(
            ErrorCodes.INTERNAL_ERROR,
            ErrorMessages.INTERNAL_ERROR,
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            trace_id,
            details,
        )
