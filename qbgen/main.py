# qbgen/main.py
import logging
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response

from qbgen.core.settings import settings, validate_required_settings
from qbgen.core.logging import configure_logging
from qbgen.middleware.error_handler import setup_exception_handlers
from qbgen.middleware.request_context import RequestContextMiddleware
from qbgen.routes.generate import router as generate_router

access_logger = logging.getLogger("access")


def create_app() -> FastAPI:
    configure_logging(settings.LOG_LEVEL)
    missing = validate_required_settings()
    if missing:
        logging.getLogger("startup").warning("missing_settings", extra={"missing": missing})

    app = FastAPI(
        title=settings.SERVICE_NAME,
        version="1.0.0",
        docs_url=None if settings.is_production else "/docs",
        redoc_url=None,
    )

    # ---------- 미들웨어 ----------
    @app.middleware("http")
    async def access_log_middleware(request: Request, call_next):
        start = time.perf_counter()
        response: Response | None = None
        try:
            response = await call_next(request)
            return response
        finally:
            access_logger.info(
                "request_done",
                extra={
                    "trace_id": getattr(request.state, "trace_id", None),
                    "method": request.method,
                    "path": request.url.path,
                    "status": getattr(response, "status_code", None),
                    "latency_ms": int((time.perf_counter() - start) * 1000),
                },
            )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        max_age=600,
    )
    # 마지막에 추가한 미들웨어가 가장 바깥에서 실행된다
    app.add_middleware(RequestContextMiddleware)

    setup_exception_handlers(app)

    # ---------- 라우터 등록 ----------
    app.include_router(generate_router, prefix="/api")

    # ---------- 헬스 체크 ----------
    @app.get("/api/health")
    def health_check():
        return {"message": "OK"}

    return app


app = create_app()
