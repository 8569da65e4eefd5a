"""
테스트 공통 설정 및 Fixtures
pytest의 conftest.py는 모든 테스트에서 공유되는 fixture를 정의
"""
import os
import sys
import json
import pytest
from typing import Any, Dict, Generator, List, Optional
from unittest.mock import Mock, patch

# 설정 싱글톤이 import 시점에 만들어지므로 모듈 로드 시 바로 지정
os.environ["ENV"] = "test"
os.environ["REDIS_DB"] = "1"  # 테스트용 별도 DB
os.environ.setdefault("OPENAI_API_KEY", "sk-test-not-a-real-key-000000")

# 프로젝트 루트를 path에 추가
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from fastapi.testclient import TestClient

from qbgen.core.exceptions import UpstreamUnavailable
from qbgen.core.settings import TestConfig
from qbgen.services.spec_resolver import resolve_spec


# ===========================================
# 생성 클라이언트 스텁
# ===========================================

class StubClient:
    """
    Scripted stand-in for LLMClient.
    Each complete() pops the next response; exceptions are raised as-is.
    Runs dry → UpstreamUnavailable.
    """

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls: List[Dict[str, Any]] = []

    async def complete(self, system: str, user: str, *, timeout_s: Optional[float] = None, trace_id: Optional[str] = None) -> str:
        self.calls.append({"system": system, "user": user, "timeout_s": timeout_s, "trace_id": trace_id})
        if not self.responses:
            raise UpstreamUnavailable("stub", reason="unavailable")
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response

    @property
    def call_count(self) -> int:
        return len(self.calls)


class StubCorpus:
    def __init__(self, stems=None, error: Optional[Exception] = None):
        self.stems = list(stems or [])
        self.error = error
        self.calls = []

    async def fetch_existing_stems(self, fields, limit):
        self.calls.append((list(fields), limit))
        if self.error:
            raise self.error
        return self.stems[:limit]


def make_item(stem: str, **overrides) -> Dict[str, Any]:
    """Well-formed multiple_choice item"""
    item = {
        "stem": stem,
        "type": "multiple_choice",
        "level": "middle",
        "difficulty": "medium",
        "category": "Backend",
        "fields": ["Backend"],
        "topics": ["APIs"],
        "skills": ["design"],
        "explanation": f"Why: {stem}",
        "options": [
            {"text": "A", "isCorrect": True},
            {"text": "B", "isCorrect": True},
            {"text": "C", "isCorrect": False},
            {"text": "D", "isCorrect": False},
        ],
        "estimatedTime": 3,
        "tags": ["backend"],
    }
    item.update(overrides)
    return item


def batch_text(items: List[Dict[str, Any]]) -> str:
    return json.dumps({"questions": items}, ensure_ascii=False, indent=2)


def truncated_batch(items: List[Dict[str, Any]], keep: int) -> str:
    """Batch text cut off in the middle of item keep+1"""
    body = ",\n".join(json.dumps(i, ensure_ascii=False) for i in items[:keep])
    return '{"questions": [\n' + body + ',\n{"stem": "This question was cut off mid-sent'


@pytest.fixture
def stub_client_factory():
    return StubClient


@pytest.fixture
def stub_corpus_factory():
    return StubCorpus


# ===========================================
# 스펙 / 설정
# ===========================================

@pytest.fixture
def test_settings() -> TestConfig:
    return TestConfig()


@pytest.fixture
def backend_request() -> Dict[str, Any]:
    return {
        "fields": ["Backend"],
        "level": "Middle",
        "difficulty": "medium",
        "questionType": "multiple_choice",
        "questionCount": 3,
    }


@pytest.fixture
def backend_spec(backend_request):
    return resolve_spec(backend_request)


# ===========================================
# FastAPI 클라이언트
# ===========================================

@pytest.fixture(scope="module")
def app():
    """FastAPI 애플리케이션 인스턴스"""
    from qbgen.main import app as fastapi_app
    return fastapi_app


@pytest.fixture(scope="module")
def client(app) -> Generator:
    """테스트 클라이언트"""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def override_generation(app):
    """
    라우트 의존성 교체
    사용법: override_generation(StubClient(...), corpus=StubCorpus(...))
    """
    from qbgen.routes.generate import get_config, get_corpus, get_llm_client

    def _apply(stub, corpus=None):
        app.dependency_overrides[get_llm_client] = lambda: stub
        app.dependency_overrides[get_corpus] = lambda: corpus
        app.dependency_overrides[get_config] = lambda: TestConfig()
        return stub

    yield _apply
    app.dependency_overrides.clear()


# ===========================================
# Redis 관련 Fixtures
# ===========================================

@pytest.fixture
def mock_redis():
    """Redis 클라이언트 모킹"""
    with patch("redis.Redis") as mock:
        redis_instance = Mock()
        redis_instance.get.return_value = None
        redis_instance.setex.return_value = True
        redis_instance.delete.return_value = 1
        redis_instance.ping.return_value = True
        mock.return_value = redis_instance
        yield redis_instance


# ===========================================
# 유틸리티 Fixtures
# ===========================================

@pytest.fixture
def capture_logs():
    """로그 캡처"""
    import logging

    class LogCapture(logging.Handler):
        def __init__(self):
            super().__init__()
            self.records = []

        def emit(self, record):
            self.records.append(record)

        def get_messages(self):
            return [r.getMessage() for r in self.records]

    handler = LogCapture()
    logger = logging.getLogger()
    logger.addHandler(handler)
    yield handler
    logger.removeHandler(handler)


# ===========================================
# 비동기 테스트 지원
# ===========================================

@pytest.fixture
def anyio_backend():
    """anyio 백엔드 설정"""
    return "asyncio"
