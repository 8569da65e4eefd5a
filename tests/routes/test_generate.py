"""
생성 라우트 테스트
POST /api/questions/ai-generate
"""
import json

import pytest

from conftest import StubClient, StubCorpus, batch_text, make_item, truncated_batch

URL = "/api/questions/ai-generate"


def _items(n):
    return [make_item(f"Route Q{i}") for i in range(1, n + 1)]


class TestGenerateSuccess:
    """정상 생성"""

    def test_success_body(self, client, override_generation, backend_request):
        stub = override_generation(StubClient(batch_text(_items(3))), corpus=StubCorpus())

        response = client.post(URL, json=backend_request)

        assert response.status_code == 200
        data = response.json()
        assert data["generated"] == 3
        assert data["requested"] == 3
        assert data["note"] == "success"
        assert data["questions"] == data["items"]
        assert data["context"]["fields"] == ["Backend"]
        assert data["items"][0]["estimatedTime"] == 3
        assert "isCorrect" in data["items"][0]["options"][0]
        assert stub.call_count == 1

    def test_request_id_generated(self, client, override_generation, backend_request):
        override_generation(StubClient(batch_text(_items(3))))

        response = client.post(URL, json=backend_request)

        assert response.headers.get("X-Request-Id")

    def test_request_id_echoed(self, client, override_generation, backend_request):
        stub = override_generation(StubClient(batch_text(_items(3))))

        response = client.post(URL, json=backend_request, headers={"X-Request-Id": "req-123"})

        assert response.headers["X-Request-Id"] == "req-123"
        assert stub.calls[0]["trace_id"] == "req-123"

    def test_partial_note(self, client, override_generation, backend_request):
        override_generation(StubClient(truncated_batch(_items(3), 2)))

        response = client.post(URL, json=backend_request)

        assert response.status_code == 200
        data = response.json()
        assert data["generated"] == 2
        assert data["note"] == "partial"
        assert "diagnostics" not in data

    def test_legacy_single_field(self, client, override_generation):
        override_generation(StubClient(json.dumps([make_item("Legacy")])))

        response = client.post(URL, json={"field": "QA", "questionCount": 1, "questionType": "multiple_choice"})

        assert response.status_code == 200
        assert response.json()["context"]["fields"] == ["QA"]


class TestGenerateErrors:
    """에러 응답"""

    @pytest.mark.parametrize("change", [{"questionCount": 25}, {"fields": []}, {"questionType": "essay_marathon"}])
    def test_invalid_configuration(self, client, override_generation, backend_request, change):
        stub = override_generation(StubClient(batch_text(_items(3))))
        backend_request.update(change)

        response = client.post(URL, json=backend_request)

        assert response.status_code == 400
        data = response.json()
        assert data["error"] == "Invalid configuration parameters"
        assert data["code"] == "SPEC_INVALID"
        assert isinstance(data["details"], list) and data["details"]
        assert stub.call_count == 0

    def test_wrong_wire_type(self, client, override_generation, backend_request):
        stub = override_generation(StubClient())
        backend_request["questionCount"] = "three"

        response = client.post(URL, json=backend_request)

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid configuration parameters"
        assert stub.call_count == 0

    def test_hard_failure(self, client, override_generation, backend_request):
        override_generation(StubClient("Sorry, I cannot help with that."))

        response = client.post(URL, json=backend_request, headers={"X-Request-Id": "req-502"})

        assert response.status_code == 502
        data = response.json()
        assert data["code"] == "GENERATION_FAILED"
        assert isinstance(data["details"], str)
        assert "backfill slot 2" in data["details"]
        assert data["trace_id"] == "req-502"


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json() == {"message": "OK"}


class ClosingCorpus(StubCorpus):
    def __init__(self, stems=None):
        super().__init__(stems)
        self.closed = False

    async def close(self):
        self.closed = True


class TestCorpusLifecycle:
    """요청마다 만든 코퍼스 클라이언트는 응답 후 닫힌다"""

    def test_corpus_closed_after_request(self, app, client, override_generation, backend_request, monkeypatch):
        from qbgen.routes import generate as generate_route

        corpus = ClosingCorpus(["Existing stem"])
        monkeypatch.setattr(generate_route, "get_corpus_client", lambda: corpus)
        override_generation(StubClient(batch_text(_items(3))))
        del app.dependency_overrides[generate_route.get_corpus]

        response = client.post(URL, json=backend_request)

        assert response.status_code == 200
        assert corpus.calls
        assert corpus.closed is True
