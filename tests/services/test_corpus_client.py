"""
CorpusClient 테스트
httpx.MockTransport 로 기존 문항 API 흉내
"""
import json
from unittest.mock import patch

import httpx
import pytest

from qbgen.core.exceptions import CorpusUnavailable
from qbgen.core.settings import TestConfig
from qbgen.services.async_http_client import AsyncHttpClient
from qbgen.services.cache_service import CacheService
from qbgen.services.corpus_client import CorpusClient


def _http(handler):
    return AsyncHttpClient(
        timeout=1.0,
        base_url="https://corpus.test",
        service="Question corpus",
        transport=httpx.MockTransport(handler),
    )


def _config(**overrides):
    values = {"CORPUS_API_BASE_URL": "https://corpus.test", "CORPUS_API_TOKEN": "tok"}
    values.update(overrides)
    return TestConfig(**values)


@pytest.mark.anyio
class TestFetchExistingStems:
    async def test_reads_stems_with_query_and_auth(self):
        seen = {}

        def handler(request: httpx.Request):
            seen["params"] = dict(request.url.params)
            seen["path"] = request.url.path
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json={"questions": [{"stem": "Q1"}, {"stem": " "}, {"stem": "Q2"}]})

        client = CorpusClient(http=_http(handler), config=_config())
        stems = await client.fetch_existing_stems(["Backend", "API"], 10)

        assert stems == ["Q1", "Q2"]
        assert seen["path"] == "/questions/stems"
        assert seen["params"] == {"fields": "Backend,API", "limit": "10"}
        assert seen["auth"] == "Bearer tok"

    async def test_plain_list_payload_limited(self):
        client = CorpusClient(
            http=_http(lambda r: httpx.Response(200, json=["a", "b", "c"])),
            config=_config(),
        )
        assert await client.fetch_existing_stems(["QA"], 2) == ["a", "b"]

    async def test_http_error_becomes_corpus_unavailable(self):
        client = CorpusClient(http=_http(lambda r: httpx.Response(503)), config=_config())

        with pytest.raises(CorpusUnavailable):
            await client.fetch_existing_stems(["QA"], 5)

    async def test_disabled_without_base_url(self):
        client = CorpusClient(config=_config(CORPUS_API_BASE_URL=None))
        assert client.enabled is False
        assert await client.fetch_existing_stems(["QA"], 5) == []

    async def test_cached_result_skips_http(self, mock_redis):
        mock_redis.get.return_value = json.dumps(["cached stem"])

        def handler(request):
            raise AssertionError("HTTP should not be called on a cache hit")

        with patch("qbgen.services.cache_service.redis.Redis", return_value=mock_redis):
            cache = CacheService()
        client = CorpusClient(http=_http(handler), cache=cache, config=_config())

        assert await client.fetch_existing_stems(["Backend"], 5) == ["cached stem"]

    async def test_cache_miss_stores_result(self, mock_redis):
        with patch("qbgen.services.cache_service.redis.Redis", return_value=mock_redis):
            cache = CacheService(default_ttl=60)
        client = CorpusClient(
            http=_http(lambda r: httpx.Response(200, json={"stems": ["fresh"]})),
            cache=cache,
            config=_config(),
        )

        assert await client.fetch_existing_stems(["Backend"], 5) == ["fresh"]
        key, ttl, value = mock_redis.setex.call_args.args
        assert key == "cache:stems:backend:5"
        assert ttl == 60
        assert json.loads(value) == ["fresh"]
