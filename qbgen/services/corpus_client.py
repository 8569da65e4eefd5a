# qbgen/services/corpus_client.py
"""
Read-only access to stems of questions already stored for a field set.
Used as prompt dedup context and for advisory similarity metadata.
"""
from __future__ import annotations

import logging
from typing import Any, List, Optional, Sequence

from qbgen.core.constants import HTTPHeaders, RedisKeys
from qbgen.core.exceptions import CorpusUnavailable, ExternalServiceError
from qbgen.core.settings import BaseConfig, settings as default_settings
from qbgen.services.async_http_client import AsyncHttpClient
from qbgen.services.cache_service import CacheService, get_cache_service

logger = logging.getLogger("service.corpus")

STEMS_ENDPOINT = "/questions/stems"


def _stems_from_payload(payload: Any) -> List[str]:
    """["..."], {"stems": [...]} 또는 {"questions": [{"stem": ...}]} 허용"""
    if isinstance(payload, dict):
        payload = payload.get("stems", payload.get("questions", payload.get("items", [])))
    if not isinstance(payload, list):
        return []
    out: List[str] = []
    for entry in payload:
        if isinstance(entry, dict):
            entry = entry.get("stem")
        if isinstance(entry, str) and entry.strip():
            out.append(entry.strip())
    return out


class CorpusClient:
    def __init__(
        self,
        http: Optional[AsyncHttpClient] = None,
        cache: Optional[CacheService] = None,
        config: Optional[BaseConfig] = None,
    ):
        self.config = config or default_settings
        base_url = self.config.CORPUS_API_BASE_URL
        if http is None and base_url:
            http = AsyncHttpClient(
                timeout=self.config.corpus_timeout_s,
                base_url=base_url.rstrip("/"),
                service="Question corpus",
            )
        self.http = http
        self.cache = cache

    @property
    def enabled(self) -> bool:
        return self.http is not None

    def _headers(self):
        if not self.config.CORPUS_API_TOKEN:
            return None
        return {HTTPHeaders.AUTHORIZATION: f"{HTTPHeaders.BEARER_PREFIX}{self.config.CORPUS_API_TOKEN}"}

    async def _fetch(self, fields: Sequence[str], limit: int) -> List[str]:
        try:
            payload = await self.http.get(
                STEMS_ENDPOINT,
                headers=self._headers(),
                params={"fields": ",".join(fields), "limit": limit},
            )
        except ExternalServiceError as e:
            raise CorpusUnavailable(message=e.message, original_error=e) from e
        return _stems_from_payload(payload)[:limit]

    async def fetch_existing_stems(self, fields: Sequence[str], limit: int) -> List[str]:
        """
        Up to `limit` stems for the given fields, newest first as the API returns them.

        Raises:
            CorpusUnavailable: the corpus API failed (callers treat this as an empty sample)
        """
        if not self.enabled or limit <= 0:
            return []

        if self.cache is None:
            return await self._fetch(fields, limit)

        key = RedisKeys.existing_stems(",".join(sorted(f.lower() for f in fields)), limit)
        return await self.cache.get_or_set_async(key, lambda: self._fetch(fields, limit))

    async def close(self):
        if self.http is not None:
            await self.http.close()


def get_corpus_client(config: Optional[BaseConfig] = None) -> CorpusClient:
    return CorpusClient(cache=get_cache_service(), config=config)
