"""
서비스 레이어
Generation pipeline and its external collaborators.
"""
from qbgen.services.cache_service import (
    CacheService,
    get_cache_service
)
from qbgen.services.async_http_client import AsyncHttpClient
from qbgen.services.corpus_client import CorpusClient, get_corpus_client
from qbgen.services.llm_client import LLMClient
from qbgen.services.item_pipeline import aggregate_results, generate_items

__all__ = [
    # Cache
    "CacheService",
    "get_cache_service",

    # HTTP Clients
    "AsyncHttpClient",
    "CorpusClient",
    "get_corpus_client",

    # Generation
    "LLMClient",
    "generate_items",
    "aggregate_results",
]
