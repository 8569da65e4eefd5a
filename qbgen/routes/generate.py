# qbgen/routes/generate.py
import logging
from typing import AsyncIterator

from fastapi import APIRouter, Body, Depends, Request

from qbgen.core.settings import BaseConfig, settings
from qbgen.schemas.generation import ErrorResponse, GenerationRequest
from qbgen.services.corpus_client import CorpusClient, get_corpus_client
from qbgen.services.item_pipeline import generate_items
from qbgen.services.llm_client import LLMClient

router = APIRouter()
log = logging.getLogger("routes.generate")


# 테스트에서 app.dependency_overrides 로 교체
def get_llm_client() -> LLMClient:
    return LLMClient()


async def get_corpus() -> AsyncIterator[CorpusClient]:
    # 요청마다 만든 httpx 커넥션 풀은 응답 후 닫는다
    corpus = get_corpus_client()
    try:
        yield corpus
    finally:
        await corpus.close()


def get_config() -> BaseConfig:
    return settings


@router.post(
    "/questions/ai-generate",
    response_model=None,
    responses={400: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
async def ai_generate(
    request: Request,
    payload: GenerationRequest = Body(...),
    client=Depends(get_llm_client),
    corpus=Depends(get_corpus),
    config: BaseConfig = Depends(get_config),
):
    """
    Generate interview questions for the requested fields and level.
    200 carries items plus a "questions" alias; 400 and 502 come from the
    exception handlers.
    """
    trace_id = getattr(request.state, "trace_id", None)
    result = await generate_items(
        payload,
        client=client,
        corpus=corpus,
        settings=config,
        trace_id=trace_id,
    )
    if result.diagnostics:
        log.info(
            "generation_diagnostics",
            extra={"trace_id": trace_id, "note": result.note, "diagnostics": result.diagnostics},
        )
    return result.to_response()
