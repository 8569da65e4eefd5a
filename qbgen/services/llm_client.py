# qbgen/services/llm_client.py
from __future__ import annotations

import asyncio
import functools
import logging
from typing import Callable, Optional

import openai
from google.api_core import exceptions as google_exceptions

from qbgen.core.constants import UpstreamReasons
from qbgen.core.exceptions import MalformedOutput, UpstreamUnavailable
from qbgen.core.llm_config import ChatCompletion, get_chat_completion
from qbgen.core.settings import settings

logger = logging.getLogger("service.llm")

DEFAULT_TIMEOUT_S = 30

# SDK 예외 → UpstreamUnavailable.reason
_OPENAI_REASONS = (
    (openai.AuthenticationError, UpstreamReasons.MALFORMED_CREDENTIALS),
    (openai.PermissionDeniedError, UpstreamReasons.MALFORMED_CREDENTIALS),
    (openai.RateLimitError, UpstreamReasons.RATE_LIMITED),
    (openai.APITimeoutError, UpstreamReasons.TIMEOUT),
    (openai.APIError, UpstreamReasons.UNAVAILABLE),
    # 클라이언트 생성 단계 오류 (API 키 누락 등)
    (openai.OpenAIError, UpstreamReasons.MALFORMED_CREDENTIALS),
)

_GOOGLE_REASONS = (
    (google_exceptions.Unauthenticated, UpstreamReasons.MALFORMED_CREDENTIALS),
    (google_exceptions.PermissionDenied, UpstreamReasons.MALFORMED_CREDENTIALS),
    (google_exceptions.ResourceExhausted, UpstreamReasons.RATE_LIMITED),
    (google_exceptions.TooManyRequests, UpstreamReasons.RATE_LIMITED),
    (google_exceptions.DeadlineExceeded, UpstreamReasons.TIMEOUT),
    (google_exceptions.GoogleAPIError, UpstreamReasons.UNAVAILABLE),
)


def classify_error(exc: BaseException) -> str:
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return UpstreamReasons.TIMEOUT
    for exc_type, reason in _OPENAI_REASONS + _GOOGLE_REASONS:
        if isinstance(exc, exc_type):
            return reason
    return UpstreamReasons.UNAVAILABLE


class LLMClient:
    """
    Async facade over the provider chat_completion.

    - one call per complete(); retries are the caller's business (backfill)
    - the sync SDK call runs in the default executor, asyncio.wait_for bounds it
    - every provider failure becomes UpstreamUnavailable, blank text MalformedOutput
    """

    def __init__(
        self,
        completion: Optional[ChatCompletion] = None,
        *,
        provider: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ):
        self._completion = completion
        self.provider = provider or settings.LLM_PROVIDER
        self.temperature = temperature
        self.max_tokens = max_tokens

    def _resolve(self) -> Callable[..., str]:
        if self._completion is None:
            self._completion = get_chat_completion()
        return self._completion

    async def complete(
        self,
        system: str,
        user: str,
        *,
        timeout_s: Optional[float] = None,
        trace_id: Optional[str] = None,
    ) -> str:
        timeout_s = timeout_s if timeout_s is not None else DEFAULT_TIMEOUT_S
        messages = [
            {"role": "system", "content": system},
            {"role": "user", "content": user},
        ]
        loop = asyncio.get_running_loop()
        try:
            fn = self._resolve()
            call = functools.partial(
                fn,
                messages,
                trace_id=trace_id,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                timeout_s=timeout_s,
            )
            text = await asyncio.wait_for(loop.run_in_executor(None, call), timeout=timeout_s)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            reason = classify_error(e)
            logger.warning(
                "llm_call_failed",
                extra={"trace_id": trace_id, "provider": self.provider, "reason": reason, "error": str(e)},
            )
            raise UpstreamUnavailable(self.provider, reason=reason, original_error=e) from e

        if not text or not text.strip():
            logger.warning("llm_blank_output", extra={"trace_id": trace_id, "provider": self.provider})
            raise MalformedOutput("Model returned an empty response")
        return text
