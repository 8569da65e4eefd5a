"""
비동기 HTTP 클라이언트
httpx wrapper used by the question corpus client.
"""
import logging
from typing import Any, Dict, Optional

import httpx

from qbgen.core.constants import Timeouts
from qbgen.core.exceptions import ExternalServiceError

logger = logging.getLogger("service.http")


class AsyncHttpClient:
    """
    httpx 기반 비동기 HTTP 클라이언트
    Transport and status failures surface as ExternalServiceError.
    """

    def __init__(
        self,
        timeout: float = Timeouts.CORPUS_API,
        base_url: Optional[str] = None,
        service: str = "HTTP",
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.timeout = timeout
        self.base_url = base_url
        self.service = service
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """클라이언트 인스턴스 반환 (lazy initialization)"""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                base_url=self.base_url or "",
                transport=self._transport
            )
        return self._client

    async def close(self):
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def get(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        **kwargs
    ) -> Any:
        """
        GET 요청

        Returns:
            JSON 응답
        """
        client = await self._get_client()
        try:
            response = await client.get(url, headers=headers, params=params, **kwargs)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            logger.error("http_status_error", extra={"status": e.response.status_code, "url": url})
            raise ExternalServiceError(
                service=self.service,
                message=f"HTTP {e.response.status_code}",
                original_error=e
            )
        except httpx.RequestError as e:
            logger.error("http_request_error", extra={"url": url, "error": str(e)})
            raise ExternalServiceError(
                service=self.service,
                message="요청 실패",
                original_error=e
            )
        except ValueError as e:
            raise ExternalServiceError(
                service=self.service,
                message="invalid JSON body",
                original_error=e
            )
