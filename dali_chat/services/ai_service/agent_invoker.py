"""
Resilient invocation of the Maestro agent endpoint.
"""

import time
from typing import Optional

import httpx

from dali_chat.infrastructure.external.http_client import build_headers, create_async_client
from dali_chat.infrastructure.monitoring.logging_service import get_logger, log_execution_time
from dali_chat.infrastructure.resilience.retry_service import (
    RetryService,
    RetryStatus,
    UpstreamHTTPError,
    get_retry_service
)
from dali_chat.services.ai_service.fallback_service import AgentFallbackService, get_fallback_service
from dali_chat.services.ai_service.models import AgentRequest, NormalizedAgentResult
from dali_chat.services.ai_service.response_normalizer import normalize_agent_response


class AgentHTTPError(UpstreamHTTPError):
    """The agent endpoint answered with a non-2xx status"""
    pass


class AgentInvoker:
    """
    Calls the agent with retries and always returns a NormalizedAgentResult.

    Agent failures never raise: once retries are exhausted, or on a failure
    that is not worth retrying, the result carries a user-facing error text
    and failed=True.
    """

    def __init__(
        self,
        endpoint_url: str,
        client: Optional[httpx.AsyncClient] = None,
        retry_service: Optional[RetryService] = None,
        fallback_service: Optional[AgentFallbackService] = None,
        attempt_timeout: float = 240.0,
        max_table_rows: int = 100,
        max_raw_text_length: int = 10000
    ):
        self.endpoint_url = endpoint_url
        self.retry_service = retry_service or get_retry_service()
        self.fallback_service = fallback_service or get_fallback_service()
        self.attempt_timeout = attempt_timeout
        self.max_table_rows = max_table_rows
        self.max_raw_text_length = max_raw_text_length
        self._http_client = client
        self._owns_client = client is None
        self.logger = get_logger(__name__)

    async def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = create_async_client(timeout=self.attempt_timeout)
        return self._http_client

    async def aclose(self):
        if self._http_client is not None and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None

    async def _post_once(self, request: AgentRequest) -> str:
        client = await self._get_http_client()
        response = await client.post(
            self.endpoint_url,
            json=request.to_payload(),
            headers=build_headers(request.auth_token, warn_if_missing=False),
            timeout=self.attempt_timeout
        )
        if not response.is_success:
            detail = response.text[:200]
            self.logger.warning(f"Agent returned HTTP {response.status_code}: {detail}")
            raise AgentHTTPError(response.status_code, detail)
        return response.text

    def _on_retry(self, attempt: int, error: BaseException, status: RetryStatus):
        self.logger.info(status.get_status_message())

    async def invoke(self, request: AgentRequest) -> NormalizedAgentResult:
        """
        Run one agent turn

        Args:
            request: Who is asking, in which conversation, and the question

        Returns:
            The normalized reply, or a failure result with user-facing text
        """
        started_at = time.monotonic()
        try:
            with log_execution_time(self.logger, "agent invocation", conversation_id=request.conversation_id):
                body = await self.retry_service.execute(
                    lambda: self._post_once(request),
                    on_retry=self._on_retry
                )
        except Exception as e:
            return NormalizedAgentResult(
                text=self.fallback_service.describe_failure(e),
                processing_time_ms=max(0, int((time.monotonic() - started_at) * 1000)),
                failed=True
            )

        return normalize_agent_response(
            body,
            started_at,
            max_rows=self.max_table_rows,
            max_text=self.max_raw_text_length
        )
