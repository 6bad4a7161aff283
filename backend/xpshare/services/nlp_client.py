"""HTTP client for the external query understanding service.

The service turns a natural language query ("UFO Sichtungen am Bodensee im
Sommer") into structured filters. It is an opaque collaborator: this module
only handles transport, retries and response validation.
"""

from typing import Optional, Protocol

import httpx
import structlog
from pydantic import ValidationError as PydanticValidationError

from xpshare.config import settings
from xpshare.core.exceptions import UpstreamError
from xpshare.core.retry import http_retry
from xpshare.schemas.search import QueryUnderstanding

logger = structlog.get_logger(__name__)


class QueryUnderstander(Protocol):
    """Anything that can turn free text into a QueryUnderstanding."""

    async def understand(self, query: str, language: Optional[str] = None) -> QueryUnderstanding:
        ...


class NlpSearchClient:
    """Calls ``POST {NLP_SEARCH_URL}`` with ``{"query", "language"}``.

    Expects ``{"understood": {...}}`` back.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 20.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport
        self.logger = logger.bind(service="nlp_client")

    @http_retry
    async def _post(self, payload: dict) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            return await client.post(self.base_url, json=payload, headers=headers)

    async def understand(self, query: str, language: Optional[str] = None) -> QueryUnderstanding:
        """Ask the service for a structured reading of ``query``.

        Raises:
            UpstreamError: transport failure after retries, non-2xx status or
                a malformed body
        """
        try:
            response = await self._post({"query": query, "language": language})
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as e:
            self.logger.error("nlp_request_failed", query=query, error=str(e))
            raise UpstreamError("Query understanding", str(e)) from e
        except ValueError as e:
            self.logger.error("nlp_response_not_json", query=query)
            raise UpstreamError("Query understanding", "response is not JSON") from e

        try:
            understood = QueryUnderstanding.model_validate(body.get("understood", body))
        except (PydanticValidationError, AttributeError) as e:
            self.logger.error("nlp_response_invalid", query=query, error=str(e))
            raise UpstreamError("Query understanding", "malformed understanding") from e

        self.logger.info(
            "nlp_query_understood",
            query=query,
            keywords=understood.keywords,
            categories=understood.categories,
        )
        return understood


def get_query_understander() -> Optional[QueryUnderstander]:
    """FastAPI dependency; None when no NLP service is configured."""
    if not settings.NLP_SEARCH_URL:
        return None
    return NlpSearchClient(
        settings.NLP_SEARCH_URL,
        api_key=settings.NLP_API_KEY,
        timeout=settings.NLP_TIMEOUT_SECONDS,
    )
