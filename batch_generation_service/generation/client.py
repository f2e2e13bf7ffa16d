"""Generation API client."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, Optional, Protocol, Sequence

import httpx

from ..errors import GenerationError

if TYPE_CHECKING:
    from ..jobs.models import JobResult

logger = logging.getLogger(__name__)


class GenerationClient(Protocol):
    async def generate(self, payload: Dict[str, Any]) -> Any:
        ...


class HistorySink(Protocol):
    async def record(self, result: JobResult) -> None:
        ...


class ExportSink(Protocol):
    async def export(self, bank_id: str, results: Sequence[JobResult], tags: Sequence[str]) -> None:
        ...


class HttpGenerationClient:
    """POST each config payload as JSON and return the decoded response body."""

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 120.0,
        api_key: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.url = url
        self.api_key = api_key
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def generate(self, payload: Dict[str, Any]) -> Any:
        logger.debug("Requesting generation", extra={"url": self.url})
        response = await self._client.post(self.url, json=payload, headers=self._headers())
        if response.is_error:
            raise GenerationError(
                f"Generation API returned {response.status_code}: {response.text[:500]}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise GenerationError("Generation API returned a non-JSON body", status_code=response.status_code) from exc

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "HttpGenerationClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()


__all__ = ["ExportSink", "GenerationClient", "HistorySink", "HttpGenerationClient"]
