"""
Base Connector

Abstract base class for document source connectors.
Every source exposes the same two operations, search and fetch, and
converts its native payloads into SearchResult / FetchedDocument.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

import httpx

from ..common.errors import SourceError
from ..common.events import StageEvent


class SourceKind(str, Enum):
    """The closed set of supported document sources"""
    CONFLUENCE = "confluence"
    NOTION = "notion"
    BACKLOG = "backlog"


@dataclass(frozen=True)
class SearchResult:
    """
    One search hit, normalized across sources.

    ``tenant`` is set only for multi-tenant sources (Backlog space id) so
    that fetch and URL construction go to the right tenant.
    """
    source: SourceKind
    external_id: str
    title: str
    url: str
    tenant: Optional[str] = None


@dataclass
class FetchedDocument:
    """
    Full content of the selected search result.

    Either ``content`` or ``error`` is set. Empty content is treated as
    absent downstream. ``found`` is False when there was no search result
    to fetch at all.
    """
    source: str
    external_id: str
    title: str
    url: str
    content: Optional[str] = None
    error: Optional[str] = None
    events: List[StageEvent] = field(default_factory=list)
    found: bool = True

    @property
    def has_content(self) -> bool:
        return bool(self.content and self.content.strip())

    @classmethod
    def failed(cls, result: SearchResult, error: str) -> "FetchedDocument":
        """Build a content-less document that carries an error"""
        return cls(
            source=result.source.value,
            external_id=result.external_id,
            title=result.title,
            url=result.url,
            content=None,
            error=error,
        )

    @classmethod
    def not_found(cls, error: str) -> "FetchedDocument":
        """Placeholder document for a run whose search found nothing"""
        return cls(source="", external_id="", title="", url="", error=error, found=False)


class BaseConnector(ABC):
    """
    Abstract base class for source connectors.

    Each connector must implement:
    - is_configured: whether credentials are present
    - search: query the source, returning normalized results
    - fetch: load one result's full content, never raising

    ``search`` raises SourceError on HTTP or transport failures; the
    aggregator isolates those per source.
    """

    kind: SourceKind

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        """
        Initialize connector.

        Args:
            http_client: Shared async client (injected in tests). When None,
                a short-lived client is opened per request.
            timeout: Per-request timeout in seconds
        """
        self._http = http_client
        self._timeout = timeout

    @property
    @abstractmethod
    def is_configured(self) -> bool:
        """True when the required credentials are present"""
        pass

    @abstractmethod
    async def search(self, query: str) -> List[SearchResult]:
        """
        Search the source.

        Args:
            query: Source-specific query (already translated)

        Returns:
            Results in source API order
        """
        pass

    @abstractmethod
    async def fetch(self, result: SearchResult) -> FetchedDocument:
        """
        Fetch and normalize one result's content.

        Args:
            result: A result previously returned by ``search``

        Returns:
            FetchedDocument with content, or with error set
        """
        pass

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Send a request, raising SourceError on transport errors or non-2xx."""
        try:
            if self._http is not None:
                response = await self._http.request(method, url, timeout=self._timeout, **kwargs)
            else:
                async with httpx.AsyncClient(timeout=httpx.Timeout(self._timeout)) as client:
                    response = await client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise SourceError(self.kind.value, f"request failed: {e!r}") from e

        if response.status_code >= 400:
            raise SourceError(
                self.kind.value,
                f"API error: {response.status_code}",
                status_code=response.status_code,
            )
        return response

    async def _get_json(self, url: str, **kwargs) -> Any:
        response = await self._request("GET", url, **kwargs)
        return _decode_json(self.kind, response)

    async def _post_json(self, url: str, payload: Dict[str, Any], **kwargs) -> Any:
        response = await self._request("POST", url, json=payload, **kwargs)
        return _decode_json(self.kind, response)


def _decode_json(kind: SourceKind, response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError as e:
        raise SourceError(kind.value, f"invalid JSON response: {e}") from e
