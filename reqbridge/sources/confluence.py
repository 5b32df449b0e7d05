"""
Confluence Connector

Searches Confluence Cloud with CQL and fetches page bodies in storage
format. Authentication is HTTP basic with user email + API token.
"""

import logging
from typing import List, Optional

import httpx

from ..common.config import ConfluenceConfig
from ..common.errors import SourceError
from .base import BaseConnector, FetchedDocument, SearchResult, SourceKind
from .normalize import normalize_storage

logger = logging.getLogger("reqbridge.sources.confluence")


class ConfluenceConnector(BaseConnector):
    """
    Connector for Confluence Cloud.

    search: GET /wiki/rest/api/search?cql=...
    fetch:  GET /wiki/rest/api/content/{id}?expand=body.storage
    """

    kind = SourceKind.CONFLUENCE

    def __init__(
        self,
        config: ConfluenceConfig,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        super().__init__(http_client=http_client, timeout=timeout)
        self._config = config

    @property
    def is_configured(self) -> bool:
        return self._config.is_configured

    @property
    def _auth(self) -> httpx.BasicAuth:
        return httpx.BasicAuth(self._config.user_email, self._config.api_token)

    @property
    def _headers(self) -> dict:
        return {"Accept": "application/json"}

    def _wiki_url(self, path: Optional[str]) -> str:
        return f"{self._config.base_url}/wiki{path or ''}"

    async def search(self, query: str) -> List[SearchResult]:
        if not self.is_configured:
            logger.warning("Confluence not configured, skipping search")
            return []

        data = await self._get_json(
            f"{self._config.base_url}/wiki/rest/api/search",
            params={"cql": query},
            headers=self._headers,
            auth=self._auth,
        )

        results: List[SearchResult] = []
        for item in data.get("results") or []:
            content = item.get("content")
            if not content:
                continue
            results.append(SearchResult(
                source=self.kind,
                external_id=str(content.get("id", "")),
                title=content.get("title", ""),
                url=self._wiki_url(item.get("url")),
            ))
        return results

    async def fetch(self, result: SearchResult) -> FetchedDocument:
        try:
            page = await self._get_json(
                f"{self._config.base_url}/wiki/rest/api/content/{result.external_id}",
                params={"expand": "body.storage"},
                headers=self._headers,
                auth=self._auth,
            )
        except SourceError as e:
            if e.status_code is not None:
                return FetchedDocument.failed(
                    result, f"Failed to fetch page content (HTTP {e.status_code})"
                )
            return FetchedDocument.failed(result, str(e))
        except Exception as e:
            logger.warning("Confluence fetch failed for %s: %s", result.external_id, e)
            return FetchedDocument.failed(result, str(e))

        webui = (page.get("_links") or {}).get("webui")
        body = ((page.get("body") or {}).get("storage") or {}).get("value")
        content = normalize_storage(body)

        return FetchedDocument(
            source=self.kind.value,
            external_id=str(page.get("id", result.external_id)),
            title=page.get("title", result.title),
            url=self._wiki_url(webui) if webui else result.url,
            content=content if content else None,
            error=None if content else "Page content is empty",
        )
