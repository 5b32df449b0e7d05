"""
Notion Connector

Searches Notion pages and converts page blocks to markdown.
Authentication is a bearer integration token.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from ..common.config import NotionConfig
from .base import BaseConnector, FetchedDocument, SearchResult, SourceKind
from .normalize import normalize_blocks

logger = logging.getLogger("reqbridge.sources.notion")

NOTION_API_URL = "https://api.notion.com/v1"


def extract_title(page: Dict[str, Any]) -> str:
    """Title from properties.title / properties.Name, else "Untitled"."""
    properties = page.get("properties") or {}
    title_prop = properties.get("title") or properties.get("Name") or {}

    title_parts = title_prop.get("title") or []
    if title_parts and title_parts[0].get("plain_text"):
        return title_parts[0]["plain_text"]

    rich_parts = title_prop.get("rich_text") or []
    if rich_parts and rich_parts[0].get("plain_text"):
        return rich_parts[0]["plain_text"]

    return "Untitled"


class NotionConnector(BaseConnector):
    """
    Connector for the Notion API.

    search: POST /v1/search (pages only, page_size 10)
    fetch:  GET /v1/pages/{id} + GET /v1/blocks/{id}/children
    """

    kind = SourceKind.NOTION

    def __init__(
        self,
        config: NotionConfig,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        super().__init__(http_client=http_client, timeout=timeout)
        self._config = config

    @property
    def is_configured(self) -> bool:
        return self._config.is_configured

    @property
    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self._config.api_token}",
            "Notion-Version": self._config.api_version,
            "Content-Type": "application/json",
        }

    async def search(self, query: str) -> List[SearchResult]:
        if not self.is_configured:
            logger.warning("Notion not configured, skipping search")
            return []

        data = await self._post_json(
            f"{NOTION_API_URL}/search",
            {
                "query": query,
                "filter": {"property": "object", "value": "page"},
                "page_size": self._config.page_size,
            },
            headers=self._headers,
        )

        return [
            SearchResult(
                source=self.kind,
                external_id=page.get("id", ""),
                title=extract_title(page),
                url=page.get("url", ""),
            )
            for page in data.get("results") or []
        ]

    async def fetch(self, result: SearchResult) -> FetchedDocument:
        try:
            page = await self._get_json(
                f"{NOTION_API_URL}/pages/{result.external_id}",
                headers=self._headers,
            )
            blocks = await self._get_json(
                f"{NOTION_API_URL}/blocks/{result.external_id}/children",
                headers=self._headers,
            )
        except Exception as e:
            logger.warning("Notion fetch failed for %s: %s", result.external_id, e)
            return FetchedDocument.failed(result, str(e))

        content = normalize_blocks(blocks.get("results") or [])

        return FetchedDocument(
            source=self.kind.value,
            external_id=page.get("id", result.external_id),
            title=extract_title(page),
            url=page.get("url") or result.url,
            content=content or None,
            error=None if content else "Page has no readable blocks",
        )
