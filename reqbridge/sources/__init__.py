"""
Source Connectors

One connector per supported document source. Each converts source-specific
payloads to the common SearchResult / FetchedDocument format.

Available Connectors:
- ConfluenceConnector: CQL search, storage-format pages
- NotionConnector: page search, block content
- BacklogConnector: wikis/issues across multiple spaces, open-issue listing
"""

from typing import Dict, Optional

import httpx

from ..common.config import ReqBridgeConfig
from .base import BaseConnector, FetchedDocument, SearchResult, SourceKind
from .backlog import BacklogConnector, BacklogIssue, BacklogListing, days_until_due
from .confluence import ConfluenceConnector
from .notion import NotionConnector
from .query_translator import QueryTranslator


def build_connectors(
    config: ReqBridgeConfig,
    http_client: Optional[httpx.AsyncClient] = None,
) -> Dict[SourceKind, BaseConnector]:
    """Create one connector per source kind from the process config"""
    timeout = config.http.timeout_seconds
    return {
        SourceKind.CONFLUENCE: ConfluenceConnector(config.confluence, http_client, timeout),
        SourceKind.NOTION: NotionConnector(config.notion, http_client, timeout),
        SourceKind.BACKLOG: BacklogConnector(config.backlog, http_client, timeout),
    }


__all__ = [
    "BaseConnector",
    "FetchedDocument",
    "SearchResult",
    "SourceKind",
    "BacklogConnector",
    "BacklogIssue",
    "BacklogListing",
    "ConfluenceConnector",
    "NotionConnector",
    "QueryTranslator",
    "build_connectors",
    "days_until_due",
]
