"""
Source Query Translator

Turns a free-text query into the representation each source expects.
Confluence needs CQL, which is generated by the LLM; the other sources
take the free text as-is and match server-side.
"""

import asyncio
import logging
from typing import Optional

from ..common.llm_client import LLMClient
from ..common.llm_utils import strip_code_fences
from .base import SourceKind

logger = logging.getLogger("reqbridge.sources.query_translator")

CQL_PROMPT = """以下の検索クエリをConfluence CQLに変換してください。シンプルに text ~ "キーワード" の形式で返してください。
クエリ: {query}
CQL:"""


def fallback_cql(query: str) -> str:
    """Single-clause CQL built without the LLM"""
    escaped = query.replace("\\", "\\\\").replace('"', '\\"')
    return f'text ~ "{escaped}"'


class QueryTranslator:
    """
    Per-source query translation.

    The generated CQL is used verbatim: a malformed query simply yields no
    results at search time.
    """

    def __init__(self, llm: Optional[LLMClient] = None, timeout: float = 30.0):
        self._llm = llm
        self._timeout = timeout

    async def translate(self, query: str, kind: SourceKind) -> str:
        """
        Translate ``query`` for ``kind``.

        Args:
            query: Free-text user query
            kind: Target source

        Returns:
            Source-specific query string
        """
        if kind != SourceKind.CONFLUENCE:
            return query
        return await self._to_cql(query)

    async def _to_cql(self, query: str) -> str:
        if self._llm is None or not self._llm.is_available:
            logger.warning("LLM unavailable, using fallback CQL for %r", query)
            return fallback_cql(query)

        try:
            raw = await asyncio.to_thread(
                self._llm.generate,
                CQL_PROMPT.format(query=query),
                max_tokens=200,
                timeout=self._timeout,
            )
        except Exception as e:
            logger.warning("CQL generation failed, using fallback: %s", e)
            return fallback_cql(query)

        cql = strip_code_fences(raw or "")
        if not cql:
            return fallback_cql(query)
        return cql
