"""
Multi-Source Workflow

search → select first → fetch → synthesize → publish.

Each stage hands a normalized envelope to the next. Every stage except
publish converts its failures into a degraded payload, so a run always
reaches the publisher unless something unexpected escapes.
"""

import asyncio
import logging
from typing import List, Mapping, Optional

from ..common.events import StageEvent, record_event
from ..sources.base import BaseConnector, FetchedDocument, SourceKind
from ..sources.query_translator import QueryTranslator
from .aggregator import resolve_sources, search_all, select_first
from .models import AggregatedSearch, WorkflowInput, WorkflowResult
from .publisher import GitHubPublisher
from .synthesizer import IssueSynthesizer

logger = logging.getLogger("reqbridge.pipeline.workflow")

FETCH_STAGE = "fetch-page-content"


class MultiSourceWorkflow:
    """
    Requirements document → GitHub issues.

    Usage:
        workflow = MultiSourceWorkflow(connectors, translator, synthesizer, publisher)
        result = await workflow.execute(WorkflowInput(query="auth", owner="o", repo="r"))
    """

    def __init__(
        self,
        connectors: Mapping[SourceKind, BaseConnector],
        translator: QueryTranslator,
        synthesizer: IssueSynthesizer,
        publisher: GitHubPublisher,
        default_sources: Optional[List[str]] = None,
    ):
        self._connectors = connectors
        self._translator = translator
        self._synthesizer = synthesizer
        self._publisher = publisher
        self._default_sources = default_sources or [kind.value for kind in SourceKind]

    async def search(self, intent: WorkflowInput) -> AggregatedSearch:
        sources = resolve_sources(intent.sources, self._default_sources)
        return await search_all(self._connectors, self._translator, intent.query, sources)

    async def fetch(self, aggregated: AggregatedSearch) -> FetchedDocument:
        """Fetch the first aggregated result, or a not-found placeholder."""
        events: List[StageEvent] = list(aggregated.events)
        selected = select_first(aggregated)

        if selected is None:
            document = FetchedDocument.not_found(aggregated.error or "検索結果が見つかりませんでした")
            document.events = events
            return document

        connector = self._connectors.get(selected.source)
        if connector is None:
            document = FetchedDocument.failed(selected, f"No connector for {selected.source.value}")
        else:
            document = await connector.fetch(selected)

        if document.error:
            record_event(events, logger, FETCH_STAGE, "warning",
                         f"fetch failed: {document.error}", source=selected.source.value)
        document.events = events + document.events
        return document

    async def execute(self, intent: WorkflowInput) -> WorkflowResult:
        """
        Run the whole pipeline.

        Raises:
            PublishError: when issue creation fails (terminal)
        """
        aggregated = await self.search(intent)
        document = await self.fetch(aggregated)
        request = await asyncio.to_thread(self._synthesizer.synthesize, document, intent)
        result = await self._publisher.publish(request)
        if request.degraded:
            result.error = request.error
        return WorkflowResult(request=request, result=result, events=request.events)
