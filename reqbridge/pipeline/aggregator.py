"""
Result Aggregator

Fans a query out to every enabled source, joins the answers, and merges
them in source-enablement order. Completion order of the network calls
never affects the merged order.

Selection is first-result-wins: no cross-source ranking exists.
"""

import asyncio
import logging
from typing import List, Mapping, Optional, Sequence, Tuple, Union

from ..common.events import StageEvent, record_event
from ..sources.base import BaseConnector, SearchResult, SourceKind
from ..sources.query_translator import QueryTranslator
from .models import AggregatedSearch

logger = logging.getLogger("reqbridge.pipeline.aggregator")

STAGE = "multi-source-search"

SourceOutcome = Union[List[SearchResult], BaseException]


def aggregate(
    per_source: Sequence[Tuple[SourceKind, SourceOutcome]],
    events: Optional[List[StageEvent]] = None,
) -> AggregatedSearch:
    """
    Merge per-source outcomes (in the given order) into one AggregatedSearch.

    A source whose outcome is an exception contributes nothing and a
    warning event.
    """
    events = list(events or [])
    results: List[SearchResult] = []

    for kind, outcome in per_source:
        if isinstance(outcome, BaseException):
            record_event(events, logger, STAGE, "warning",
                         f"search failed: {outcome}", source=kind.value)
            continue
        record_event(events, logger, STAGE, "info",
                     f"{len(outcome)} result(s)", source=kind.value)
        results.extend(outcome)

    if not results:
        names = ", ".join(kind.value for kind, _ in per_source) or "(none)"
        return AggregatedSearch(
            results=[],
            error=f"No results found across sources: {names}",
            events=events,
        )

    return AggregatedSearch(results=results, events=events)


def select_first(aggregated: AggregatedSearch) -> Optional[SearchResult]:
    """The document to fetch: always index 0 of the merged list."""
    return aggregated.first


def resolve_sources(requested: Optional[Sequence[str]], default: Sequence[str]) -> List[SourceKind]:
    """Requested source names -> ordered, de-duplicated SourceKinds"""
    names = list(requested) if requested else list(default)
    kinds: List[SourceKind] = []
    for name in names:
        kind = SourceKind(name)
        if kind not in kinds:
            kinds.append(kind)
    return kinds


async def search_all(
    connectors: Mapping[SourceKind, BaseConnector],
    translator: QueryTranslator,
    query: str,
    sources: Sequence[SourceKind],
) -> AggregatedSearch:
    """
    Translate and search every enabled source concurrently, then aggregate.

    Sources without a connector or without credentials are skipped with a
    warning event.
    """
    events: List[StageEvent] = []
    active: List[Tuple[SourceKind, BaseConnector]] = []

    for kind in sources:
        connector = connectors.get(kind)
        if connector is None:
            record_event(events, logger, STAGE, "warning", "no connector", source=kind.value)
            continue
        if not connector.is_configured:
            record_event(events, logger, STAGE, "warning",
                         "credentials not configured, skipped", source=kind.value)
            continue
        active.append((kind, connector))

    async def _run(kind: SourceKind, connector: BaseConnector) -> List[SearchResult]:
        source_query = await translator.translate(query, kind)
        return await connector.search(source_query)

    outcomes = await asyncio.gather(
        *(_run(kind, connector) for kind, connector in active),
        return_exceptions=True,
    )

    # gather preserves argument order, so this is already enablement order
    per_source: List[Tuple[SourceKind, SourceOutcome]] = [
        (kind, outcome) for (kind, _), outcome in zip(active, outcomes)
    ]
    aggregated = aggregate(per_source, events=events)

    if aggregated.error:
        names = ", ".join(kind.value for kind in sources) or "(none)"
        aggregated.error = f"No results found across sources: {names}"
    return aggregated
