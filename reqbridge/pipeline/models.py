"""
Pipeline data envelopes.

Every envelope that crosses a fail-soft stage carries an optional error
and the StageEvents emitted while building it.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..common.events import StageEvent
from ..sources.base import SearchResult


@dataclass
class AggregatedSearch:
    """Merged search results. ``error`` is set iff ``results`` is empty."""
    results: List[SearchResult] = field(default_factory=list)
    error: Optional[str] = None
    events: List[StageEvent] = field(default_factory=list)

    @property
    def first(self) -> Optional[SearchResult]:
        return self.results[0] if self.results else None


@dataclass
class WorkflowInput:
    """Caller intent for one multi-source run"""
    query: str
    owner: str
    repo: str
    sources: Optional[List[str]] = None


@dataclass
class SynthesizedIssue:
    """One issue to create"""
    title: str
    body: str

    @property
    def is_well_formed(self) -> bool:
        return bool(self.title and self.title.strip() and self.body and self.body.strip())

    def to_dict(self) -> Dict[str, str]:
        return {"title": self.title, "body": self.body}


@dataclass
class PublishRequest:
    """Issues to create in ``owner/repo``"""
    owner: str
    repo: str
    issues: List[SynthesizedIssue] = field(default_factory=list)
    degraded: bool = False
    error: Optional[str] = None
    events: List[StageEvent] = field(default_factory=list)


@dataclass
class CreatedIssue:
    """Reference to an issue created on the tracker"""
    number: int
    url: str
    title: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"number": self.number, "url": self.url, "title": self.title}


@dataclass
class PublishResult:
    """Terminal artifact of a multi-source run"""
    created_issues: List[CreatedIssue] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "created_issues": [issue.to_dict() for issue in self.created_issues],
            "error": self.error,
        }


@dataclass
class WorkflowResult:
    """Everything a run produced, for the HTTP layer and tests"""
    request: PublishRequest
    result: PublishResult
    events: List[StageEvent] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = self.result.to_dict()
        data["degraded"] = self.request.degraded
        data["events"] = [event.to_dict() for event in self.events]
        return data
