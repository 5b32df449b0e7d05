"""
Multi-Source Pipeline - Requirements Document to GitHub Issues

Key Components:
- aggregate / search_all: fan-out search and source-ordered merge
- IssueSynthesizer: LLM decomposition into issues with provenance footers
- GitHubPublisher: issue creation (terminal stage)
- MultiSourceWorkflow: the end-to-end run

Pipeline:
1. Translate the query per source and search all enabled sources
2. Merge results in source order, pick the first
3. Fetch and normalize that document
4. Synthesize issues (degraded single issue on any failure)
5. Create the issues on GitHub
"""

from .aggregator import aggregate, search_all, select_first
from .models import (
    AggregatedSearch,
    CreatedIssue,
    PublishRequest,
    PublishResult,
    SynthesizedIssue,
    WorkflowInput,
    WorkflowResult,
)
from .publisher import GitHubPublisher
from .synthesizer import IssueSynthesizer
from .workflow import MultiSourceWorkflow

__all__ = [
    "aggregate",
    "search_all",
    "select_first",
    "AggregatedSearch",
    "CreatedIssue",
    "PublishRequest",
    "PublishResult",
    "SynthesizedIssue",
    "WorkflowInput",
    "WorkflowResult",
    "GitHubPublisher",
    "IssueSynthesizer",
    "MultiSourceWorkflow",
]
