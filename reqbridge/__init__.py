"""
reqbridge

Bridges requirements documents and work trackers.

Two workflows:
- Multi-source: search Confluence / Notion / Backlog for a requirements
  document, split it into GitHub issues with an LLM, and create them.
- Backlog notify: collect Backlog issues close to (or past) their due date
  and post them to Slack.

Philosophy:
- Every stage except the final publish is fail-soft: errors become degraded
  results, never exceptions
- Source order is fixed; the first aggregated result wins
- LLM output is untrusted text and is always parsed defensively

Usage:
    from reqbridge.common import load_config, LLMClient
    from reqbridge.sources import build_connectors, SourceKind
    from reqbridge.pipeline import MultiSourceWorkflow, WorkflowInput
    from reqbridge.notify import BacklogNotifyWorkflow
"""

__version__ = "0.1.0"
