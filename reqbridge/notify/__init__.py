"""
Urgent-Issue Notification

Collects open Backlog issues near (or past) their due date across every
configured space and posts them to Slack on weekdays.

Key Components:
- should_skip: weekday / fixed-holiday gate
- select_due_issues: threshold filter, nearest due date first
- SlackNotifier: chat.postMessage sink
- BacklogNotifyWorkflow: the end-to-end run
"""

from .calendar import should_skip
from .selection import select_due_issues
from .slack import NotifyResult, SlackNotifier, build_permalink, format_issue_list
from .workflow import BacklogNotifyWorkflow, NotifyRunResult

__all__ = [
    "should_skip",
    "select_due_issues",
    "NotifyResult",
    "SlackNotifier",
    "build_permalink",
    "format_issue_list",
    "BacklogNotifyWorkflow",
    "NotifyRunResult",
]
