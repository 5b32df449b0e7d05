"""Due-date threshold filtering for urgent Backlog issues."""

from typing import List, Sequence

from ..sources.backlog import BacklogIssue


def select_due_issues(issues: Sequence[BacklogIssue], threshold: int) -> List[BacklogIssue]:
    """
    Keep issues whose days_until_due is within the threshold, nearest first.

    threshold >= 0 ("upcoming"): 0 <= days <= threshold
    threshold < 0  ("overdue"):  days <= threshold
    """
    selected = []
    for issue in issues:
        days = issue.days_until_due
        if days is None or days > threshold:
            continue
        if threshold >= 0 and days < 0:
            continue
        selected.append(issue)
    return sorted(selected, key=lambda issue: issue.days_until_due)
