"""
Backlog → Slack Workflow

gate → list open issues → select by due date → notify.

The weekday/holiday gate runs before any outbound call. A Backlog listing
failure is a warning: the run continues with an empty list so Slack still
gets a message.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, List, Optional
from zoneinfo import ZoneInfo

from ..sources.backlog import BacklogConnector, BacklogIssue
from .calendar import should_skip
from .selection import select_due_issues
from .slack import SlackNotifier

logger = logging.getLogger("reqbridge.notify.workflow")

SEARCH_STEP = "backlog-search-urgent-issues"
PREPARE_STEP = "prepare-slack-notification"
NOTIFY_STEP = "slack-notify-urgent-issues"

SUCCESS_MESSAGE = "Slackへの通知が完了しました"
SKIPPED_MESSAGE = "土日祝日のため通知をスキップしました"


@dataclass
class NotifyRunResult:
    """Outcome of one notification run"""
    success: bool
    message: str
    skipped: bool = False
    message_url: Optional[str] = None
    error: Optional[str] = None
    issues: List[BacklogIssue] = field(default_factory=list)
    steps: List[Dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "success": self.success,
            "message": self.message,
            "steps": [{"stepId": s["step_id"], "status": s["status"]} for s in self.steps],
        }
        if self.skipped:
            data["skipped"] = True
        if self.message_url:
            data["messageUrl"] = self.message_url
        if self.error:
            data["error"] = self.error
        return data


class BacklogNotifyWorkflow:
    """
    Notifies Slack about Backlog issues close to or past their due date.

    Usage:
        workflow = BacklogNotifyWorkflow(backlog_connector, slack_notifier)
        result = await workflow.run(days_threshold=3)
    """

    def __init__(
        self,
        backlog: BacklogConnector,
        notifier: SlackNotifier,
        holidays: Iterable[str] = (),
        tz: str = "Asia/Tokyo",
    ):
        self._backlog = backlog
        self._notifier = notifier
        self._holidays = list(holidays)
        self._tz = tz

    def _today(self) -> date:
        return datetime.now(ZoneInfo(self._tz)).date()

    async def run(
        self,
        days_threshold: int = 3,
        channel_id: Optional[str] = None,
        skip_weekend_holiday: bool = True,
        today: Optional[date] = None,
        now: Optional[datetime] = None,
    ) -> NotifyRunResult:
        """
        Execute one notification run.

        Args:
            days_threshold: >= 0 for upcoming issues, < 0 for overdue only
            channel_id: Slack channel override
            skip_weekend_holiday: Apply the weekday/holiday gate
            today: Calendar date override for the gate
            now: Clock override for due-date computation

        Returns:
            NotifyRunResult (skipped=True when the gate trips)
        """
        if skip_weekend_holiday and should_skip(today or self._today(), self._holidays):
            logger.info("Weekend or holiday, skipping notification")
            return NotifyRunResult(success=True, skipped=True, message=SKIPPED_MESSAGE)

        steps: List[Dict[str, str]] = []
        now = now or datetime.now(timezone.utc)

        issues: List[BacklogIssue] = []
        try:
            listing = await self._backlog.list_open_issues(now=now)
            issues = listing.issues
            for error in listing.errors:
                logger.warning("Backlog listing warning: %s", error)
            steps.append({"step_id": SEARCH_STEP, "status": "success"})
        except Exception as e:
            # Keep going with an empty list so Slack still hears from us
            logger.warning("Backlog課題取得時の警告: %s", e)
            steps.append({"step_id": SEARCH_STEP, "status": "warning"})

        selected = select_due_issues(issues, days_threshold)
        steps.append({"step_id": PREPARE_STEP, "status": "success"})

        outcome = await self._notifier.notify(selected, channel_id=channel_id, now=now)
        steps.append({"step_id": NOTIFY_STEP, "status": "success" if outcome.success else "failed"})

        if outcome.success:
            return NotifyRunResult(
                success=True,
                message=SUCCESS_MESSAGE,
                message_url=outcome.message_url,
                issues=selected,
                steps=steps,
            )

        return NotifyRunResult(
            success=False,
            message=outcome.error or "不明なエラー",
            error=outcome.error,
            issues=selected,
            steps=steps,
        )
