"""
Slack Notifier

Posts urgent Backlog issues to a Slack channel via chat.postMessage and
returns a permalink built from the message timestamp.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Sequence
from zoneinfo import ZoneInfo

import httpx

from ..common.config import SlackConfig
from ..sources.backlog import BacklogIssue
from ..sources.normalize import UNASSIGNED

logger = logging.getLogger("reqbridge.notify.slack")

NO_ISSUES_TEXT = "🎉 納期の迫った課題はありません！"


@dataclass
class NotifyResult:
    """Outcome of one Slack post"""
    success: bool
    message_url: Optional[str] = None
    error: Optional[str] = None


def build_permalink(channel: str, ts: Optional[str]) -> Optional[str]:
    """https://slack.com/archives/{channel}/p{ts without the dot}"""
    if not ts:
        return None
    return f"https://slack.com/archives/{channel}/p{ts.replace('.', '')}"


def format_timestamp(now: datetime, tz: str = "Asia/Tokyo") -> str:
    """ja-JP style local time, e.g. 2024/6/30 9:05:00"""
    local = now.astimezone(ZoneInfo(tz))
    return f"{local.year}/{local.month}/{local.day} {local.hour}:{local.minute:02d}:{local.second:02d}"


def format_issue_list(
    issues: Sequence[BacklogIssue],
    now: Optional[datetime] = None,
    tz: str = "Asia/Tokyo",
) -> str:
    """Render the numbered issue list posted to Slack"""
    now = now or datetime.now(timezone.utc)
    text = f"⚠️ *納期の迫ったBacklog課題（{len(issues)}件）*\n\n"

    for index, issue in enumerate(issues, start=1):
        due_info = f"*{issue.days_until_due}日後*" if issue.days_until_due is not None else "期限未設定"

        text += f"{index}. <{issue.url}|{issue.key}> {issue.summary}\n"
        text += f"   📅 期限: {due_info}"
        if issue.due_date:
            text += f" ({issue.due_date})"
        text += "\n"
        text += f"   👤 担当: {issue.assignee or UNASSIGNED} | "
        text += f"📂 {issue.project_name} | "
        text += f"🏷️ {issue.status}\n\n"

    text += f"\n_更新日時: {format_timestamp(now, tz)}_"
    return text


class SlackNotifier:
    """
    Sends urgent-issue notifications to Slack.

    Never raises: configuration problems, Slack API errors and transport
    failures are all returned as NotifyResult(success=False).
    """

    def __init__(
        self,
        config: SlackConfig,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
        tz: str = "Asia/Tokyo",
    ):
        self._config = config
        self._http = http_client
        self._timeout = timeout
        self._tz = tz

    @property
    def is_configured(self) -> bool:
        return bool(self._config.bot_token)

    async def notify(
        self,
        issues: Sequence[BacklogIssue],
        channel_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> NotifyResult:
        """
        Post ``issues`` to ``channel_id`` (default: configured channel).

        Args:
            issues: Already filtered and sorted issues
            channel_id: Target channel override
            now: Clock override for the footer timestamp

        Returns:
            NotifyResult with permalink on success
        """
        if not self._config.bot_token:
            return NotifyResult(success=False, error="SLACK_BOT_TOKEN が設定されていません")

        channel = channel_id or self._config.channel_id
        if not channel:
            return NotifyResult(success=False, error="SLACK_CHANNEL_ID が設定されていません")

        if not issues:
            payload = {"channel": channel, "text": NO_ISSUES_TEXT}
        else:
            payload = {
                "channel": channel,
                "text": format_issue_list(issues, now=now, tz=self._tz),
                "unfurl_links": False,
                "unfurl_media": False,
            }

        try:
            data = await self._post_message(payload)
        except httpx.HTTPError as e:
            logger.error("Slack post failed: %s", e)
            return NotifyResult(success=False, error=f"送信エラー: {e}")
        except ValueError as e:
            return NotifyResult(success=False, error=f"送信エラー: {e}")

        if not data.get("ok"):
            return NotifyResult(success=False, error=f"Slack API エラー: {data.get('error')}")

        return NotifyResult(success=True, message_url=build_permalink(channel, data.get("ts")))

    async def _post_message(self, payload: dict) -> dict:
        url = f"{self._config.api_url}/chat.postMessage"
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._config.bot_token}",
        }
        if self._http is not None:
            response = await self._http.post(url, json=payload, headers=headers, timeout=self._timeout)
        else:
            async with httpx.AsyncClient(timeout=httpx.Timeout(self._timeout)) as client:
                response = await client.post(url, json=payload, headers=headers)
        return response.json()
