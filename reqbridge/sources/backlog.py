"""
Backlog Connector

Multi-tenant connector for Backlog spaces. Authentication is the API key
passed as a query parameter. Supports two shapes:
- search / fetch over wikis and issues (multi-source workflow)
- bulk listing of open issues with due dates (notification workflow)

A failure in one tenant or project is logged and skipped; it never aborts
the other tenants.
"""

import asyncio
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from ..common.config import BacklogConfig, BacklogSpace
from ..common.errors import ConfigurationError, SourceError
from .base import BaseConnector, FetchedDocument, SearchResult, SourceKind
from .normalize import (
    NOT_SET,
    UNASSIGNED,
    UNKNOWN,
    normalize_backlog_issue,
    normalize_backlog_wiki,
)

logger = logging.getLogger("reqbridge.sources.backlog")

WIKI_PREFIX = "wiki:"
ISSUE_PREFIX = "issue:"

SECONDS_PER_DAY = 60 * 60 * 24


def days_until_due(due_date: str, now: Optional[datetime] = None) -> int:
    """ceil((due - now) in days). Negative when the due date has passed."""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    due = datetime.fromisoformat(due_date.replace("Z", "+00:00"))
    if due.tzinfo is None:
        due = due.replace(tzinfo=timezone.utc)
    return math.ceil((due - now).total_seconds() / SECONDS_PER_DAY)


@dataclass
class BacklogIssue:
    """An open Backlog issue with its computed days until due"""
    id: str
    key: str
    summary: str
    priority: str
    status: str
    project_name: str
    url: str
    space_id: str
    due_date: Optional[str] = None
    days_until_due: Optional[int] = None
    assignee: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "key": self.key,
            "summary": self.summary,
            "dueDate": self.due_date,
            "daysUntilDue": self.days_until_due,
            "priority": self.priority,
            "status": self.status,
            "assignee": self.assignee,
            "projectName": self.project_name,
            "url": self.url,
        }


@dataclass
class BacklogListing:
    """Result of a bulk issue listing across tenants"""
    issues: List[BacklogIssue] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


class BacklogConnector(BaseConnector):
    """
    Connector for Backlog (one or more spaces).

    search:  wikis + issues matching a keyword, per tenant and project
    fetch:   one wiki (GET /wikis/{id}) or issue (GET /issues/{key})
    list_open_issues: open issues with a due date, across all tenants
    """

    kind = SourceKind.BACKLOG

    def __init__(
        self,
        config: BacklogConfig,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        super().__init__(http_client=http_client, timeout=timeout)
        self._config = config
        self._spaces = {space.space_id: space for space in config.spaces}

    @property
    def is_configured(self) -> bool:
        return self._config.is_configured

    @property
    def spaces(self) -> List[BacklogSpace]:
        return list(self._config.spaces)

    async def _call(self, space: BacklogSpace, endpoint: str, params: Optional[dict] = None) -> Any:
        query = dict(params or {})
        query["apiKey"] = space.api_key
        return await self._get_json(f"{space.base_url}{endpoint}", params=query)

    async def list_projects(self, space: BacklogSpace) -> List[Dict[str, Any]]:
        return await self._call(space, "/projects") or []

    # ------------------------------------------------------------------
    # search / fetch
    # ------------------------------------------------------------------

    async def search(self, query: str) -> List[SearchResult]:
        if not self.is_configured:
            logger.warning("Backlog not configured, skipping search")
            return []

        outcomes = await asyncio.gather(
            *(self._search_space(space, query) for space in self._config.spaces),
            return_exceptions=True,
        )

        results: List[SearchResult] = []
        failures = []
        for space, outcome in zip(self._config.spaces, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning("Backlog search failed for space %s: %s", space.space_id, outcome)
                failures.append(f"{space.space_id}: {outcome}")
                continue
            results.extend(outcome)

        if failures and len(failures) == len(self._config.spaces):
            raise SourceError(self.kind.value, "all spaces failed (" + "; ".join(failures) + ")")
        return results

    async def _search_space(self, space: BacklogSpace, query: str) -> List[SearchResult]:
        projects = await self.list_projects(space)
        results: List[SearchResult] = []
        failures = []

        for project in projects:
            project_id = project.get("id")
            found: List[SearchResult] = []
            try:
                wikis = await self._call(
                    space, "/wikis", {"projectIdOrKey": project_id, "keyword": query}
                )
                for wiki in wikis or []:
                    found.append(SearchResult(
                        source=self.kind,
                        external_id=f"{WIKI_PREFIX}{wiki.get('id')}",
                        title=wiki.get("name", ""),
                        url=f"{space.web_url}/alias/wiki/{wiki.get('id')}",
                        tenant=space.space_id,
                    ))

                issues = await self._call(
                    space, "/issues",
                    {"projectId[]": [project_id], "keyword": query, "count": self._config.issue_count},
                )
                for issue in issues or []:
                    key = issue.get("issueKey", "")
                    found.append(SearchResult(
                        source=self.kind,
                        external_id=f"{ISSUE_PREFIX}{key}",
                        title=issue.get("summary", key),
                        url=f"{space.web_url}/view/{key}",
                        tenant=space.space_id,
                    ))
                results.extend(found)
            except Exception as e:
                logger.warning(
                    "Backlog search failed for project %s in %s: %s",
                    project.get("name", project_id), space.space_id, e,
                )
                failures.append(f"{project.get('name', project_id)}: {e}")

        if projects and len(failures) == len(projects):
            raise SourceError(
                self.kind.value,
                f"all projects failed in {space.space_id} (" + "; ".join(failures) + ")",
            )
        return results

    async def fetch(self, result: SearchResult) -> FetchedDocument:
        space = self._spaces.get(result.tenant or "")
        if space is None and len(self._config.spaces) == 1:
            space = self._config.spaces[0]
        if space is None:
            return FetchedDocument.failed(result, f"Unknown Backlog space: {result.tenant}")

        try:
            if result.external_id.startswith(ISSUE_PREFIX):
                return await self._fetch_issue(space, result)
            return await self._fetch_wiki(space, result)
        except Exception as e:
            logger.warning("Backlog fetch failed for %s: %s", result.external_id, e)
            return FetchedDocument.failed(result, str(e))

    async def _fetch_wiki(self, space: BacklogSpace, result: SearchResult) -> FetchedDocument:
        wiki_id = result.external_id[len(WIKI_PREFIX):] if result.external_id.startswith(WIKI_PREFIX) \
            else result.external_id
        wiki = await self._call(space, f"/wikis/{wiki_id}")
        content = normalize_backlog_wiki(wiki)
        return FetchedDocument(
            source=self.kind.value,
            external_id=result.external_id,
            title=wiki.get("name", result.title),
            url=result.url,
            content=content or None,
            error=None if content else "Wiki content is empty",
        )

    async def _fetch_issue(self, space: BacklogSpace, result: SearchResult) -> FetchedDocument:
        key = result.external_id[len(ISSUE_PREFIX):]
        issue = await self._call(space, f"/issues/{key}")

        project_name = ""
        project_id = issue.get("projectId")
        if project_id is not None:
            try:
                project = await self._call(space, f"/projects/{project_id}")
                project_name = project.get("name", "")
            except SourceError as e:
                logger.warning("Could not resolve project %s: %s", project_id, e)
                project_name = str(project_id)

        return FetchedDocument(
            source=self.kind.value,
            external_id=result.external_id,
            title=issue.get("summary", result.title),
            url=result.url,
            content=normalize_backlog_issue(issue, project_name),
        )

    # ------------------------------------------------------------------
    # bulk listing
    # ------------------------------------------------------------------

    async def list_open_issues(self, now: Optional[datetime] = None) -> BacklogListing:
        """
        List open issues that have a due date, across every tenant and project.

        Raises:
            ConfigurationError: if no Backlog space is configured
        """
        if not self.is_configured:
            raise ConfigurationError("Backlog API設定が不足しています")

        now = now or datetime.now(timezone.utc)
        outcomes = await asyncio.gather(
            *(self._list_space(space, now) for space in self._config.spaces),
            return_exceptions=True,
        )

        listing = BacklogListing()
        for space, outcome in zip(self._config.spaces, outcomes):
            if isinstance(outcome, BaseException):
                logger.error("Error fetching projects for space %s: %s", space.space_id, outcome)
                listing.errors.append(f"{space.space_id}: {outcome}")
                continue
            issues, errors = outcome
            listing.issues.extend(issues)
            listing.errors.extend(errors)
        return listing

    async def _list_space(self, space: BacklogSpace, now: datetime):
        projects = await self.list_projects(space)
        if not projects:
            logger.warning("Space %s: no projects found", space.space_id)

        outcomes = await asyncio.gather(
            *(self._list_project(space, project, now) for project in projects),
            return_exceptions=True,
        )

        issues: List[BacklogIssue] = []
        errors: List[str] = []
        for project, outcome in zip(projects, outcomes):
            if isinstance(outcome, BaseException):
                name = project.get("name", project.get("id"))
                logger.error("Error fetching issues for project %s: %s", name, outcome)
                errors.append(f"{space.space_id}/{name}: {outcome}")
                continue
            issues.extend(outcome)
        return issues, errors

    async def _list_project(
        self, space: BacklogSpace, project: Dict[str, Any], now: datetime
    ) -> List[BacklogIssue]:
        raw_issues = await self._call(space, "/issues", {
            "projectId[]": [project.get("id")],
            "statusId[]": list(self._config.open_status_ids),
            "count": self._config.issue_count,
        })

        issues = []
        for issue in raw_issues or []:
            due_date = issue.get("dueDate")
            if not due_date:
                continue
            issues.append(self._to_issue(space, project, issue, days_until_due(due_date, now)))
        return issues

    @staticmethod
    def _to_issue(
        space: BacklogSpace, project: Dict[str, Any], issue: Dict[str, Any], days: int
    ) -> BacklogIssue:
        key = issue.get("issueKey", "")
        assignee = issue.get("assignee") or {}
        return BacklogIssue(
            id=str(issue.get("id", "")),
            key=key,
            summary=issue.get("summary", ""),
            due_date=issue.get("dueDate"),
            days_until_due=days,
            priority=(issue.get("priority") or {}).get("name") or NOT_SET,
            status=(issue.get("status") or {}).get("name") or UNKNOWN,
            assignee=assignee.get("name") or UNASSIGNED,
            project_name=project.get("name", ""),
            url=f"{space.web_url}/view/{key}",
            space_id=space.space_id,
        )
