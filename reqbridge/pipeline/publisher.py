"""
GitHub Publisher

Creates synthesized issues in a GitHub repository, one API call per issue.
This is the terminal stage: failures raise PublishError instead of
degrading.
"""

import logging
from typing import Optional

import httpx

from ..common.config import GitHubConfig
from ..common.errors import PublishError
from .models import CreatedIssue, PublishRequest, PublishResult

logger = logging.getLogger("reqbridge.pipeline.publisher")


class GitHubPublisher:
    """Issue creation via POST /repos/{owner}/{repo}/issues"""

    def __init__(
        self,
        config: GitHubConfig,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        self._config = config
        self._http = http_client
        self._timeout = timeout

    @property
    def is_configured(self) -> bool:
        return self._config.is_configured

    @property
    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self._config.token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }

    async def publish(self, request: PublishRequest) -> PublishResult:
        """
        Create every issue in ``request`` in order.

        Raises:
            PublishError: missing token, invalid request, or any API failure
        """
        if not self.is_configured:
            raise PublishError("GITHUB_TOKEN が設定されていません")
        if not request.owner or not request.repo:
            raise PublishError("owner and repo are required")

        malformed = [i for i, issue in enumerate(request.issues) if not issue.is_well_formed]
        if malformed:
            raise PublishError(f"Refusing to publish ill-formed issues at positions {malformed}")

        if self._http is not None:
            return await self._publish_all(self._http, request)
        async with httpx.AsyncClient(timeout=httpx.Timeout(self._timeout)) as client:
            return await self._publish_all(client, request)

    async def _publish_all(self, client: httpx.AsyncClient, request: PublishRequest) -> PublishResult:
        url = f"{self._config.api_url}/repos/{request.owner}/{request.repo}/issues"
        result = PublishResult()

        for issue in request.issues:
            try:
                response = await client.post(
                    url,
                    json=issue.to_dict(),
                    headers=self._headers,
                    timeout=self._timeout,
                )
            except httpx.HTTPError as e:
                raise PublishError("GitHub API request failed", details=repr(e)) from e

            if response.status_code >= 400:
                raise PublishError(
                    f"GitHub API error: {response.status_code}",
                    details=response.text[:500],
                )

            data = response.json()
            created = CreatedIssue(
                number=data.get("number"),
                url=data.get("html_url", ""),
                title=data.get("title", issue.title),
            )
            logger.info("Created issue #%s: %s", created.number, created.url)
            result.created_issues.append(created)

        return result
