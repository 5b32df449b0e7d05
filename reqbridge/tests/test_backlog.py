"""Tests for the multi-tenant Backlog connector."""

from datetime import datetime, timezone

import httpx
import pytest

from reqbridge.common.config import BacklogConfig, BacklogSpace
from reqbridge.common.errors import ConfigurationError, SourceError
from reqbridge.sources import BacklogConnector, SearchResult, SourceKind, days_until_due

NOW = datetime(2024, 6, 27, 0, 0, tzinfo=timezone.utc)

ALPHA = BacklogSpace(space_id="alpha", api_key="ka")
BETA = BacklogSpace(space_id="beta", api_key="kb")


def _issue(key, due, **extra):
    data = {
        "id": hash(key) % 1000,
        "issueKey": key,
        "summary": f"{key} summary",
        "dueDate": due,
        "priority": {"name": "中"},
        "status": {"name": "未対応"},
        "assignee": {"name": "佐藤"},
    }
    data.update(extra)
    return data


def _client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestDaysUntilDue:
    def test_rounds_up(self):
        assert days_until_due("2024-06-30T00:00:00Z", NOW) == 3
        assert days_until_due("2024-06-27T12:00:00Z", NOW) == 1
        assert days_until_due("2024-06-27T00:00:00Z", NOW) == 0

    def test_overdue_is_negative(self):
        assert days_until_due("2024-06-25T00:00:00Z", NOW) == -2


class TestListOpenIssues:
    @pytest.mark.asyncio
    async def test_requires_configuration(self):
        connector = BacklogConnector(BacklogConfig())
        with pytest.raises(ConfigurationError):
            await connector.list_open_issues(now=NOW)

    @pytest.mark.asyncio
    async def test_lists_across_tenants(self):
        requests = []

        def handler(request):
            requests.append(request)
            space = request.url.host.split(".")[0]
            if request.url.path == "/api/v2/projects":
                return httpx.Response(200, json=[{"id": 1, "name": f"{space}-proj"}])
            if request.url.path == "/api/v2/issues":
                return httpx.Response(200, json=[
                    _issue(f"{space.upper()}-1", "2024-06-28T00:00:00Z"),
                    _issue(f"{space.upper()}-2", None),
                ])
            return httpx.Response(404)

        config = BacklogConfig(spaces=[ALPHA, BETA])
        async with _client(handler) as http:
            listing = await BacklogConnector(config, http_client=http).list_open_issues(now=NOW)

        assert [i.key for i in listing.issues] == ["ALPHA-1", "BETA-1"]
        assert listing.errors == []

        alpha = listing.issues[0]
        assert alpha.url == "https://alpha.backlog.jp/view/ALPHA-1"
        assert alpha.project_name == "alpha-proj"
        assert alpha.days_until_due == 1
        assert alpha.space_id == "alpha"

        issue_request = next(r for r in requests if r.url.path == "/api/v2/issues")
        assert issue_request.url.params.get_list("statusId[]") == ["1", "2", "3"]
        assert issue_request.url.params["count"] == "100"

    @pytest.mark.asyncio
    async def test_tenant_failure_is_isolated(self):
        def handler(request):
            space = request.url.host.split(".")[0]
            assert request.url.params["apiKey"] == {"alpha": "ka", "beta": "kb"}[space]
            if space == "beta":
                return httpx.Response(401)
            if request.url.path == "/api/v2/projects":
                return httpx.Response(200, json=[{"id": 1, "name": "web"}])
            return httpx.Response(200, json=[_issue("WEB-1", "2024-06-29T00:00:00Z")])

        config = BacklogConfig(spaces=[ALPHA, BETA])
        async with _client(handler) as http:
            listing = await BacklogConnector(config, http_client=http).list_open_issues(now=NOW)

        assert [i.key for i in listing.issues] == ["WEB-1"]
        assert len(listing.errors) == 1
        assert listing.errors[0].startswith("beta:")

    @pytest.mark.asyncio
    async def test_project_failure_is_isolated(self):
        def handler(request):
            if request.url.path == "/api/v2/projects":
                return httpx.Response(200, json=[{"id": 1, "name": "ok"}, {"id": 2, "name": "broken"}])
            if request.url.params["projectId[]"] == "2":
                return httpx.Response(500)
            return httpx.Response(200, json=[_issue("OK-1", "2024-06-28T00:00:00Z")])

        config = BacklogConfig(spaces=[ALPHA])
        async with _client(handler) as http:
            listing = await BacklogConnector(config, http_client=http).list_open_issues(now=NOW)

        assert [i.key for i in listing.issues] == ["OK-1"]
        assert len(listing.errors) == 1
        assert "alpha/broken" in listing.errors[0]


class TestSearchAndFetch:
    @pytest.mark.asyncio
    async def test_search_wikis_and_issues(self):
        def handler(request):
            path = request.url.path
            if path == "/api/v2/projects":
                return httpx.Response(200, json=[{"id": 7, "name": "web"}])
            if path == "/api/v2/wikis":
                assert request.url.params["keyword"] == "ログイン"
                return httpx.Response(200, json=[{"id": 55, "name": "ログイン仕様"}])
            if path == "/api/v2/issues":
                return httpx.Response(200, json=[_issue("WEB-3", None, summary="ログイン修正")])
            return httpx.Response(404)

        config = BacklogConfig(spaces=[ALPHA])
        async with _client(handler) as http:
            results = await BacklogConnector(config, http_client=http).search("ログイン")

        assert [(r.external_id, r.title) for r in results] == [
            ("wiki:55", "ログイン仕様"),
            ("issue:WEB-3", "ログイン修正"),
        ]
        assert results[0].url == "https://alpha.backlog.jp/alias/wiki/55"
        assert all(r.tenant == "alpha" for r in results)

    @pytest.mark.asyncio
    async def test_search_raises_when_every_space_fails(self):
        config = BacklogConfig(spaces=[ALPHA, BETA])
        async with _client(lambda request: httpx.Response(403)) as http:
            with pytest.raises(SourceError):
                await BacklogConnector(config, http_client=http).search("x")

    @pytest.mark.asyncio
    async def test_search_raises_when_every_project_fails(self):
        def handler(request):
            if request.url.path == "/api/v2/projects":
                return httpx.Response(200, json=[{"id": 1, "name": "web"}, {"id": 2, "name": "app"}])
            return httpx.Response(500)

        config = BacklogConfig(spaces=[ALPHA])
        async with _client(handler) as http:
            with pytest.raises(SourceError) as exc_info:
                await BacklogConnector(config, http_client=http).search("x")

        assert "all spaces failed" in str(exc_info.value)
        assert "all projects failed in alpha" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_search_keeps_projects_that_succeed(self):
        def handler(request):
            path = request.url.path
            if path == "/api/v2/projects":
                return httpx.Response(200, json=[{"id": 1, "name": "web"}, {"id": 2, "name": "app"}])
            if path == "/api/v2/wikis":
                if request.url.params["projectIdOrKey"] == "2":
                    return httpx.Response(200, json=[{"id": 9, "name": "half"}])
                return httpx.Response(200, json=[{"id": 5, "name": "ok"}])
            if request.url.params["projectId[]"] == "2":
                return httpx.Response(500)
            return httpx.Response(200, json=[])

        config = BacklogConfig(spaces=[ALPHA])
        async with _client(handler) as http:
            results = await BacklogConnector(config, http_client=http).search("x")

        assert [r.external_id for r in results] == ["wiki:5"]

    @pytest.mark.asyncio
    async def test_fetch_issue_uses_result_tenant(self):
        hosts = []

        def handler(request):
            hosts.append(request.url.host)
            if request.url.path == "/api/v2/issues/WEB-3":
                return httpx.Response(200, json=_issue(
                    "WEB-3", "2024-06-30T00:00:00Z", projectId=7, description="詳細本文",
                ))
            if request.url.path == "/api/v2/projects/7":
                return httpx.Response(200, json={"id": 7, "name": "web"})
            return httpx.Response(404)

        result = SearchResult(SourceKind.BACKLOG, "issue:WEB-3", "t", "https://beta.backlog.jp/view/WEB-3",
                              tenant="beta")
        config = BacklogConfig(spaces=[ALPHA, BETA])
        async with _client(handler) as http:
            document = await BacklogConnector(config, http_client=http).fetch(result)

        assert set(hosts) == {"beta.backlog.jp"}
        assert document.error is None
        assert "- **プロジェクト:** web" in document.content
        assert "詳細本文" in document.content

    @pytest.mark.asyncio
    async def test_fetch_wiki(self):
        def handler(request):
            assert request.url.path == "/api/v2/wikis/55"
            return httpx.Response(200, json={"id": 55, "name": "仕様", "content": "本文"})

        result = SearchResult(SourceKind.BACKLOG, "wiki:55", "仕様", "https://alpha.backlog.jp/alias/wiki/55",
                              tenant="alpha")
        async with _client(handler) as http:
            document = await BacklogConnector(BacklogConfig(spaces=[ALPHA]), http_client=http).fetch(result)

        assert document.content == "# 仕様\n\n本文"

    @pytest.mark.asyncio
    async def test_fetch_unknown_tenant(self):
        result = SearchResult(SourceKind.BACKLOG, "wiki:1", "x", "u", tenant="gamma")
        connector = BacklogConnector(BacklogConfig(spaces=[ALPHA, BETA]))
        document = await connector.fetch(result)

        assert document.content is None
        assert "gamma" in document.error
