"""End-to-end tests for the multi-source workflow with faked HTTP and LLM."""

import json
from unittest.mock import AsyncMock, Mock

import httpx
import pytest

from reqbridge.common.config import (
    BacklogConfig,
    ConfluenceConfig,
    GitHubConfig,
    NotionConfig,
    ReqBridgeConfig,
)
from reqbridge.common.errors import PublishError
from reqbridge.pipeline import GitHubPublisher, IssueSynthesizer, MultiSourceWorkflow, WorkflowInput
from reqbridge.pipeline.synthesizer import NOT_FOUND_TITLE, NO_CONTENT_TITLE
from reqbridge.sources import QueryTranslator, build_connectors

PAGE_URL = "https://acme.atlassian.net/wiki/spaces/DEV/pages/123"


def _config():
    return ReqBridgeConfig(
        confluence=ConfluenceConfig(base_url="https://acme.atlassian.net", api_token="t", user_email="e"),
        notion=NotionConfig(api_token="n"),
        backlog=BacklogConfig(),
        github=GitHubConfig(token="ghp"),
    )


def _llm(issues_json):
    llm = Mock()
    llm.is_available = True

    def generate(prompt, **kwargs):
        if kwargs.get("schema"):
            return issues_json
        return 'text ~ "ログイン"'

    llm.generate = Mock(side_effect=generate)
    return llm


class Router:
    """Routes faked API calls by host and records GitHub issue creations"""

    def __init__(self, confluence_results=None, page_body="<p>ログイン要件</p>", notion_results=None):
        self.confluence_results = confluence_results if confluence_results is not None else [
            {"content": {"id": "123", "title": "ログイン要件書"}, "url": "/spaces/DEV/pages/123"},
        ]
        self.page_body = page_body
        self.notion_results = notion_results or []
        self.created = []

    def __call__(self, request):
        host, path = request.url.host, request.url.path
        if host == "acme.atlassian.net" and path == "/wiki/rest/api/search":
            return httpx.Response(200, json={"results": self.confluence_results})
        if host == "acme.atlassian.net" and path == "/wiki/rest/api/content/123":
            return httpx.Response(200, json={
                "id": "123",
                "title": "ログイン要件書",
                "body": {"storage": {"value": self.page_body}},
                "_links": {"webui": "/spaces/DEV/pages/123"},
            })
        if host == "api.notion.com" and path == "/v1/search":
            return httpx.Response(200, json={"results": self.notion_results})
        if host == "api.github.com":
            payload = json.loads(request.content)
            self.created.append(payload)
            number = len(self.created)
            return httpx.Response(201, json={
                "number": number,
                "html_url": f"https://github.com/acme/web/issues/{number}",
                "title": payload["title"],
            })
        return httpx.Response(404)


def _workflow(router, llm, config=None):
    config = config or _config()
    http = httpx.AsyncClient(transport=httpx.MockTransport(router))
    workflow = MultiSourceWorkflow(
        connectors=build_connectors(config, http_client=http),
        translator=QueryTranslator(llm),
        synthesizer=IssueSynthesizer(llm),
        publisher=GitHubPublisher(config.github, http_client=http),
        default_sources=["confluence", "notion"],
    )
    return workflow, http


INTENT = WorkflowInput(query="ログイン機能の要件", owner="acme", repo="web")


class TestExecute:
    @pytest.mark.asyncio
    async def test_happy_path_creates_two_issues(self):
        router = Router()
        llm = _llm(json.dumps([
            {"title": "ログイン画面の実装", "body": "画面"},
            {"title": "認証APIの実装", "body": "API"},
        ], ensure_ascii=False))
        workflow, http = _workflow(router, llm)

        async with http:
            outcome = await workflow.execute(INTENT)

        assert len(router.created) == 2
        for payload in router.created:
            assert "参照元" in payload["body"]
            assert payload["body"].count(PAGE_URL) == 1
        assert [i.number for i in outcome.result.created_issues] == [1, 2]
        assert outcome.request.degraded is False
        assert outcome.result.error is None

        data = outcome.to_dict()
        assert data["created_issues"][0]["url"] == "https://github.com/acme/web/issues/1"
        assert data["degraded"] is False

    @pytest.mark.asyncio
    async def test_no_results_publishes_not_found_issue(self):
        router = Router(confluence_results=[])
        llm = _llm("[]")
        workflow, http = _workflow(router, llm)

        async with http:
            outcome = await workflow.execute(INTENT)

        assert [p["title"] for p in router.created] == [NOT_FOUND_TITLE]
        assert outcome.request.degraded is True
        assert outcome.result.error.startswith("No results found across sources")

    @pytest.mark.asyncio
    async def test_empty_page_publishes_no_content_issue(self):
        router = Router(page_body="")
        llm = _llm("[]")
        workflow, http = _workflow(router, llm)

        async with http:
            outcome = await workflow.execute(INTENT)

        assert [p["title"] for p in router.created] == [NO_CONTENT_TITLE]
        assert any(e.stage == "fetch-page-content" for e in outcome.events)

    @pytest.mark.asyncio
    async def test_requested_sources_override_default(self):
        router = Router(notion_results=[{
            "id": "p1", "url": "https://notion.so/p1",
            "properties": {"title": {"title": [{"plain_text": "Notion要件"}]}},
        }])
        workflow, http = _workflow(router, _llm("[]"))
        async with http:
            aggregated = await workflow.search(
                WorkflowInput(query="q", owner="o", repo="r", sources=["notion"])
            )

        assert [r.title for r in aggregated.results] == ["Notion要件"]

    @pytest.mark.asyncio
    async def test_publish_error_propagates(self):
        workflow = MultiSourceWorkflow(
            connectors={},
            translator=QueryTranslator(None),
            synthesizer=IssueSynthesizer(None),
            publisher=Mock(publish=AsyncMock(side_effect=PublishError("GitHub API error: 500"))),
            default_sources=["notion"],
        )

        with pytest.raises(PublishError):
            await workflow.execute(INTENT)
