"""Tests for LLM issue synthesis and its degraded paths."""

import json
from unittest.mock import Mock

import pytest

from reqbridge.pipeline.models import WorkflowInput
from reqbridge.pipeline.synthesizer import (
    ISSUE_LIST_SCHEMA,
    NO_CONTENT_TITLE,
    NOT_FOUND_TITLE,
    SYNTHESIS_ERROR_TITLE,
    IssueSynthesizer,
    scrub_references,
)
from reqbridge.sources.base import FetchedDocument

URL = "https://acme.atlassian.net/wiki/spaces/DEV/pages/123"
TITLE = "ログイン要件書"

INTENT = WorkflowInput(query="ログイン", owner="acme", repo="web")


def _document(content="<p>メールとパスワードでログインする</p>", error=None):
    return FetchedDocument(
        source="confluence",
        external_id="123",
        title=TITLE,
        url=URL,
        content=content,
        error=error,
    )


def _llm(output=None, side_effect=None):
    llm = Mock()
    llm.is_available = True
    llm.generate = Mock(return_value=output, side_effect=side_effect)
    return llm


def _issues(*pairs):
    return json.dumps([{"title": t, "body": b} for t, b in pairs], ensure_ascii=False)


class TestSynthesize:
    def test_two_issues_with_provenance(self):
        llm = _llm(_issues(("ログイン画面", "画面を作る"), ("認証API", "APIを作る")))
        request = IssueSynthesizer(llm).synthesize(_document(), INTENT)

        assert request.degraded is False
        assert (request.owner, request.repo) == ("acme", "web")
        assert [i.title for i in request.issues] == ["ログイン画面", "認証API"]
        for issue in request.issues:
            assert issue.body.count(URL) == 1
            assert issue.body.count(TITLE) == 1
            assert "参照元" in issue.body

        kwargs = llm.generate.call_args.kwargs
        assert kwargs["schema"] == ISSUE_LIST_SCHEMA
        prompt = llm.generate.call_args[0][0]
        assert URL in prompt and "2つIssueを作成" in prompt

    def test_model_links_are_not_duplicated(self):
        body = f"詳細は [{TITLE}]({URL}) を参照。URL: {URL}"
        request = IssueSynthesizer(_llm(_issues(("A", body), ("B", "b")))).synthesize(_document(), INTENT)

        assert request.issues[0].body.count(URL) == 1
        assert request.issues[0].body.count(TITLE) == 1

    def test_title_in_prose_is_kept(self):
        document = FetchedDocument(
            source="confluence", external_id="1", title="Login",
            url="https://acme.atlassian.net/wiki/spaces/D/pages/1", content="x",
        )
        llm = _llm(_issues(("Form", "Build the Login form and Login API."), ("B", "b")))

        body = IssueSynthesizer(llm).synthesize(document, INTENT).issues[0].body

        assert body.startswith("Build the Login form and Login API.\n\n---\n")
        assert body.endswith("**参照元:** [Login](https://acme.atlassian.net/wiki/spaces/D/pages/1) (confluence)")

    def test_title_inside_url_appears_twice_in_footer(self):
        url = "https://acme.atlassian.net/wiki/spaces/D/pages/1/Login"
        document = FetchedDocument(
            source="confluence", external_id="1", title="Login", url=url, content="x",
        )
        llm = _llm(_issues(("A", "a"), ("B", "b")))

        body = IssueSynthesizer(llm).synthesize(document, INTENT).issues[0].body

        assert body == f"a\n\n---\n**参照元:** [Login]({url}) (confluence)"
        assert body.count(url) == 1
        assert body.count("Login") == 2

    def test_wrapped_and_fenced_output_accepted(self):
        raw = "```json\n" + json.dumps({"issues": [{"title": "A", "body": "a"}, {"title": "B", "body": "b"}]}) + "\n```"
        request = IssueSynthesizer(_llm(raw)).synthesize(_document(), INTENT)

        assert [i.title for i in request.issues] == ["A", "B"]

    def test_count_mismatch_is_warning_not_failure(self):
        raw = _issues(("A", "a"), ("B", "b"), ("C", "c"))
        request = IssueSynthesizer(_llm(raw)).synthesize(_document(), INTENT)

        assert len(request.issues) == 3
        assert request.degraded is False
        assert any("expected 2" in e.message for e in request.events)

    def test_ill_formed_items_dropped(self):
        raw = json.dumps([{"title": "A", "body": "a"}, {"title": "", "body": "x"}, "junk"])
        request = IssueSynthesizer(_llm(raw)).synthesize(_document(), INTENT)

        assert [i.title for i in request.issues] == ["A"]
        assert sum("dropped" in e.message for e in request.events) == 2


class TestDegraded:
    @pytest.mark.parametrize("content", ["", "   ", None])
    def test_no_content(self, content):
        llm = _llm("unused")
        request = IssueSynthesizer(llm).synthesize(_document(content=content), INTENT)

        assert request.degraded is True
        assert [i.title for i in request.issues] == [NO_CONTENT_TITLE]
        assert request.issues[0].body
        llm.generate.assert_not_called()

    def test_fetch_error(self):
        document = _document(content=None, error="Failed to fetch page content (HTTP 403)")
        request = IssueSynthesizer(_llm("unused")).synthesize(document, INTENT)

        assert request.issues[0].title == NO_CONTENT_TITLE
        assert "HTTP 403" in request.issues[0].body
        assert request.error == "Failed to fetch page content (HTTP 403)"

    def test_not_found(self):
        document = FetchedDocument.not_found("No results found across sources: notion")
        request = IssueSynthesizer(_llm("unused")).synthesize(document, INTENT)

        assert request.degraded is True
        assert request.issues[0].title == NOT_FOUND_TITLE
        assert "ログイン" in request.issues[0].body

    @pytest.mark.parametrize("raw", ["not json at all", "{\"title\": \"x\"}", "[]", "[{\"title\": 1}]", ""])
    def test_unusable_output(self, raw):
        request = IssueSynthesizer(_llm(raw)).synthesize(_document(), INTENT)

        assert request.degraded is True
        assert len(request.issues) == 1
        assert request.issues[0].title == SYNTHESIS_ERROR_TITLE
        assert request.issues[0].body.startswith("エラーが発生しました: ")
        assert request.issues[0].is_well_formed

    def test_generation_exception(self):
        llm = _llm(side_effect=TimeoutError("timed out"))
        request = IssueSynthesizer(llm).synthesize(_document(), INTENT)

        assert request.issues[0].title == SYNTHESIS_ERROR_TITLE
        assert "timed out" in request.issues[0].body
        assert any(e.level == "error" for e in request.events)

    def test_llm_unavailable(self):
        llm = Mock()
        llm.is_available = False
        request = IssueSynthesizer(llm).synthesize(_document(), INTENT)

        assert request.issues[0].title == SYNTHESIS_ERROR_TITLE
        llm.generate.assert_not_called()


def test_scrub_references_only_touches_url():
    document = _document()
    body = f"[仕様]({URL}) と {TITLE}"
    assert scrub_references(body, document) == f"参照元リンク と {TITLE}"
