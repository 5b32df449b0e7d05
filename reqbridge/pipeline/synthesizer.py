"""
Issue Synthesizer

LLM-based decomposition of a requirements document into GitHub issues.

Key principle: the model's output is untrusted text.
- Parse defensively; accept any non-empty list of well-formed items
- Every returned body gets a provenance footer linking the source document
- Any failure becomes a single degraded issue; this stage never raises
"""

import json
import logging
import re
from typing import Any, List, Optional

from ..common.events import StageEvent, record_event
from ..common.llm_client import LLMClient
from ..common.llm_utils import parse_llm_json_array
from ..sources.base import FetchedDocument
from .models import PublishRequest, SynthesizedIssue, WorkflowInput

logger = logging.getLogger("reqbridge.pipeline.synthesizer")

STAGE = "create-development-tasks"

DEFAULT_ISSUE_COUNT = 2

# Output contract handed to the model (soft: the response is still validated)
ISSUE_LIST_SCHEMA = {
    "type": "array",
    "items": {
        "type": "object",
        "properties": {
            "title": {"type": "string"},
            "body": {"type": "string"},
        },
        "required": ["title", "body"],
    },
}

ANALYSIS_PROMPT = """以下の{source}ページの内容は要件書です。この要件書を分析して、開発バックログのGitHub Issueを複数作成するための情報を生成してください。

ユーザーの質問: {query}
ソース: {source}
ページタイトル: {title}
ページURL: {url}
ページ内容:
{content}

重要：
- 要件書の内容を機能やコンポーネント単位で分割
- 各Issueのtitleは簡潔で分かりやすく
- bodyはMarkdown形式で構造化し、元のページURLも含める
- フォーマットはJSON配列形式で、必ず出力。枕詞は不要。トップの配列は必ず角括弧で囲む。
- ```jsonのようなコードブロックは不要
- {count}つIssueを作成
- 曖昧な部分は「要確認」として記載"""

PROVENANCE_FOOTER = "\n\n---\n**参照元:** [{title}]({url}) ({source})"

# Replacement for model-written links to the source, so the footer holds the only url
SCRUBBED_LINK = "参照元リンク"

NOT_FOUND_TITLE = "エラー: 検索結果が見つかりませんでした"
NO_CONTENT_TITLE = "エラー: ページの内容が取得できませんでした"
SYNTHESIS_ERROR_TITLE = "エラー: Issue作成に失敗"

NOT_FOUND_BODY = """## 検索結果なし

クエリ「{query}」に一致するドキュメントが見つかりませんでした。

**エラー:** {error}

### 対応
- 検索キーワードを変えて再実行してください
- 対象ソース（{sources}）の認証情報が設定されているか確認してください
- ドキュメントが検索対象のスペース／ワークスペースに存在するか確認してください"""

NO_CONTENT_BODY = """## ページ内容の取得に失敗

ソース: {source}
ページ: {title} {url}
エラー: {error}

### 対応
- ページの閲覧権限が連携ユーザー／インテグレーションに付与されているか確認してください
- ページ本文が空でないか確認してください
- 元のクエリ「{query}」で再実行してください"""


def provenance_footer(document: FetchedDocument) -> str:
    return PROVENANCE_FOOTER.format(
        title=document.title, url=document.url, source=document.source
    )


def scrub_references(body: str, document: FetchedDocument) -> str:
    """Replace the model's own links to the source url; other prose is left as written."""
    if document.url:
        link = re.compile(r"\[[^\]]*\]\(" + re.escape(document.url) + r"\)")
        body = link.sub(SCRUBBED_LINK, body)
        body = body.replace(document.url, SCRUBBED_LINK)
    return body


def attach_provenance(issue: SynthesizedIssue, document: FetchedDocument) -> SynthesizedIssue:
    """Append the provenance footer; the source url ends up in the body exactly once."""
    body = scrub_references(issue.body.rstrip(), document)
    return SynthesizedIssue(title=issue.title, body=body + provenance_footer(document))


class IssueSynthesizer:
    """
    Turns a fetched document into a PublishRequest.

    Falls back to a single explanatory issue when there is no content, or
    when generation / parsing / validation fails.
    """

    def __init__(
        self,
        llm: Optional[LLMClient] = None,
        issue_count: int = DEFAULT_ISSUE_COUNT,
        max_tokens: int = 4096,
        timeout: float = 60.0,
    ):
        """
        Initialize synthesizer.

        Args:
            llm: Generation client
            issue_count: Number of issues requested from the model
            max_tokens: Generation budget
            timeout: Generation timeout in seconds
        """
        self._llm = llm
        self._issue_count = issue_count
        self._max_tokens = max_tokens
        self._timeout = timeout

    def build_prompt(self, document: FetchedDocument, intent: WorkflowInput) -> str:
        return ANALYSIS_PROMPT.format(
            source=document.source,
            query=intent.query,
            title=document.title,
            url=document.url,
            content=document.content,
            count=self._issue_count,
        )

    def synthesize(self, document: FetchedDocument, intent: WorkflowInput) -> PublishRequest:
        """
        Build the issues for ``document``.

        Args:
            document: Output of the fetch stage
            intent: Caller query and target repository

        Returns:
            PublishRequest (degraded=True on any fallback path)
        """
        events: List[StageEvent] = list(document.events)

        if document.error or not document.has_content:
            return self._degraded_for_document(document, intent, events)

        try:
            if self._llm is None or not self._llm.is_available:
                raise RuntimeError("LLM client is not available")

            raw = self._llm.generate(
                self.build_prompt(document, intent),
                schema=ISSUE_LIST_SCHEMA,
                max_tokens=self._max_tokens,
                timeout=self._timeout,
            )
            issues = self._parse_issues(raw, events)
        except Exception as e:
            record_event(events, logger, STAGE, "error", f"synthesis failed: {e}",
                         source=document.source)
            return PublishRequest(
                owner=intent.owner,
                repo=intent.repo,
                issues=[SynthesizedIssue(
                    title=SYNTHESIS_ERROR_TITLE,
                    body="エラーが発生しました: " + str(e),
                )],
                degraded=True,
                error=str(e),
                events=events,
            )

        if len(issues) != self._issue_count:
            record_event(
                events, logger, STAGE, "warning",
                f"model returned {len(issues)} issue(s), expected {self._issue_count}",
                source=document.source,
            )

        return PublishRequest(
            owner=intent.owner,
            repo=intent.repo,
            issues=[attach_provenance(issue, document) for issue in issues],
            events=events,
        )

    def _parse_issues(self, raw: str, events: List[StageEvent]) -> List[SynthesizedIssue]:
        """Parse and validate the model output; raises ValueError when unusable."""
        items = parse_llm_json_array(raw)

        issues: List[SynthesizedIssue] = []
        for index, item in enumerate(items):
            issue = _to_issue(item)
            if issue is None:
                record_event(events, logger, STAGE, "warning",
                             f"dropped ill-formed item #{index}: {json.dumps(item, ensure_ascii=False)[:120]}")
                continue
            issues.append(issue)

        if not issues:
            raise ValueError(f"no well-formed issues in model output: {raw[:200]}")
        return issues

    def _degraded_for_document(
        self,
        document: FetchedDocument,
        intent: WorkflowInput,
        events: List[StageEvent],
    ) -> PublishRequest:
        error = document.error or "コンテンツなし"

        if not document.found:
            issue = SynthesizedIssue(
                title=NOT_FOUND_TITLE,
                body=NOT_FOUND_BODY.format(
                    query=intent.query,
                    error=error,
                    sources=", ".join(intent.sources or []) or "all",
                ),
            )
        else:
            issue = SynthesizedIssue(
                title=NO_CONTENT_TITLE,
                body=NO_CONTENT_BODY.format(
                    source=document.source or "不明",
                    title=document.title,
                    url=document.url,
                    error=error,
                    query=intent.query,
                ),
            )

        record_event(events, logger, STAGE, "warning",
                     f"no content to synthesize: {error}", source=document.source or None)
        return PublishRequest(
            owner=intent.owner,
            repo=intent.repo,
            issues=[issue],
            degraded=True,
            error=error,
            events=events,
        )


def _to_issue(item: Any) -> Optional[SynthesizedIssue]:
    if not isinstance(item, dict):
        return None
    title = item.get("title")
    body = item.get("body")
    if not isinstance(title, str) or not isinstance(body, str):
        return None
    issue = SynthesizedIssue(title=title.strip(), body=body)
    return issue if issue.is_well_formed else None
