"""
Content Normalizer

Converts each source's native document representation into a single
plain/markdown text payload:
- Confluence storage markup: passed through unchanged
- Notion blocks: lossy markdown approximation
- Backlog issues / wikis: fixed markdown template
"""

from typing import Any, Dict, Iterable, List, Optional

NOT_SET = "未設定"
UNASSIGNED = "未割り当て"
UNKNOWN = "不明"

# Notion block type -> markdown line prefix
BLOCK_PREFIXES = {
    "paragraph": "",
    "heading_1": "# ",
    "heading_2": "## ",
    "bulleted_list_item": "- ",
}

BACKLOG_ISSUE_TEMPLATE = """# {summary}

- **プロジェクト:** {project}
- **期限:** {due_date}
- **優先度:** {priority}
- **ステータス:** {status}
- **担当者:** {assignee}

## 詳細
{description}"""


def normalize_storage(body: Optional[str]) -> Optional[str]:
    """Confluence storage-format body, unmodified."""
    return body


def rich_text_to_plain(rich_text: Iterable[Dict[str, Any]]) -> str:
    """Concatenate the plain_text of a Notion rich_text array"""
    return "".join(t.get("plain_text", "") for t in rich_text or [])


def normalize_block(block: Dict[str, Any]) -> str:
    """Render one Notion block as a markdown line ("" when unsupported)"""
    block_type = block.get("type", "")
    prefix = BLOCK_PREFIXES.get(block_type)
    if prefix is None:
        return ""

    block_data = block.get(block_type) or {}
    text = rich_text_to_plain(block_data.get("rich_text", []))
    if not text:
        return ""
    return prefix + text


def normalize_blocks(blocks: List[Dict[str, Any]]) -> str:
    """
    Walk Notion blocks in order and join the recognized ones with newlines.

    Unrecognized block types and empty blocks are dropped.
    """
    lines = [normalize_block(block) for block in blocks]
    return "\n".join(line for line in lines if line)


def _name(obj: Optional[Dict[str, Any]], default: str) -> str:
    if isinstance(obj, dict) and obj.get("name"):
        return obj["name"]
    return default


def format_due_date(due_date: Optional[str]) -> str:
    """Backlog dueDate ("2024-06-30T00:00:00Z") -> "2024-06-30", or 未設定"""
    if not due_date:
        return NOT_SET
    return due_date[:10]


def normalize_backlog_issue(issue: Dict[str, Any], project_name: str = "") -> str:
    """Render a Backlog issue record with the fixed markdown template"""
    return BACKLOG_ISSUE_TEMPLATE.format(
        summary=issue.get("summary") or issue.get("issueKey") or "",
        project=project_name or UNKNOWN,
        due_date=format_due_date(issue.get("dueDate")),
        priority=_name(issue.get("priority"), NOT_SET),
        status=_name(issue.get("status"), UNKNOWN),
        assignee=_name(issue.get("assignee"), UNASSIGNED),
        description=issue.get("description") or "",
    )


def normalize_backlog_wiki(wiki: Dict[str, Any]) -> str:
    """Render a Backlog wiki page: its name as a heading, then the stored text"""
    name = wiki.get("name", "")
    content = wiki.get("content") or ""
    if not content.strip():
        return ""
    return f"# {name}\n\n{content}" if name else content
