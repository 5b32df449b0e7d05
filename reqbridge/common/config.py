"""
Configuration Management for reqbridge

Loads configuration from ~/.reqbridge/config.json and environment variables.
The config is built once at process start and injected into every connector;
nothing else reads the environment.
"""

import os
import json
import logging
from pathlib import Path
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

logger = logging.getLogger("reqbridge.common.config")

# Default config paths
CONFIG_DIR = Path.home() / ".reqbridge"
CONFIG_PATH = CONFIG_DIR / "config.json"

# Numbered Backlog tenants: BACKLOG_SPACE_ID_1 .. BACKLOG_SPACE_ID_10
MAX_BACKLOG_TENANTS = 10

# Fixed-date Japanese national holidays (MM-DD)
DEFAULT_HOLIDAYS = (
    "01-01", "02-11", "02-23", "04-29", "05-03",
    "05-04", "05-05", "08-11", "11-03", "11-23",
)


@dataclass
class ConfluenceConfig:
    """Confluence Cloud configuration (basic auth: email + API token)"""
    base_url: str = ""
    api_token: str = ""
    user_email: str = ""

    @property
    def is_configured(self) -> bool:
        return bool(self.base_url and self.api_token)


@dataclass
class NotionConfig:
    """Notion integration configuration (bearer token)"""
    api_token: str = ""
    api_version: str = "2022-06-28"
    page_size: int = 10

    @property
    def is_configured(self) -> bool:
        return bool(self.api_token)


@dataclass(frozen=True)
class BacklogSpace:
    """One Backlog tenant: space id + API key"""
    space_id: str
    api_key: str
    domain: str = "backlog.jp"

    @property
    def base_url(self) -> str:
        return f"https://{self.space_id}.{self.domain}/api/v2"

    @property
    def web_url(self) -> str:
        return f"https://{self.space_id}.{self.domain}"


@dataclass
class BacklogConfig:
    """Backlog configuration (API key as query param, multi-tenant)"""
    spaces: List[BacklogSpace] = field(default_factory=list)
    domain: str = "backlog.jp"
    open_status_ids: Tuple[int, ...] = (1, 2, 3)
    issue_count: int = 100

    @property
    def is_configured(self) -> bool:
        return len(self.spaces) > 0


@dataclass
class GitHubConfig:
    """GitHub issue tracker configuration"""
    token: str = ""
    api_url: str = "https://api.github.com"

    @property
    def is_configured(self) -> bool:
        return bool(self.token)


@dataclass
class SlackConfig:
    """Slack chat sink configuration"""
    bot_token: str = ""
    channel_id: str = ""
    api_url: str = "https://slack.com/api"


@dataclass
class LLMConfig:
    """Generation provider configuration"""
    provider: str = "anthropic"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-20250514"
    bedrock_region: str = "us-west-2"
    bedrock_model: str = "us.anthropic.claude-3-5-sonnet-20241022-v2:0"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    google_api_key: str = ""
    google_model: str = "gemini-2.0-flash-exp"
    max_tokens: int = 4096
    timeout_seconds: float = 60.0


@dataclass
class HTTPConfig:
    """Outbound HTTP settings"""
    timeout_seconds: float = 30.0


@dataclass
class WorkflowConfig:
    """Multi-source workflow settings"""
    default_sources: List[str] = field(
        default_factory=lambda: ["confluence", "notion", "backlog"]
    )
    issue_count: int = 2


@dataclass
class NotifyConfig:
    """Backlog → Slack notification settings"""
    days_threshold: int = 3
    timezone: str = "Asia/Tokyo"
    holidays: List[str] = field(default_factory=lambda: list(DEFAULT_HOLIDAYS))


@dataclass
class ServerConfig:
    """HTTP server settings"""
    host: str = "0.0.0.0"
    port: int = 8080


@dataclass
class ReqBridgeConfig:
    """Main reqbridge configuration"""
    confluence: ConfluenceConfig = field(default_factory=ConfluenceConfig)
    notion: NotionConfig = field(default_factory=NotionConfig)
    backlog: BacklogConfig = field(default_factory=BacklogConfig)
    github: GitHubConfig = field(default_factory=GitHubConfig)
    slack: SlackConfig = field(default_factory=SlackConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    http: HTTPConfig = field(default_factory=HTTPConfig)
    workflow: WorkflowConfig = field(default_factory=WorkflowConfig)
    notify: NotifyConfig = field(default_factory=NotifyConfig)
    server: ServerConfig = field(default_factory=ServerConfig)


def _parse_confluence_config(data: dict) -> ConfluenceConfig:
    """Parse confluence section from config dict"""
    section = data.get("confluence", {})
    return ConfluenceConfig(
        base_url=section.get("base_url", "").rstrip("/"),
        api_token=section.get("api_token", ""),
        user_email=section.get("user_email", ""),
    )


def _parse_notion_config(data: dict) -> NotionConfig:
    """Parse notion section from config dict"""
    section = data.get("notion", {})
    return NotionConfig(
        api_token=section.get("api_token", ""),
        api_version=section.get("api_version", "2022-06-28"),
        page_size=section.get("page_size", 10),
    )


def _parse_backlog_config(data: dict) -> BacklogConfig:
    """Parse backlog section; ``spaces`` is a list of {space_id, api_key}"""
    section = data.get("backlog", {})
    domain = section.get("domain", "backlog.jp")
    pairs = [
        (s.get("space_id", ""), s.get("api_key", ""))
        for s in section.get("spaces", [])
    ]
    return BacklogConfig(
        spaces=build_backlog_spaces(pairs, domain=domain),
        domain=domain,
        issue_count=section.get("issue_count", 100),
    )


def _parse_workflow_config(data: dict) -> WorkflowConfig:
    """Parse workflow section from config dict"""
    section = data.get("workflow", {})
    defaults = WorkflowConfig()
    return WorkflowConfig(
        default_sources=section.get("default_sources", defaults.default_sources),
        issue_count=section.get("issue_count", defaults.issue_count),
    )


def _parse_llm_config(data: dict) -> LLMConfig:
    """Parse llm section from config dict"""
    section = data.get("llm", {})
    defaults = LLMConfig()
    return LLMConfig(
        provider=section.get("provider", defaults.provider),
        anthropic_api_key=section.get("anthropic_api_key", ""),
        anthropic_model=section.get("anthropic_model", defaults.anthropic_model),
        bedrock_region=section.get("bedrock_region", defaults.bedrock_region),
        bedrock_model=section.get("bedrock_model", defaults.bedrock_model),
        openai_api_key=section.get("openai_api_key", ""),
        openai_model=section.get("openai_model", defaults.openai_model),
        google_api_key=section.get("google_api_key", ""),
        google_model=section.get("google_model", defaults.google_model),
        max_tokens=section.get("max_tokens", defaults.max_tokens),
        timeout_seconds=section.get("timeout_seconds", defaults.timeout_seconds),
    )


def build_backlog_spaces(
    pairs: List[Tuple[Optional[str], Optional[str]]],
    domain: str = "backlog.jp",
) -> List[BacklogSpace]:
    """
    Validate (space_id, api_key) pairs into an ordered tenant list.

    Pairs with a missing half are skipped with a warning. Duplicate space
    ids keep the first occurrence.
    """
    spaces: List[BacklogSpace] = []
    seen = set()
    for space_id, api_key in pairs:
        if not space_id and not api_key:
            continue
        if not space_id or not api_key:
            logger.warning(
                "Skipping incomplete Backlog tenant (space_id=%r, api_key set=%s)",
                space_id, bool(api_key),
            )
            continue
        if space_id in seen:
            logger.warning("Duplicate Backlog space %s ignored", space_id)
            continue
        seen.add(space_id)
        spaces.append(BacklogSpace(space_id=space_id, api_key=api_key, domain=domain))
    return spaces


def backlog_pairs_from_env() -> List[Tuple[Optional[str], Optional[str]]]:
    """Read BACKLOG_SPACE_ID/BACKLOG_API_KEY and the numbered _1.._10 variants"""
    pairs = [(os.getenv("BACKLOG_SPACE_ID"), os.getenv("BACKLOG_API_KEY"))]
    for i in range(1, MAX_BACKLOG_TENANTS + 1):
        pairs.append((os.getenv(f"BACKLOG_SPACE_ID_{i}"), os.getenv(f"BACKLOG_API_KEY_{i}")))
    return pairs


def _config_path() -> Path:
    override = os.getenv("REQBRIDGE_CONFIG")
    return Path(override) if override else CONFIG_PATH


def load_config() -> ReqBridgeConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables
    2. Config file (~/.reqbridge/config.json or $REQBRIDGE_CONFIG)
    3. Default values
    """
    config = ReqBridgeConfig()

    path = _config_path()
    if path.exists():
        try:
            with open(path) as f:
                data = json.load(f)

            config.confluence = _parse_confluence_config(data)
            config.notion = _parse_notion_config(data)
            config.backlog = _parse_backlog_config(data)
            config.github.token = data.get("github", {}).get("token", "")
            slack_data = data.get("slack", {})
            config.slack.bot_token = slack_data.get("bot_token", "")
            config.slack.channel_id = slack_data.get("channel_id", "")
            config.llm = _parse_llm_config(data)
            config.workflow = _parse_workflow_config(data)
            config.http.timeout_seconds = data.get("http", {}).get("timeout_seconds", 30.0)
            notify_data = data.get("notify", {})
            config.notify.days_threshold = notify_data.get("days_threshold", 3)
            config.notify.holidays = notify_data.get("holidays", list(DEFAULT_HOLIDAYS))
            config.server.port = data.get("server", {}).get("port", 8080)
        except (json.JSONDecodeError, IOError) as e:
            logger.warning("Failed to load config file %s: %s", path, e)

    # Environment variable overrides
    if os.getenv("CONFLUENCE_BASE_URL"):
        config.confluence.base_url = os.getenv("CONFLUENCE_BASE_URL").rstrip("/")
    if os.getenv("CONFLUENCE_API_TOKEN"):
        config.confluence.api_token = os.getenv("CONFLUENCE_API_TOKEN")
    if os.getenv("CONFLUENCE_USER_EMAIL"):
        config.confluence.user_email = os.getenv("CONFLUENCE_USER_EMAIL")

    if os.getenv("NOTION_API_TOKEN"):
        config.notion.api_token = os.getenv("NOTION_API_TOKEN")

    if os.getenv("BACKLOG_DOMAIN"):
        config.backlog.domain = os.getenv("BACKLOG_DOMAIN")
        # File tenants follow the overridden domain too
        config.backlog.spaces = [
            BacklogSpace(space_id=s.space_id, api_key=s.api_key, domain=config.backlog.domain)
            for s in config.backlog.spaces
        ]
    env_spaces = build_backlog_spaces(backlog_pairs_from_env(), domain=config.backlog.domain)
    if env_spaces:
        config.backlog.spaces = env_spaces

    if os.getenv("GITHUB_TOKEN"):
        config.github.token = os.getenv("GITHUB_TOKEN")

    if os.getenv("SLACK_BOT_TOKEN"):
        config.slack.bot_token = os.getenv("SLACK_BOT_TOKEN")
    if os.getenv("SLACK_CHANNEL_ID"):
        config.slack.channel_id = os.getenv("SLACK_CHANNEL_ID")

    _env_llm_map = {
        "REQBRIDGE_LLM_PROVIDER": "provider",
        "ANTHROPIC_API_KEY": "anthropic_api_key",
        "ANTHROPIC_MODEL": "anthropic_model",
        "BEDROCK_REGION": "bedrock_region",
        "BEDROCK_MODEL": "bedrock_model",
        "OPENAI_API_KEY": "openai_api_key",
        "OPENAI_MODEL": "openai_model",
        "GOOGLE_API_KEY": "google_api_key",
        "GEMINI_API_KEY": "google_api_key",
        "GOOGLE_MODEL": "google_model",
    }
    for env_var, attr in _env_llm_map.items():
        val = os.getenv(env_var)
        if val:
            setattr(config.llm, attr, val)

    if os.getenv("REQBRIDGE_HTTP_TIMEOUT"):
        config.http.timeout_seconds = float(os.getenv("REQBRIDGE_HTTP_TIMEOUT"))
    if os.getenv("REQBRIDGE_PORT"):
        config.server.port = int(os.getenv("REQBRIDGE_PORT"))
    if os.getenv("REQBRIDGE_HOLIDAYS"):
        config.notify.holidays = [
            h.strip() for h in os.getenv("REQBRIDGE_HOLIDAYS").split(",") if h.strip()
        ]

    return config
