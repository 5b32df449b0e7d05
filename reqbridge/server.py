"""
reqbridge Server

FastAPI server exposing both workflows over HTTP.

Endpoints:
- POST /workflow/execute: requirements document → GitHub issues
- POST /backlog-notify: urgent Backlog issues → Slack
- GET /health: configured sources and sinks

Unexpected exceptions (and the terminal publish failure) become HTTP 500
with message and stack; every other failure is already a degraded result.
"""

import logging
import traceback
from contextlib import asynccontextmanager
from typing import List, Literal, Optional

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from .common.config import ReqBridgeConfig, load_config
from .common.errors import PublishError
from .common.llm_client import create_llm_client
from .notify import BacklogNotifyWorkflow, SlackNotifier
from .pipeline import GitHubPublisher, IssueSynthesizer, MultiSourceWorkflow, WorkflowInput
from .sources import QueryTranslator, SourceKind, build_connectors

load_dotenv()

logger = logging.getLogger("reqbridge.server")


# =============================================================================
# Request Models
# =============================================================================

class WorkflowRequest(BaseModel):
    """Multi-source workflow request"""
    query: str
    owner: str
    repo: str
    sources: Optional[List[Literal["confluence", "notion", "backlog"]]] = None


class BacklogNotifyRequest(BaseModel):
    """Backlog notification request (camelCase on the wire)"""
    model_config = ConfigDict(populate_by_name=True)

    days_threshold: Optional[int] = Field(default=None, alias="daysThreshold")
    channel_id: Optional[str] = Field(default=None, alias="channelId")
    skip_weekend_holiday: bool = Field(default=True, alias="skipWeekendHoliday")


def _error_response(error: str, exc: BaseException, details: Optional[str] = None) -> JSONResponse:
    logger.error("%s: %s", error, exc)
    logger.error("Stack trace: %s", traceback.format_exc())
    return JSONResponse(
        status_code=500,
        content={
            "error": error,
            "details": details or str(exc),
            "stack": traceback.format_exc(),
        },
    )


# =============================================================================
# App Factory
# =============================================================================

def build_workflows(config: ReqBridgeConfig):
    """Wire connectors, LLM and sinks from config into both workflows"""
    llm = create_llm_client(config.llm)
    connectors = build_connectors(config)
    timeout = config.http.timeout_seconds

    multi_source = MultiSourceWorkflow(
        connectors=connectors,
        translator=QueryTranslator(llm, timeout=config.llm.timeout_seconds),
        synthesizer=IssueSynthesizer(
            llm,
            issue_count=config.workflow.issue_count,
            max_tokens=config.llm.max_tokens,
            timeout=config.llm.timeout_seconds,
        ),
        publisher=GitHubPublisher(config.github, timeout=timeout),
        default_sources=config.workflow.default_sources,
    )
    notify = BacklogNotifyWorkflow(
        backlog=connectors[SourceKind.BACKLOG],
        notifier=SlackNotifier(config.slack, timeout=timeout, tz=config.notify.timezone),
        holidays=config.notify.holidays,
        tz=config.notify.timezone,
    )
    return multi_source, notify


def create_app(
    config: Optional[ReqBridgeConfig] = None,
    multi_source: Optional[MultiSourceWorkflow] = None,
    notify: Optional[BacklogNotifyWorkflow] = None,
) -> FastAPI:
    """
    Build the FastAPI app.

    Args:
        config: Process config (loaded from file/env when None)
        multi_source: Injected multi-source workflow (tests)
        notify: Injected notification workflow (tests)
    """
    config = config or load_config()
    if multi_source is None or notify is None:
        built_multi, built_notify = build_workflows(config)
        multi_source = multi_source or built_multi
        notify = notify or built_notify

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting up (sources: confluence=%s notion=%s backlog=%d space(s))",
                    config.confluence.is_configured, config.notion.is_configured,
                    len(config.backlog.spaces))
        yield
        logger.info("Shutting down")

    app = FastAPI(
        title="reqbridge",
        description="Requirements documents to GitHub issues, Backlog deadlines to Slack",
        version="0.1.0",
        lifespan=lifespan,
    )

    @app.get("/health")
    async def health():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "reqbridge",
            "sources": {
                "confluence": config.confluence.is_configured,
                "notion": config.notion.is_configured,
                "backlog": len(config.backlog.spaces),
            },
            "github": config.github.is_configured,
            "slack": bool(config.slack.bot_token),
        }

    @app.post("/workflow/execute")
    async def execute_workflow(request: WorkflowRequest):
        """Search sources for a requirements document and create GitHub issues"""
        try:
            result = await multi_source.execute(WorkflowInput(
                query=request.query,
                owner=request.owner,
                repo=request.repo,
                sources=request.sources,
            ))
        except PublishError as e:
            return _error_response("Issue作成に失敗しました", e, details=e.details or str(e))
        except Exception as e:
            return _error_response("ワークフローの実行中にエラーが発生しました", e)

        return {"success": True, "result": result.to_dict()}

    @app.post("/backlog-notify")
    async def backlog_notify(request: BacklogNotifyRequest):
        """Notify Slack about Backlog issues near their due date"""
        threshold = request.days_threshold
        if threshold is None:
            threshold = config.notify.days_threshold
        try:
            result = await notify.run(
                days_threshold=threshold,
                channel_id=request.channel_id,
                skip_weekend_holiday=request.skip_weekend_holiday,
            )
        except Exception as e:
            return _error_response("ワークフローの実行中にエラーが発生しました", e)

        return result.to_dict()

    return app


# =============================================================================
# CLI Entry Point
# =============================================================================

def run_server():
    """Run the reqbridge server"""
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config = load_config()
    logger.info("Starting server on port %d", config.server.port)
    uvicorn.run(
        create_app(config),
        host=config.server.host,
        port=config.server.port,
        reload=False,
    )


if __name__ == "__main__":
    run_server()
