"""
FastAPI server for the Jira assistant daemon.

Endpoints:
- GET    /health                         - Health check and loaded configs
- GET    /v1/configs                     - List project configs (no secrets)
- GET    /v1/tools                       - Published tool schemas
- POST   /v1/ask                         - SSE stream of one assistant turn
- POST   /v1/actions/execute             - SSE stream of a confirmed create/update
- POST   /v1/invoke-tool                 - Direct read/local tool invocation
- GET    /v1/cache/{config_id}           - Metadata cache status
- POST   /v1/cache/{config_id}/refresh   - Force a metadata refresh
- DELETE /v1/cache/{config_id}           - Drop cached metadata
- GET    /v1/epics/{config_id}           - List epics (?status=...)
- GET    /v1/epics/{config_id}/report    - Progress of the newest epics
- POST   /v1/epics/{config_id}/progress  - Progress of the given epic keys
- GET    /v1/epics/{config_id}/{key}/progress - Progress of one epic
- GET    /v1/board/{config_id}           - Active sprint in board column order
- GET    /v1/board/{config_id}/issues/{key} - Issue detail for the board

Startup behavior:
- JIRA_CONFIGS and the Ollama settings are read from the environment unless
  state was configured beforehand
"""

from __future__ import annotations

import json
import logging
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Mapping, Sequence

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
    datefmt='%H:%M:%S'
)
logger = logging.getLogger('jira.server')

from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from .auditors import llm_auditors
from .config import EPIC_REPORT_LIMIT, WRITE_TOOLS, OllamaSettings, ProjectConfig, load_project_configs
from .errors import ConfigError, JiraAPIError, ToolValidationError
from .history import LLMContextClassifier
from .jira.cache import CacheEntry, MetadataCache
from .jira.client import JiraBackend, JiraClient
from .jira.reports import epic_list, epic_progress, epic_progress_many, key_link, sprint_board
from .llm import ChatModel, OllamaClient
from .orchestrator import Orchestrator, TurnRequest
from .tools import ToolContext, ToolRegistry, get_registry


# --- Request/Response Models ---


class MessageInput(BaseModel):
    """One message of the visible conversation."""

    role: str = Field(..., description="Message role: 'user' or 'assistant'")
    content: str = Field(default="", description="Message content")


def _empty_messages() -> list[MessageInput]:
    return []


def _empty_rows() -> list[dict[str, str]]:
    return []


def _empty_dict_list() -> list[dict[str, Any]]:
    return []


def _empty_dict() -> dict[str, Any]:
    return {}


class CachedData(BaseModel):
    """Issues handed back from a previous turn's structured data."""

    issues: list[dict[str, Any]] = Field(default_factory=_empty_dict_list)
    sprint_name: str | None = Field(default=None, description="Sprint the issues came from")


class AskRequest(BaseModel):
    """Request body for /v1/ask."""

    messages: list[MessageInput] = Field(
        default_factory=_empty_messages, description="Conversation, newest message last"
    )
    config_id: str | None = Field(default=None, description="Project config id (default: first)")
    csv_data: list[dict[str, str]] = Field(
        default_factory=_empty_rows, description="Uploaded CSV rows keyed by header"
    )
    cached_data: CachedData | None = Field(default=None, description="Issues from an earlier turn")
    use_auditor: bool = Field(default=True, description="Run the post-answer review")


class ExecuteActionRequest(BaseModel):
    """Request body for /v1/actions/execute."""

    config_id: str | None = Field(default=None, description="Project config id (default: first)")
    tool_name: str = Field(..., description="create_issues or update_issues")
    issues: list[dict[str, Any]] = Field(..., description="Issues from the confirmed PendingAction")


class ToolInvokeRequest(BaseModel):
    """Request body for direct tool invocation."""

    tool_name: str = Field(..., description="Name of tool to invoke")
    arguments: dict[str, Any] = Field(default_factory=_empty_dict, description="Tool arguments")
    config_id: str | None = Field(default=None, description="Project config id (default: first)")


class ToolInvokeResponse(BaseModel):
    """Response from direct tool invocation."""

    tool_name: str
    result: Any
    latency_ms: float


class ConfigSummary(BaseModel):
    id: str
    name: str
    projectKey: str


class ConfigsResponse(BaseModel):
    configs: list[ConfigSummary]
    default: str | None


class CacheInfoResponse(BaseModel):
    """Read-only cache status for one config."""

    config_id: str
    valid: bool
    age: float | None = Field(default=None, description="Seconds since the last fetch")
    expires_in: float | None = Field(default=None, description="Seconds until expiry")


class EpicProgressRequest(BaseModel):
    """Request body for bulk epic progress."""

    epic_keys: list[str] = Field(..., min_length=1, description="Epic keys, e.g. ['ALP-500']")


class HealthResponse(BaseModel):
    status: str
    configs: list[str]
    model: str | None
    available_tools: list[str]


# --- Application State ---


class AppState:
    """Configs, per-project Jira clients, the shared cache and the orchestrator."""

    def __init__(self) -> None:
        self._configs: list[ProjectConfig] = []
        self._backends: dict[str, JiraBackend] = {}
        self._cache: MetadataCache | None = None
        self._model: ChatModel | None = None
        self._orchestrator: Orchestrator | None = None
        self._registry: ToolRegistry | None = None

    @property
    def configured(self) -> bool:
        return self._orchestrator is not None

    def configure(
        self,
        configs: Sequence[ProjectConfig],
        backends: Mapping[str, JiraBackend],
        model: ChatModel,
        *,
        registry: ToolRegistry | None = None,
        orchestrator: Orchestrator | None = None,
    ) -> None:
        """Wire every collaborator; LLM-backed classifier and auditors by default."""
        self._configs = list(configs)
        self._backends = dict(backends)
        self._model = model
        self._registry = registry or get_registry()
        self._cache = MetadataCache(self._backends)
        self._orchestrator = orchestrator or Orchestrator(
            model,
            self._registry,
            self._cache,
            self._configs,
            self._backends,
            classifier=LLMContextClassifier(model),
            auditors=llm_auditors(model),
        )

    def configure_from_env(self) -> None:
        configs = load_project_configs()
        backends = {c.id: JiraClient(c) for c in configs}
        self.configure(configs, backends, OllamaClient(OllamaSettings.from_env()))

    async def close(self) -> None:
        for backend in self._backends.values():
            aclose = getattr(backend, "aclose", None)
            if aclose is not None:
                await aclose()
        aclose = getattr(self._model, "aclose", None)
        if aclose is not None:
            await aclose()

    @property
    def configs(self) -> list[ProjectConfig]:
        return list(self._configs)

    @property
    def model_name(self) -> str | None:
        return getattr(self._model, "model", None)

    @property
    def cache(self) -> MetadataCache:
        if self._cache is None:
            raise RuntimeError("Application state is not configured")
        return self._cache

    @property
    def registry(self) -> ToolRegistry:
        return self._registry or get_registry()

    @property
    def orchestrator(self) -> Orchestrator:
        if self._orchestrator is None:
            raise RuntimeError("Application state is not configured")
        return self._orchestrator


app_state = AppState()


# --- Application Setup ---


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Lifespan context manager for startup/shutdown."""
    logger.info("🚀 Jira daemon starting...")
    if not app_state.configured:
        app_state.configure_from_env()
    logger.info(f"   Configs: {[c.id for c in app_state.configs]}")
    logger.info(f"   Model: {app_state.model_name}")
    logger.info(f"   Available tools: {app_state.registry.available_tools}")

    yield

    logger.info("👋 Jira daemon shutting down...")
    await app_state.close()


app = FastAPI(
    title="Jira Daemon",
    description="LLM assistant for Jira sprints with confirmed bulk edits",
    version="0.1.0",
    lifespan=lifespan,
)


def _sse(events: AsyncIterator[dict[str, Any]]) -> StreamingResponse:
    """Serialize an event generator as server-sent events; always ends with done."""

    async def stream() -> AsyncIterator[str]:
        try:
            async for event in events:
                yield f"data: {json.dumps(event)}\n\n"
        except Exception as e:
            logger.exception("Stream failed")
            yield f"data: {json.dumps({'type': 'error', 'content': str(e)})}\n\n"
            yield f"data: {json.dumps({'type': 'done'})}\n\n"

    return StreamingResponse(
        stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


def _resolve_config(config_id: str | None) -> ProjectConfig:
    try:
        return app_state.orchestrator.project(config_id)
    except ConfigError as e:
        raise HTTPException(status_code=404, detail=str(e))


# --- Endpoints ---


@app.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    return HealthResponse(
        status="healthy",
        configs=[c.id for c in app_state.configs],
        model=app_state.model_name,
        available_tools=app_state.registry.available_tools,
    )


@app.get("/v1/configs", response_model=ConfigsResponse)
async def list_configs() -> ConfigsResponse:
    """List project configs without credentials; the first one is the default."""
    configs = app_state.configs
    return ConfigsResponse(
        configs=[ConfigSummary(**c.to_public()) for c in configs],
        default=configs[0].id if configs else None,
    )


@app.get("/v1/tools")
async def list_tools() -> dict[str, Any]:
    registry = app_state.registry
    return {
        "tools": [
            {**spec.to_schema(), "kind": spec.kind}
            for spec in registry.get_all_specs()
        ]
    }


@app.post("/v1/ask")
async def ask(request: AskRequest) -> StreamingResponse:
    """
    Run one assistant turn.

    The config is validated before streaming starts so an unknown id is a
    plain 404 instead of an error event.
    """
    config = _resolve_config(request.config_id)
    logger.info(f"POST /v1/ask - config={config.id}, messages={len(request.messages)}")

    cached = request.cached_data
    turn = TurnRequest(
        messages=[m.model_dump() for m in request.messages],
        config_id=config.id,
        csv_rows=request.csv_data,
        cached_issues=cached.issues if cached and cached.issues else None,
        cached_sprint_name=cached.sprint_name if cached else None,
        use_auditor=request.use_auditor,
    )
    return _sse(app_state.orchestrator.orchestrate(turn))


@app.post("/v1/actions/execute")
async def execute_action(request: ExecuteActionRequest) -> StreamingResponse:
    """Run a create/update the user confirmed."""
    config = _resolve_config(request.config_id)
    if request.tool_name not in WRITE_TOOLS:
        raise HTTPException(status_code=400, detail=f"Not a write tool: {request.tool_name}")
    logger.info(f"POST /v1/actions/execute - {request.tool_name} x{len(request.issues)} on {config.id}")
    return _sse(
        app_state.orchestrator.execute_action(config.id, request.tool_name, request.issues)
    )


@app.post("/v1/invoke-tool", response_model=ToolInvokeResponse)
async def invoke_tool(request: ToolInvokeRequest) -> ToolInvokeResponse:
    """
    Direct tool invocation endpoint.

    Executes a read or local tool without LLM involvement. Write tools only
    run through /v1/actions/execute.
    """
    start_time = time.perf_counter()

    registry = app_state.registry
    spec = registry.get_spec(request.tool_name)
    if spec is None:
        raise HTTPException(status_code=404, detail=f"Unknown tool: {request.tool_name}")
    if spec.kind == "write":
        raise HTTPException(
            status_code=400,
            detail=f"{request.tool_name} needs confirmation; use /v1/actions/execute",
        )

    config = _resolve_config(request.config_id)
    ctx = app_state.orchestrator.tool_context(config)
    outcome = await registry.dispatch(request.tool_name, ctx, request.arguments)
    if not outcome.ok:
        raise HTTPException(status_code=400, detail=outcome.error)

    latency_ms = (time.perf_counter() - start_time) * 1000

    return ToolInvokeResponse(
        tool_name=request.tool_name,
        result=outcome.result,
        latency_ms=latency_ms,
    )


@app.get("/v1/cache/{config_id}", response_model=CacheInfoResponse)
async def cache_info(config_id: str) -> CacheInfoResponse:
    config = _resolve_config(config_id)
    return CacheInfoResponse(config_id=config.id, **app_state.cache.info(config.id))


@app.post("/v1/cache/{config_id}/refresh", response_model=CacheInfoResponse)
async def refresh_cache(config_id: str) -> CacheInfoResponse:
    """Fetch metadata now; Jira errors surface as 502."""
    config = _resolve_config(config_id)
    try:
        await app_state.cache.refresh(config.id)
    except ConfigError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.exception(f"Cache refresh failed for {config.id}")
        raise HTTPException(status_code=502, detail=str(e))
    return CacheInfoResponse(config_id=config.id, **app_state.cache.info(config.id))


@app.delete("/v1/cache/{config_id}", response_model=CacheInfoResponse)
async def invalidate_cache(config_id: str) -> CacheInfoResponse:
    config = _resolve_config(config_id)
    app_state.cache.invalidate(config.id)
    logger.info(f"Cache invalidated for {config.id}")
    return CacheInfoResponse(config_id=config.id, **app_state.cache.info(config.id))


# --- Epics & Board ---


async def _report(config: ProjectConfig, build: Callable[[ToolContext, CacheEntry], Awaitable[Any]]) -> Any:
    """Run a read-only report; Jira 404s stay 404, other upstream failures are 502."""
    ctx = app_state.orchestrator.tool_context(config)
    try:
        return await build(ctx, await ctx.metadata())
    except ToolValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except JiraAPIError as e:
        if e.status == 404:
            raise HTTPException(status_code=404, detail=str(e))
        logger.warning(f"Report failed for {config.id}: {e}")
        raise HTTPException(status_code=502, detail=str(e))


@app.get("/v1/epics/{config_id}")
async def list_epics(config_id: str, status: list[str] | None = Query(default=None)) -> dict[str, Any]:
    config = _resolve_config(config_id)

    async def build(ctx: ToolContext, entry: CacheEntry) -> dict[str, Any]:
        return await epic_list(ctx.backend, status)

    return await _report(config, build)


@app.get("/v1/epics/{config_id}/report")
async def epic_report(config_id: str) -> dict[str, Any]:
    """Progress for the newest epics; epics that fail are listed under failed."""
    config = _resolve_config(config_id)

    async def build(ctx: ToolContext, entry: CacheEntry) -> dict[str, Any]:
        epics = await ctx.backend.list_epics(None, EPIC_REPORT_LIMIT)
        return await epic_progress_many(ctx.backend, [e.key for e in epics], entry.story_points_field)

    return await _report(config, build)


@app.post("/v1/epics/{config_id}/progress")
async def bulk_epic_progress(config_id: str, request: EpicProgressRequest) -> dict[str, Any]:
    config = _resolve_config(config_id)

    async def build(ctx: ToolContext, entry: CacheEntry) -> dict[str, Any]:
        return await epic_progress_many(ctx.backend, request.epic_keys, entry.story_points_field)

    return await _report(config, build)


@app.get("/v1/epics/{config_id}/{epic_key}/progress")
async def get_epic_progress(config_id: str, epic_key: str, include_subtasks: bool = False) -> dict[str, Any]:
    config = _resolve_config(config_id)

    async def build(ctx: ToolContext, entry: CacheEntry) -> dict[str, Any]:
        return await epic_progress(ctx.backend, epic_key, entry.story_points_field, include_subtasks)

    return await _report(config, build)


@app.get("/v1/board/{config_id}")
async def get_board(config_id: str) -> dict[str, Any]:
    """The active sprint laid out in the board's column order."""
    config = _resolve_config(config_id)

    async def build(ctx: ToolContext, entry: CacheEntry) -> dict[str, Any]:
        sprint = entry.active_sprint
        if sprint is None:
            raise HTTPException(status_code=404, detail="No active sprint found")
        return await sprint_board(ctx.backend, sprint, entry.story_points_field)

    return await _report(config, build)


@app.get("/v1/board/{config_id}/issues/{issue_key}")
async def get_board_issue(config_id: str, issue_key: str) -> dict[str, Any]:
    config = _resolve_config(config_id)

    async def build(ctx: ToolContext, entry: CacheEntry) -> dict[str, Any]:
        key = issue_key.strip().upper()
        detail = await ctx.backend.get_issue(key, entry.story_points_field)
        return {**detail, "key_link": key_link(config.base_url, key)}

    return await _report(config, build)


# --- Main ---


def main() -> None:
    """Run the server with uvicorn."""
    import sys

    import uvicorn

    host = "127.0.0.1"
    port = 8787

    args = sys.argv[1:]
    i = 0
    while i < len(args):
        if args[i] == "--host" and i + 1 < len(args):
            host = args[i + 1]
            i += 2
        elif args[i] == "--port" and i + 1 < len(args):
            port = int(args[i + 1])
            i += 2
        else:
            i += 1

    print(f"Starting Jira daemon on {host}:{port}")
    uvicorn.run(app, host=host, port=port, log_level="info")


if __name__ == "__main__":
    main()
