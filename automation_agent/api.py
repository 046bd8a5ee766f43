"""FastAPI service for the automation agent.

Two core flows:

  1. Resolve an intent:  POST /intents/resolve
       IntentRequest → prompt → provider → extract → validate, returns a
       FlowGraphResponse. With no provider key configured the deterministic
       demo flow is served instead.

  2. Execute a flow:     POST /flows/execute
       Validates a graph (bare or wrapped in a FlowGraphResponse) and runs
       it once against the reference handlers on a SimulatedPlatform.
       Returns the ordered step results plus the recorded platform events.

Error mapping:
  FlowValidationError            → 422 {"error", "rule"}
  MalformedResponseError         → 502 {"error"} (422 for /flows/execute input)
  ProviderError                  → 502 {"error"}
  handler exception during a run → 500
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Any

import httpx
from dotenv import load_dotenv
from fastapi import Depends, FastAPI, HTTPException, Request, Security
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from automation_agent.config import AgentSettings
from automation_agent.errors import FlowValidationError, MalformedResponseError, ProviderError
from automation_agent.flow.models import BLOCK_PARAM_HINTS, BlockType, FlowGraphResponse, IntentRequest
from automation_agent.flow.validator import validate_graph
from automation_agent.reasoning import ReasoningSettings
from automation_agent.runtime import (
    FlowEngine,
    FlowExecutionInput,
    SimulatedPlatform,
    TraversalPolicy,
    build_default_registry,
)
from automation_agent.synthesis.extract import decode_graph, unwrap_graph
from automation_agent.synthesis.service import FlowSynthesisService

logger = logging.getLogger("automation_agent.api")

_settings = AgentSettings.from_env()

# ---------------------------------------------------------------------------
# API key authentication (optional — enabled when AGENT_API_KEY is set)
# ---------------------------------------------------------------------------

_bearer = HTTPBearer(auto_error=False)


def _verify_api_key(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
) -> None:
    """Verify the Bearer token matches AGENT_API_KEY.

    If AGENT_API_KEY is not set, all requests are allowed (open dev mode).
    The variable is read on every request.
    """
    api_key = AgentSettings.from_env().api_key
    if not api_key:
        return
    if not credentials or credentials.credentials != api_key:
        raise HTTPException(status_code=401, detail="Invalid or missing API key")


# ---------------------------------------------------------------------------
# Lifespan: build the synthesis service and a shared HTTP client once
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize the synthesis service on startup, close the HTTP client on shutdown."""
    load_dotenv()

    settings = AgentSettings.from_env()
    reasoning_settings = ReasoningSettings.from_env()
    synthesis = FlowSynthesisService.from_settings(reasoning_settings)

    logger.info(
        "Starting automation agent | Engine: %s | Mode: %s | Auth: %s",
        reasoning_settings.provider,
        "demo" if synthesis.demo_mode else "provider",
        "on" if settings.auth_enabled else "off",
    )

    async with httpx.AsyncClient(timeout=settings.webhook_timeout) as http_client:
        app.state.settings = settings
        app.state.reasoning_settings = reasoning_settings
        app.state.synthesis = synthesis
        app.state.http_client = http_client
        yield

    logger.info("Shutting down automation agent")


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------


limiter = Limiter(key_func=get_remote_address)

app = FastAPI(
    title="Automation Agent API",
    description=(
        "Turns natural-language automation intents into validated flow graphs "
        "(trigger → condition → action) and executes them against a simulated device."
    ),
    version="0.1.0",
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(_settings.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(FlowValidationError)
async def _flow_validation_error(request: Request, exc: FlowValidationError) -> JSONResponse:
    logger.warning("Rejected flow (%s): %s", exc.rule, exc.message)
    return JSONResponse(status_code=422, content={"error": exc.message, "rule": exc.rule})


@app.exception_handler(MalformedResponseError)
async def _malformed_response_error(request: Request, exc: MalformedResponseError) -> JSONResponse:
    logger.warning("Malformed provider output: %s", exc)
    return JSONResponse(status_code=502, content={"error": str(exc)})


@app.exception_handler(ProviderError)
async def _provider_error(request: Request, exc: ProviderError) -> JSONResponse:
    logger.error("Provider call failed: %s", exc)
    return JSONResponse(status_code=502, content={"error": str(exc)})


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------


class ExecuteFlowRequest(BaseModel):
    """Request body for POST /flows/execute."""

    graph: dict[str, Any] = Field(
        ...,
        description=(
            "Flow graph to run: either a bare graph {id, blocks, edges, ...} or "
            "a full FlowGraphResponse {flow_id, graph, ...}."
        ),
    )
    metadata: dict[str, str] = Field(
        default_factory=dict,
        description=(
            "Runtime signals shared by every handler, e.g. local_time, "
            "battery_percent, context, step_count, activity, location."
        ),
        examples=[{"local_time": "2025-01-01T22:15:00", "battery_percent": "80"}],
    )
    policy: TraversalPolicy = Field(
        TraversalPolicy.CONTINUE,
        description=(
            "'continue': every edge is followed whatever the step status. "
            "'gate_conditions': a SKIPPED/FAILED condition stops its branch."
        ),
    )


class StepResultModel(BaseModel):
    block_id: str
    status: str
    message: str


class ExecuteFlowResponse(BaseModel):
    flow_id: str
    steps: list[StepResultModel]
    events: list[dict[str, Any]] = Field(
        default_factory=list,
        description="Side effects recorded by the simulated platform, in order.",
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _get_synthesis(request: Request) -> FlowSynthesisService:
    synthesis = getattr(request.app.state, "synthesis", None)
    if synthesis is None:
        raise HTTPException(status_code=503, detail="Agent not initialized")
    return synthesis


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@app.get("/health", tags=["system"], dependencies=[Depends(_verify_api_key)])
async def health(request: Request) -> dict:
    """Health check. Reports whether intents are served by a provider or the demo flow."""
    synthesis = _get_synthesis(request)
    reasoning_settings: ReasoningSettings = request.app.state.reasoning_settings
    return {
        "api": "ok",
        "mode": "demo" if synthesis.demo_mode else "provider",
        "provider": reasoning_settings.provider,
    }


@app.get("/blocks", tags=["system"], dependencies=[Depends(_verify_api_key)])
async def list_blocks() -> list[dict]:
    """The block catalog: every block type with its category and parameter hints."""
    return [
        {
            "type": block_type.value,
            "category": block_type.category.value,
            "params": BLOCK_PARAM_HINTS.get(block_type, ""),
        }
        for block_type in BlockType
    ]


@app.post(
    "/intents/resolve",
    response_model=FlowGraphResponse,
    tags=["flows"],
    dependencies=[Depends(_verify_api_key)],
)
@limiter.limit(_settings.resolve_limit)
async def resolve_intent(request: Request, body: IntentRequest) -> FlowGraphResponse:
    """Turn one natural-language intent into a validated flow graph.

    Validation failures (422) and provider failures (502) are returned as
    {"error": ...} bodies; the graph is never returned unvalidated.
    """
    synthesis = _get_synthesis(request)
    logger.info("Resolving intent for user %s: %r", body.user_id, body.intent_text[:80])
    return await synthesis.synthesize(body)


@app.post(
    "/flows/execute",
    response_model=ExecuteFlowResponse,
    tags=["flows"],
    dependencies=[Depends(_verify_api_key)],
)
async def execute_flow(request: Request, body: ExecuteFlowRequest) -> ExecuteFlowResponse:
    """Validate a graph and run it once against the simulated platform."""
    try:
        graph = decode_graph(unwrap_graph(body.graph))
    except MalformedResponseError as e:
        raise HTTPException(status_code=422, detail=str(e))
    validate_graph(graph)

    settings: AgentSettings = request.app.state.settings
    platform = SimulatedPlatform()
    registry = build_default_registry(
        platform=platform,
        http_client=request.app.state.http_client,
        webhook_timeout=settings.webhook_timeout,
    )
    engine = FlowEngine(registry, policy=body.policy)

    try:
        result = await engine.execute(graph, FlowExecutionInput(metadata=dict(body.metadata)))
    except Exception as e:
        logger.exception("Flow %s failed during execution", graph.id)
        raise HTTPException(status_code=500, detail=str(e))

    return ExecuteFlowResponse(
        flow_id=result.flow_id,
        steps=[StepResultModel(**s.to_dict()) for s in result.steps],
        events=[asdict(e) for e in platform.events],
    )


# ---------------------------------------------------------------------------
# Entry point (for uvicorn programmatic launch)
# ---------------------------------------------------------------------------


def serve(host: str = "0.0.0.0", port: int = 8000, reload: bool = False) -> None:
    """Launch the FastAPI server via uvicorn."""
    import uvicorn

    logging.basicConfig(level=_settings.log_level)
    uvicorn.run(
        "automation_agent.api:app",
        host=host,
        port=port,
        reload=reload,
        log_level=_settings.log_level.lower(),
    )


if __name__ == "__main__":
    serve()
